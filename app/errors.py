"""Error types raised by the catalog core."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for catalog failures surfaced to the routing layer."""

    code = "catalog_error"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        if code is not None:
            self.code = code
        super().__init__(message or self.code)


class NotFound(CatalogError):
    """An entity or list is absent. A normal outcome, not an incident."""

    code = "not_found"


class ProviderUnavailable(CatalogError):
    """The remote provider could not be reached or answered with an error."""

    code = "provider_unavailable"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, code=code)
        self.status_code = status_code


class InvalidPayload(ProviderUnavailable):
    """The provider answered with a body that cannot be parsed."""

    code = "invalid_payload"


class VideoNotFound(CatalogError):
    """No playable video exists for the requested entity."""

    code = "video_not_found"
