"""Per-user personal lists of movies and series."""

from __future__ import annotations

import logging

from ..errors import NotFound
from ..models import Entity, MediaKind, UserList
from ..storage import CatalogStore

logger = logging.getLogger(__name__)


class ListManager:
    """Maintain idempotent list membership and hydrate lists for display."""

    def __init__(self, store: CatalogStore):
        self._store = store

    async def add(self, email: str, entity: Entity, kind: MediaKind) -> UserList:
        """Add ``entity`` to the user's list, creating the list on first use."""

        if await self._store.ensure_list(email):
            logger.info("Created list for %s", email)
        added = await self._store.add_list_item(email, kind, entity.id)
        if added:
            logger.info("Added %s %s to the list of %s", kind.value, entity.id, email)
        return await self.read(email)

    async def remove(self, email: str, entity: Entity, kind: MediaKind) -> UserList:
        """Remove ``entity`` from an existing list; non-members are ignored."""

        if not await self._store.list_exists(email):
            raise NotFound(f"No list exists for {email}", code="my_list_not_found")
        removed = await self._store.remove_list_item(email, kind, entity.id)
        if removed:
            logger.info("Removed %s %s from the list of %s", kind.value, entity.id, email)
        return await self.read(email)

    async def read(self, email: str) -> UserList:
        """Return the list with every resolvable reference expanded."""

        if not await self._store.list_exists(email):
            raise NotFound(f"No list exists for {email}", code="my_list_not_found")

        references = await self._store.list_references(email)
        hydrated: dict[MediaKind, list[Entity]] = {}
        for kind, entity_ids in references.items():
            found = await self._store.get_entities(kind, entity_ids)
            missing = [entity_id for entity_id in entity_ids if entity_id not in found]
            if missing:
                logger.debug(
                    "Skipping unresolved %s references %s in the list of %s",
                    kind.value,
                    missing,
                    email,
                )
            hydrated[kind] = [found[entity_id] for entity_id in entity_ids if entity_id in found]

        return UserList(
            email=email,
            movies=hydrated.get(MediaKind.MOVIE, []),
            series=hydrated.get(MediaKind.SERIES, []),
        )
