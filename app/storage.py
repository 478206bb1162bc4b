"""Storage port over the SQLAlchemy session factory."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import EntityGenre, EntityRecord, UserListItem, UserListRecord
from .models import Entity, EntityFilter, MediaKind
from .query import LOCAL_ORDERING, LOCAL_PAGE_SIZE, build_local_predicate

logger = logging.getLogger(__name__)


class CatalogStore:
    """Entity cache and list membership persistence.

    Every mutation is a single conditional statement (insert guarded by a
    unique key, or a keyed delete) so concurrent writers never overwrite each
    other's changes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_entity(self, kind: MediaKind, entity_id: int) -> Entity | None:
        async with self._session_factory() as session:
            record = await session.get(EntityRecord, (kind.value, entity_id))
            if record is None:
                return None
            return self._record_to_entity(record)

    async def get_entities(
        self, kind: MediaKind, entity_ids: Sequence[int]
    ) -> dict[int, Entity]:
        """Return the cached entities among ``entity_ids`` keyed by id."""

        if not entity_ids:
            return {}
        async with self._session_factory() as session:
            stmt = select(EntityRecord).where(
                EntityRecord.kind == kind.value,
                EntityRecord.entity_id.in_(list(entity_ids)),
            )
            result = await session.execute(stmt)
            records = result.scalars().all()
        entities: dict[int, Entity] = {}
        for record in records:
            entity = self._record_to_entity(record)
            if entity is not None:
                entities[entity.id] = entity
        return entities

    async def find_entities(
        self,
        kind: MediaKind,
        filter: EntityFilter,
        *,
        page_size: int = LOCAL_PAGE_SIZE,
    ) -> tuple[list[Entity], int]:
        """Return one page of matching entities and the total match count."""

        predicate = build_local_predicate(filter, kind)
        offset = (filter.page_number - 1) * page_size
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(EntityRecord).where(predicate)
            )
            stmt = (
                select(EntityRecord)
                .where(predicate)
                .order_by(*LOCAL_ORDERING)
                .offset(offset)
                .limit(page_size)
            )
            result = await session.execute(stmt)
            records = result.scalars().all()
        entities = [
            entity
            for entity in (self._record_to_entity(record) for record in records)
            if entity is not None
        ]
        return entities, int(total or 0)

    async def insert_entity_if_absent(self, entity: Entity) -> Entity:
        """Persist ``entity`` unless a row already exists; return the stored copy."""

        if not entity.is_complete:
            raise ValueError(f"Refusing to cache incomplete {entity.kind.value} {entity.id}")

        async with self._session_factory() as session:
            session.add(
                EntityRecord(
                    kind=entity.kind.value,
                    entity_id=entity.id,
                    title=entity.title,
                    search_title=entity.title.casefold(),
                    popularity=entity.popularity,
                    poster_path=entity.poster_path,
                    payload=entity.model_dump(mode="json"),
                )
            )
            session.add_all(
                EntityGenre(kind=entity.kind.value, entity_id=entity.id, genre_id=genre_id)
                for genre_id in dict.fromkeys(entity.genre_ids)
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(
                    "%s %s was cached concurrently; keeping the stored row",
                    entity.kind.value,
                    entity.id,
                )
            else:
                return entity

        stored = await self.get_entity(entity.kind, entity.id)
        return stored or entity

    async def list_exists(self, email: str) -> bool:
        async with self._session_factory() as session:
            return await session.get(UserListRecord, email) is not None

    async def ensure_list(self, email: str) -> bool:
        """Create the list row if needed; return ``True`` when it was created."""

        async with self._session_factory() as session:
            session.add(UserListRecord(email=email))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        return True

    async def add_list_item(self, email: str, kind: MediaKind, entity_id: int) -> bool:
        """Atomically add a reference; return ``False`` if it was already present."""

        async with self._session_factory() as session:
            session.add(UserListItem(email=email, kind=kind.value, entity_id=entity_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        return True

    async def remove_list_item(self, email: str, kind: MediaKind, entity_id: int) -> bool:
        """Atomically remove a reference; return ``False`` if it was not present."""

        async with self._session_factory() as session:
            result = await session.execute(
                delete(UserListItem).where(
                    UserListItem.email == email,
                    UserListItem.kind == kind.value,
                    UserListItem.entity_id == entity_id,
                )
            )
            await session.commit()
        return bool(result.rowcount)

    async def list_references(self, email: str) -> dict[MediaKind, list[int]]:
        """Return stored reference ids per kind in insertion order."""

        references: dict[MediaKind, list[int]] = {kind: [] for kind in MediaKind}
        async with self._session_factory() as session:
            stmt = (
                select(UserListItem.kind, UserListItem.entity_id)
                .where(UserListItem.email == email)
                .order_by(UserListItem.id)
            )
            result = await session.execute(stmt)
            rows: Iterable[tuple[str, int]] = result.all()
        for kind_value, entity_id in rows:
            try:
                kind = MediaKind(kind_value)
            except ValueError:
                logger.warning("Ignoring list item of unknown kind %s for %s", kind_value, email)
                continue
            references[kind].append(entity_id)
        return references

    @staticmethod
    def _record_to_entity(record: EntityRecord) -> Entity | None:
        try:
            return Entity.model_validate(record.payload)
        except ValidationError as exc:
            logger.warning(
                "Stored %s %s could not be validated: %s",
                record.kind,
                record.entity_id,
                exc,
            )
            return None
