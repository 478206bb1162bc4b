"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class EntityRecord(Base):
    """A provider entity cached locally, keyed by kind and provider id."""

    __tablename__ = "entities"
    __table_args__ = (Index("ix_entities_kind_popularity", "kind", "popularity"),)

    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    entity_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(Text, default="")
    search_title: Mapped[str] = mapped_column(Text, default="")
    popularity: Mapped[float] = mapped_column(Float, default=0.0)
    poster_path: Mapped[str] = mapped_column(String(255))
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )


class EntityGenre(Base):
    """Genre membership index used by local genre filtering."""

    __tablename__ = "entity_genres"

    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    entity_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    genre_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)


class UserListRecord(Base):
    """Owner row of a personal list; created on first add and never deleted."""

    __tablename__ = "user_lists"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )


class UserListItem(Base):
    """A single list membership; the autoincrement id preserves insertion order."""

    __tablename__ = "user_list_items"
    __table_args__ = (
        UniqueConstraint("email", "kind", "entity_id", name="uq_list_item"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(320), ForeignKey("user_lists.email", ondelete="CASCADE")
    )
    kind: Mapped[str] = mapped_column(String(16))
    entity_id: Mapped[int] = mapped_column(Integer)
    added_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
