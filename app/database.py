"""Async SQLAlchemy plumbing for the durable key-value medium."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

KV_TABLE = "kv_entries"


class Base(DeclarativeBase):
    """Declarative base with predictable constraint and index names."""

    metadata = MetaData(
        naming_convention={
            "ix": "ix_%(table_name)s_%(column_0_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


class Database:
    """Own the async engine and hand out sessions for the key-value tables."""

    def __init__(self, database_url: str, *, echo: bool = False):
        url = make_url(database_url)
        connect_args = {"timeout": 30} if url.get_backend_name() == "sqlite" else {}
        self._engine: AsyncEngine = create_async_engine(
            url, echo=echo, connect_args=connect_args
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create the key-value table and bring older layouts up to date."""

        # Imported for its side effect of registering the ORM tables.
        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            added = await connection.run_sync(self._apply_schema_migrations)
        if added:
            logger.info("Added columns %s to %s", ", ".join(added), KV_TABLE)

    @staticmethod
    def _apply_schema_migrations(sync_connection: Connection) -> list[str]:
        """Add ordering columns to a key-value table laid out without them."""

        inspector = inspect(sync_connection)
        if KV_TABLE not in inspector.get_table_names():
            return []

        existing = {column["name"] for column in inspector.get_columns(KV_TABLE)}
        migrations = (
            (
                "sequence",
                f"ALTER TABLE {KV_TABLE} ADD COLUMN sequence INTEGER DEFAULT 0",
                f"UPDATE {KV_TABLE} SET sequence = rowid WHERE sequence IS NULL OR sequence = 0",
            ),
            (
                "updated_at",
                f"ALTER TABLE {KV_TABLE} ADD COLUMN updated_at DATETIME",
                None,
            ),
        )

        added: list[str] = []
        for name, ddl, backfill in migrations:
            if name in existing:
                continue
            sync_connection.execute(text(ddl))
            if backfill:
                sync_connection.execute(text(backfill))
            added.append(name)
        return added

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session; callers commit explicitly."""

        async with self.session_factory() as session:
            yield session
