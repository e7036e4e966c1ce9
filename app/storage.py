"""Key-value media used by the response cache and the viewer stores."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from sqlalchemy import Insert, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .database import Database
from .db_models import KeyValueEntry, utcnow

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Asynchronous, size-bounded store of JSON-serialisable values."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> bool:
        """Persist ``value``; return ``False`` when the medium refuses the write."""
        ...

    async def remove(self, key: str) -> None: ...

    async def list_keys(self, prefix: str = "") -> list[str]:
        """Return keys starting with ``prefix`` in first-insertion order."""
        ...


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class MemoryKeyValueStore:
    """In-process medium with a byte budget, mirroring browser local storage."""

    def __init__(self, capacity_bytes: int = 5 * 1024 * 1024) -> None:
        self._capacity = capacity_bytes
        self._entries: dict[str, str] = {}
        self._size = 0

    @property
    def used_bytes(self) -> int:
        return self._size

    @property
    def capacity_bytes(self) -> int:
        return self._capacity

    @staticmethod
    def _entry_size(key: str, encoded: str) -> int:
        return len(key.encode("utf-8")) + len(encoded.encode("utf-8"))

    async def get(self, key: str) -> Any | None:
        encoded = self._entries.get(key)
        if encoded is None:
            return None
        return json.loads(encoded)

    async def set(self, key: str, value: Any) -> bool:
        try:
            encoded = _encode(value)
        except (TypeError, ValueError):
            logger.warning("Refusing to store non-serialisable value under %s", key)
            return False
        previous = self._entries.get(key)
        released = self._entry_size(key, previous) if previous is not None else 0
        required = self._size - released + self._entry_size(key, encoded)
        if required > self._capacity:
            return False
        # Re-assigning an existing key keeps its dict position.
        self._entries[key] = encoded
        self._size = required
        return True

    async def remove(self, key: str) -> None:
        encoded = self._entries.pop(key, None)
        if encoded is not None:
            self._size -= self._entry_size(key, encoded)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._entries if key.startswith(prefix)]


class DatabaseKeyValueStore:
    """Durable medium persisting entries through SQLAlchemy."""

    def __init__(self, database: Database) -> None:
        self._database = database

    @staticmethod
    def _upsert(session: AsyncSession, key: str, value: Any) -> Insert:
        """Insert ``key`` at the end of the sequence, or overwrite it in place.

        A single statement so that writers racing on a new key both succeed
        and the last one wins.
        """

        dialect = session.get_bind().dialect.name
        insert = postgresql_insert if dialect == "postgresql" else sqlite_insert
        next_sequence = select(
            func.coalesce(func.max(KeyValueEntry.sequence), 0) + 1
        ).scalar_subquery()
        statement = insert(KeyValueEntry).values(
            key=key, value=value, sequence=next_sequence, updated_at=utcnow()
        )
        return statement.on_conflict_do_update(
            index_elements=[KeyValueEntry.key],
            set_={"value": statement.excluded.value, "updated_at": statement.excluded.updated_at},
        )

    async def get(self, key: str) -> Any | None:
        async with self._database.session() as session:
            entry = await session.get(KeyValueEntry, key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: Any) -> bool:
        try:
            _encode(value)
        except (TypeError, ValueError):
            logger.warning("Refusing to store non-serialisable value under %s", key)
            return False
        async with self._database.session() as session:
            try:
                await session.execute(self._upsert(session, key, value))
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.warning("Key-value write for %s failed: %s", key, exc)
                return False
        return True

    async def remove(self, key: str) -> None:
        async with self._database.session() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                return
            await session.delete(entry)
            await session.commit()

    async def list_keys(self, prefix: str = "") -> list[str]:
        statement = select(KeyValueEntry.key).order_by(KeyValueEntry.sequence)
        if prefix:
            statement = statement.where(KeyValueEntry.key.startswith(prefix, autoescape=True))
        async with self._database.session() as session:
            result = await session.scalars(statement)
            return list(result)
