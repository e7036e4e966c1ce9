"""Time-boxed response cache layered over a key-value medium."""

from __future__ import annotations

import logging
from typing import Any

from .storage import KeyValueStore
from .utils import Clock, system_clock

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"


class TTLCache:
    """Keyed payload cache that never serves an entry older than ``ttl_seconds``.

    Entries are stored as ``{"stored_at": ..., "payload": ...}`` under a
    common prefix so the whole cache can be dropped without touching other
    data sharing the medium. Expired entries are left in place and replaced
    by the next ``put`` for the same key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: float = 300,
        clock: Clock = system_clock,
        prefix: str = CACHE_PREFIX,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._store = store
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._prefix = prefix

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _storage_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any | None:
        """Return the cached payload, or ``None`` on a miss or an expired entry."""

        entry = await self._store.get(self._storage_key(key))
        if not isinstance(entry, dict) or "stored_at" not in entry:
            logger.debug("Cache miss for %s", key)
            return None
        try:
            age = self._clock() - float(entry["stored_at"])
        except (TypeError, ValueError):
            return None
        if age >= self._ttl:
            logger.debug("Cache entry for %s expired %.1fs ago", key, age - self._ttl)
            return None
        logger.debug("Cache hit for %s", key)
        return entry.get("payload")

    async def put(self, key: str, payload: Any) -> None:
        """Store ``payload``; on a refused write purge the cache and retry once."""

        entry = {"stored_at": self._clock(), "payload": payload}
        storage_key = self._storage_key(key)
        if await self._store.set(storage_key, entry):
            return
        logger.warning("Cache write for %s refused; purging cache and retrying", key)
        await self.invalidate_all()
        if not await self._store.set(storage_key, entry):
            logger.warning("Cache write for %s refused after purge; skipping", key)

    async def invalidate_all(self) -> int:
        """Remove every cache entry and return how many were dropped."""

        keys = await self._store.list_keys(self._prefix)
        for storage_key in keys:
            await self._store.remove(storage_key)
        if keys:
            logger.info("Invalidated %d cached responses", len(keys))
        return len(keys)
