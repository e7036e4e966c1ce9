"""Viewer favorites and playback preferences."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from ..models import Drama, FavoriteEntry, PlaybackPreferences
from ..storage import KeyValueStore
from ..utils import Clock, same_id, system_clock, to_datetime

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favorites:list"
PREFERENCES_KEY = "settings:playback"


class FavoritesStore:
    """Saved dramas, most recently added first."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Clock = system_clock,
        key: str = FAVORITES_KEY,
    ) -> None:
        self._store = store
        self._clock = clock
        self._key = key

    async def list(self) -> list[FavoriteEntry]:
        payload = await self._store.get(self._key)
        if not isinstance(payload, list):
            return []
        entries: list[FavoriteEntry] = []
        for entry in payload:
            try:
                entries.append(FavoriteEntry.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping unreadable favorite entry: %r", entry)
        return entries

    async def _write(self, entries: list[FavoriteEntry]) -> bool:
        payload = [entry.model_dump(mode="json") for entry in entries]
        if await self._store.set(self._key, payload):
            return True
        logger.warning("Favorites could not be persisted; keeping previous list")
        return False

    async def is_favorite(self, drama_id: str) -> bool:
        return any(same_id(entry.drama_id, drama_id) for entry in await self.list())

    async def add(self, drama: Drama) -> bool:
        """Add ``drama``; return whether the favorites list now contains it."""

        entries = await self.list()
        if any(same_id(entry.drama_id, drama.id) for entry in entries):
            return True
        entry = FavoriteEntry(
            drama_id=drama.id,
            title=drama.display_title(),
            cover_url=drama.cover_url,
            episode_count=drama.episode_count,
            added_at=to_datetime(self._clock()),
        )
        return await self._write([entry, *entries])

    async def remove(self, drama_id: str) -> bool:
        entries = await self.list()
        remaining = [entry for entry in entries if not same_id(entry.drama_id, drama_id)]
        if len(remaining) == len(entries):
            return False
        return await self._write(remaining)

    async def toggle(self, drama: Drama) -> bool:
        """Flip the favorite flag for ``drama`` and return the new state."""

        if await self.is_favorite(drama.id):
            await self.remove(drama.id)
            return False
        return await self.add(drama)

    async def clear(self) -> None:
        await self._store.remove(self._key)


class PreferencesStore:
    """Playback preferences with defaults for missing or unreadable data."""

    def __init__(self, store: KeyValueStore, *, key: str = PREFERENCES_KEY) -> None:
        self._store = store
        self._key = key

    async def get(self) -> PlaybackPreferences:
        payload = await self._store.get(self._key)
        if not isinstance(payload, dict):
            return PlaybackPreferences()
        try:
            return PlaybackPreferences.model_validate(payload)
        except ValidationError:
            logger.warning("Ignoring unreadable playback preferences")
            return PlaybackPreferences()

    async def update(self, changes: Mapping[str, Any]) -> PlaybackPreferences:
        """Merge ``changes`` into the stored preferences and persist them."""

        current = await self.get()
        merged = PlaybackPreferences.model_validate({**current.model_dump(), **changes})
        if not await self._store.set(self._key, merged.model_dump(mode="json")):
            logger.warning("Playback preferences could not be persisted")
        return merged
