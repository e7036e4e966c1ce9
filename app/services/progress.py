"""Per-title watch progress persisted across sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from pydantic import ValidationError

from ..models import Drama, Episode, ProgressRecord
from ..storage import KeyValueStore
from ..utils import Clock, same_id, system_clock, to_datetime

logger = logging.getLogger(__name__)

PROGRESS_KEY = "progress:history"


class ProgressState(str, Enum):
    UNSTARTED = "unstarted"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class ProgressChange:
    """Notification emitted after every mutation of the progress history."""

    action: str
    drama_id: str | None = None


ProgressListener = Callable[[ProgressChange], None]


class ProgressStore:
    """Keep at most ``limit`` progress records, most recently watched first.

    The whole history is written as a single value so every mutation is
    all-or-nothing. When the medium refuses a write, the least recently
    watched records are dropped one at a time until the write fits.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Clock = system_clock,
        limit: int = 50,
        completion_threshold: float = 0.95,
        key: str = PROGRESS_KEY,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._store = store
        self._clock = clock
        self._limit = limit
        self._threshold = completion_threshold
        self._key = key
        self._listeners: list[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unregisters it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, action: str, drama_id: str | None = None) -> None:
        change = ProgressChange(action=action, drama_id=drama_id)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:  # pragma: no cover
                logger.exception("Progress listener failed for %s", change)

    async def _load(self) -> list[ProgressRecord]:
        payload = await self._store.get(self._key)
        if not isinstance(payload, list):
            return []
        records: list[ProgressRecord] = []
        for entry in payload:
            try:
                records.append(ProgressRecord.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping unreadable progress entry: %r", entry)
        records.sort(key=lambda record: record.last_watched_at, reverse=True)
        return records

    async def _persist(self, records: list[ProgressRecord]) -> bool:
        """Write ``records``, evicting the oldest entries if the medium is full.

        Returns ``False`` when not even the newest record fits, in which case
        the previously stored history is left untouched.
        """

        candidate = list(records)
        while True:
            payload = [record.model_dump(mode="json") for record in candidate]
            if await self._store.set(self._key, payload):
                return True
            if len(candidate) <= 1:
                logger.warning("Progress history could not be persisted; keeping previous state")
                return False
            evicted = candidate.pop()
            logger.warning(
                "Progress storage full; evicting least recently watched %s", evicted.drama_id
            )

    def _now(self) -> datetime:
        return to_datetime(self._clock())

    def _is_complete(self, record: ProgressRecord) -> bool:
        return record.completion_ratio >= self._threshold

    async def save(self, record: ProgressRecord) -> ProgressRecord:
        """Upsert ``record`` as the most recently watched entry."""

        stamped = ProgressRecord.model_validate(
            {**record.model_dump(), "last_watched_at": self._now()}
        )
        records = [
            existing
            for existing in await self._load()
            if not same_id(existing.drama_id, stamped.drama_id)
        ]
        records.insert(0, stamped)
        if len(records) > self._limit:
            for evicted in records[self._limit:]:
                logger.info("Evicting progress for %s beyond history limit", evicted.drama_id)
            records = records[: self._limit]
        if await self._persist(records):
            self._notify("save", stamped.drama_id)
        return stamped

    async def save_playback(
        self,
        drama: Drama,
        episode: Episode,
        *,
        position_seconds: float,
        duration_seconds: float | None = None,
        total_episodes: int | None = None,
    ) -> ProgressRecord:
        """Save progress for ``episode`` with a snapshot of the drama's card fields."""

        duration = duration_seconds if duration_seconds is not None else episode.duration_seconds
        record = ProgressRecord(
            drama_id=drama.id,
            episode_ordinal=episode.ordinal,
            episode_name=episode.display_name,
            position_seconds=max(0.0, position_seconds),
            duration_seconds=max(0.0, duration or 0.0),
            total_episodes=total_episodes if total_episodes is not None else drama.episode_count,
            title=drama.display_title(),
            cover_url=drama.cover_url,
        )
        return await self.save(record)

    async def update_progress(
        self, drama_id: str, position_seconds: float, duration_seconds: float
    ) -> ProgressRecord | None:
        """Move the playhead of an existing record; no-op when none exists."""

        records = await self._load()
        for index, existing in enumerate(records):
            if same_id(existing.drama_id, drama_id):
                break
        else:
            return None

        updated = ProgressRecord.model_validate(
            {
                **existing.model_dump(),
                "position_seconds": max(0.0, position_seconds),
                "duration_seconds": max(0.0, duration_seconds),
                "last_watched_at": self._now(),
            }
        )
        del records[index]
        records.insert(0, updated)
        if await self._persist(records):
            self._notify("update", updated.drama_id)
        return updated

    async def get(self, drama_id: str) -> ProgressRecord | None:
        for record in await self._load():
            if same_id(record.drama_id, drama_id):
                return record
        return None

    async def history(self) -> list[ProgressRecord]:
        """Return every record, most recently watched first."""

        return await self._load()

    async def get_continue_watching(self, limit: int = 10) -> list[ProgressRecord]:
        """Return started, unfinished titles, most recently watched first."""

        if limit <= 0:
            return []
        pending = [
            record
            for record in await self._load()
            if record.position_seconds > 0 and not self._is_complete(record)
        ]
        return pending[:limit]

    async def status(self, drama_id: str) -> ProgressState:
        record = await self.get(drama_id)
        if record is None:
            return ProgressState.UNSTARTED
        if self._is_complete(record):
            return ProgressState.COMPLETED
        return ProgressState.IN_PROGRESS

    async def remove(self, drama_id: str) -> bool:
        records = await self._load()
        remaining = [record for record in records if not same_id(record.drama_id, drama_id)]
        if len(remaining) == len(records):
            return False
        if not await self._persist(remaining):
            return False
        self._notify("remove", str(drama_id))
        return True

    async def clear(self) -> None:
        await self._store.remove(self._key)
        self._notify("clear")
