"""Pydantic models describing the canonical catalog payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

QualityTier = int | Literal["default"]


class Tag(BaseModel):
    """A genre or theme label in the viewer's language plus its stable name."""

    model_config = ConfigDict(frozen=True)

    local_name: str
    canonical_name: str


class DramaFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_new: bool = False
    is_hot: bool = False
    is_vip: bool = False


class Drama(BaseModel):
    """A catalog title, reconciled from whatever shape the upstream sent."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str = ""
    cover_url: str = ""
    synopsis: str = ""
    episode_count: int = Field(default=0, ge=0)
    popularity: int = 0
    tags: tuple[Tag, ...] = ()
    genre: str = ""
    release_year: int | None = None
    rating: float = 0.0
    flags: DramaFlags = Field(default_factory=DramaFlags)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    def display_title(self) -> str:
        """Return a human-friendly title for cards and history entries."""

        title = (self.title or "").strip()
        return title or self.id


class StreamVariant(BaseModel):
    """One playable rendition of an episode on a given CDN."""

    model_config = ConfigDict(frozen=True)

    cdn_id: str
    quality: QualityTier = "default"
    is_default: bool = False
    url: str = Field(min_length=1)

    @property
    def sort_quality(self) -> int:
        return self.quality if isinstance(self.quality, int) else 0


class CdnGroup(BaseModel):
    """Variants served from the same delivery origin."""

    model_config = ConfigDict(frozen=True)

    cdn_id: str
    is_default: bool = False
    variants: tuple[StreamVariant, ...] = ()

    @model_validator(mode="after")
    def _unique_quality_tiers(self) -> "CdnGroup":
        seen: set[QualityTier] = set()
        for variant in self.variants:
            if variant.quality in seen:
                raise ValueError(
                    f"CDN {self.cdn_id!r} lists quality {variant.quality!r} more than once"
                )
            seen.add(variant.quality)
        return self


class Episode(BaseModel):
    """A single playable unit of a drama, ordered by ``ordinal``."""

    model_config = ConfigDict(frozen=True)

    drama_id: str
    ordinal: int = Field(ge=0)
    display_name: str
    thumbnail: str = ""
    duration_seconds: float | None = None
    video_url: str | None = None
    cdn_groups: tuple[CdnGroup, ...] = ()
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def is_playable(self) -> bool:
        if self.video_url:
            return True
        return any(group.variants for group in self.cdn_groups)


class DramaDetail(BaseModel):
    """Result of the detail endpoint: a drama, its episodes, or both."""

    model_config = ConfigDict(frozen=True)

    drama: Drama | None = None
    episodes: tuple[Episode, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.drama is not None and bool(self.episodes)


class ProgressRecord(BaseModel):
    """Watch position for one drama plus the card fields captured when saved."""

    model_config = ConfigDict(frozen=True)

    drama_id: str = Field(min_length=1)
    episode_ordinal: int = Field(default=0, ge=0)
    episode_name: str = ""
    position_seconds: float = Field(default=0.0, ge=0)
    duration_seconds: float = Field(default=0.0, ge=0)
    total_episodes: int = Field(default=0, ge=0)
    title: str = ""
    cover_url: str = ""
    last_watched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="before")
    @classmethod
    def _clamp_position(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            position = float(data.get("position_seconds") or 0)
            duration = float(data.get("duration_seconds") or 0)
        except (TypeError, ValueError):
            return data
        if duration > 0 and position > duration:
            return {**data, "position_seconds": duration}
        return data

    @property
    def completion_ratio(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.position_seconds / self.duration_seconds

    @property
    def progress_percent(self) -> int:
        """Return the watched share as a whole percentage between 0 and 100."""

        return min(100, round(self.completion_ratio * 100))


class FavoriteEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    drama_id: str = Field(min_length=1)
    title: str = ""
    cover_url: str = ""
    episode_count: int = Field(default=0, ge=0)
    added_at: datetime


class PlaybackPreferences(BaseModel):
    """Per-viewer playback settings persisted between sessions."""

    video_quality: int = 720
    auto_play: bool = True
    auto_next: bool = True
