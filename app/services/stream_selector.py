"""Pick a playable stream URL out of an episode's CDN descriptor."""

from __future__ import annotations

from typing import Sequence

from ..config import DEFAULT_QUALITY_LADDER
from ..models import CdnGroup, Episode, QualityTier, StreamVariant


def select_cdn_group(episode: Episode) -> CdnGroup | None:
    """Return the CDN group flagged default, else the first group."""

    for group in episode.cdn_groups:
        if group.is_default:
            return group
    return episode.cdn_groups[0] if episode.cdn_groups else None


def _by_quality(variants: Sequence[StreamVariant], quality: QualityTier) -> StreamVariant | None:
    for variant in variants:
        if variant.quality == quality:
            return variant
    return None


def select_variant(
    episode: Episode,
    preferred_quality: QualityTier | None = None,
    *,
    ladder: Sequence[int] = DEFAULT_QUALITY_LADDER,
) -> StreamVariant | None:
    """Choose a variant from the episode's preferred CDN group.

    Order: the exact preferred quality, then the first ladder rung present,
    then the variant the CDN marks default, then the highest quality.
    """

    group = select_cdn_group(episode)
    if group is None or not group.variants:
        return None

    if preferred_quality is not None:
        chosen = _by_quality(group.variants, preferred_quality)
        if chosen is not None:
            return chosen

    for rung in ladder:
        chosen = _by_quality(group.variants, rung)
        if chosen is not None:
            return chosen

    for variant in group.variants:
        if variant.is_default:
            return variant

    return sorted(group.variants, key=lambda variant: variant.sort_quality, reverse=True)[0]


def select_best_url(
    episode: Episode,
    preferred_quality: QualityTier | None = None,
    *,
    ladder: Sequence[int] = DEFAULT_QUALITY_LADDER,
) -> str | None:
    """Return the URL to play, or ``None`` when the episode is unplayable.

    A direct URL on the episode wins over any CDN-based choice.
    """

    if episode.video_url:
        return episode.video_url
    variant = select_variant(episode, preferred_quality, ladder=ladder)
    return variant.url if variant is not None else None


def available_qualities(episode: Episode) -> list[int]:
    """Return the numeric quality tiers of the chosen CDN group, highest first."""

    group = select_cdn_group(episode)
    if group is None:
        return []
    tiers = {variant.quality for variant in group.variants if isinstance(variant.quality, int)}
    return sorted(tiers, reverse=True)
