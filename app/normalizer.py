"""Reconcile upstream catalog payloads into canonical dramas and episodes.

Upstream providers disagree on key names, nesting and value types. Each
canonical attribute is resolved through an ordered tuple of candidate keys;
the first candidate holding a non-empty value wins. The order of every tuple
is part of the contract because providers reuse the same key names with
different meanings.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from .models import CdnGroup, Drama, DramaDetail, DramaFlags, Episode, StreamVariant, Tag
from .utils import (
    coerce_bool,
    coerce_float,
    coerce_int,
    first_present,
    parse_year,
)

logger = logging.getLogger(__name__)


DRAMA_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("bookId", "id", "dramaId", "book_id"),
    "title": ("bookName", "name", "title"),
    "cover_url": ("coverWap", "cover", "coverUrl", "bookCover", "poster"),
    "synopsis": ("description", "synopsis", "intro", "introduction"),
    "episode_count": ("chapterCount", "episodeCount", "totalEpisodes", "chapter_count"),
    "popularity": ("playCount", "views", "viewCount", "hotCount"),
    "tags": ("tagV3s", "tags", "tagNames", "labels"),
    "genre": ("genre", "category", "typeName"),
    "release_year": ("year", "releaseYear", "shelfTime"),
    "rating": ("rating", "score"),
    "is_new": ("isNew", "new"),
    "is_hot": ("isHot", "hot"),
    "is_vip": ("isVip", "vip"),
}

TAG_FIELDS: dict[str, tuple[str, ...]] = {
    "local_name": ("tagName", "name", "tag", "label"),
    "canonical_name": ("tagEnName", "enName", "name", "tagName"),
}

EPISODE_FIELDS: dict[str, tuple[str, ...]] = {
    "display_name": ("chapterName", "name", "title", "episodeName"),
    "thumbnail": ("thumbnail", "chapterImg", "coverUrl", "cover"),
    "duration_seconds": ("duration", "durationSeconds", "videoDuration"),
    "video_url": ("videoUrl", "video_url", "url"),
    "cdn_groups": ("cdnList", "cdns"),
}

CDN_FIELDS: dict[str, tuple[str, ...]] = {
    "cdn_id": ("cdnDomain", "cdnId", "domain", "name"),
    "is_default": ("isDefault", "default"),
    "variants": ("videoPathList", "videos", "qualities"),
}

VARIANT_FIELDS: dict[str, tuple[str, ...]] = {
    "url": ("videoPath", "url", "path"),
    "quality": ("quality", "definition", "resolution"),
    "is_default": ("isDefault", "default"),
}

# Keys under which list endpoints nest their items, checked in order.
LIST_CONTAINER_KEYS: tuple[str, ...] = ("list", "records", "items", "books", "result")
# Keys under which grouped (column/shelf) endpoints nest each group's items.
GROUP_ITEM_KEYS: tuple[str, ...] = ("bookList", "dramas", "list", "items", "books")
GROUP_CONTAINER_KEYS: tuple[str, ...] = ("columnVoList", "columns", "groups", "sections")

DETAIL_DRAMA_KEYS: tuple[str, ...] = ("drama", "book", "bookInfo")
DETAIL_EPISODE_KEYS: tuple[str, ...] = ("chapters", "chapterList", "episodes", "episodeList")

EPISODE_NAME_TEMPLATE = "Episode {number}"


def _resolve(data: Mapping[str, Any], table: Mapping[str, tuple[str, ...]], field: str) -> Any:
    return first_present(data, table[field])


def _has_identity(data: Mapping[str, Any]) -> bool:
    return _resolve(data, DRAMA_FIELDS, "id") is not None


def _looks_like_drama(data: Mapping[str, Any]) -> bool:
    return _has_identity(data) or _resolve(data, DRAMA_FIELDS, "title") is not None


def _synthetic_id(data: Mapping[str, Any]) -> str:
    """Derive a stable identifier for payloads that arrive without one."""

    encoded = json.dumps(data, sort_keys=True, default=str, ensure_ascii=False)
    digest = hashlib.sha1(encoded.encode("utf-8")).hexdigest()
    return f"anon-{digest[:12]}"


def normalize_tags(value: Any) -> tuple[Tag, ...]:
    """Return ordered tags deduplicated by canonical name."""

    if isinstance(value, str):
        entries: Iterable[Any] = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple)):
        entries = value
    else:
        return ()

    tags: list[Tag] = []
    seen: set[str] = set()
    for entry in entries:
        if isinstance(entry, str):
            local = canonical = entry.strip()
        elif isinstance(entry, Mapping):
            local = str(_resolve(entry, TAG_FIELDS, "local_name") or "").strip()
            canonical = str(_resolve(entry, TAG_FIELDS, "canonical_name") or "").strip()
            local = local or canonical
            canonical = canonical or local
        else:
            continue
        if not canonical:
            continue
        marker = canonical.casefold()
        if marker in seen:
            continue
        seen.add(marker)
        tags.append(Tag(local_name=local, canonical_name=canonical))
    return tuple(tags)


def _unwrap_single(raw: Any) -> Mapping[str, Any] | None:
    """Find the first drama-shaped mapping inside an envelope or array."""

    if isinstance(raw, Mapping):
        if _looks_like_drama(raw):
            return raw
        data = raw.get("data")
        if data is not None and data is not raw:
            return _unwrap_single(data)
        for key in LIST_CONTAINER_KEYS:
            nested = raw.get(key)
            if isinstance(nested, list):
                return _unwrap_single(nested)
        return raw if raw else None
    if isinstance(raw, (list, tuple)):
        for entry in raw:
            found = _unwrap_single(entry)
            if found is not None:
                return found
    return None


def normalize(raw: Any, *, fallback_id: str | None = None) -> Drama | None:
    """Map any supported upstream drama shape to a :class:`Drama`.

    Envelopes such as ``{"data": {"list": [...]}}`` and bare arrays resolve
    to their first drama-shaped entry. ``None`` is returned, never raised,
    for nullish or unrecognisable input.
    """

    if raw is None:
        return None
    data = _unwrap_single(raw)
    if not data:
        return None

    raw_id = _resolve(data, DRAMA_FIELDS, "id")
    if raw_id is not None and str(raw_id).strip():
        drama_id = str(raw_id).strip()
    elif fallback_id:
        drama_id = str(fallback_id)
    else:
        drama_id = _synthetic_id(data)

    try:
        return Drama(
            id=drama_id,
            title=str(_resolve(data, DRAMA_FIELDS, "title") or ""),
            cover_url=str(_resolve(data, DRAMA_FIELDS, "cover_url") or ""),
            synopsis=str(_resolve(data, DRAMA_FIELDS, "synopsis") or ""),
            episode_count=max(0, coerce_int(_resolve(data, DRAMA_FIELDS, "episode_count"))),
            popularity=coerce_int(_resolve(data, DRAMA_FIELDS, "popularity")),
            tags=normalize_tags(_resolve(data, DRAMA_FIELDS, "tags")),
            genre=str(_resolve(data, DRAMA_FIELDS, "genre") or ""),
            release_year=parse_year(_resolve(data, DRAMA_FIELDS, "release_year")),
            rating=coerce_float(_resolve(data, DRAMA_FIELDS, "rating")),
            flags=DramaFlags(
                is_new=coerce_bool(_resolve(data, DRAMA_FIELDS, "is_new")),
                is_hot=coerce_bool(_resolve(data, DRAMA_FIELDS, "is_hot")),
                is_vip=coerce_bool(_resolve(data, DRAMA_FIELDS, "is_vip")),
            ),
            raw=dict(data),
        )
    except ValidationError:  # pragma: no cover
        logger.warning("Discarding drama payload that failed validation: %r", data)
        return None


def _list_items(raw: Any) -> list[Any]:
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if not isinstance(raw, Mapping):
        return []
    data = raw.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        for key in LIST_CONTAINER_KEYS:
            nested = data.get(key)
            if isinstance(nested, list):
                return nested
    for key in LIST_CONTAINER_KEYS:
        nested = raw.get(key)
        if isinstance(nested, list):
            return nested
    return []


def normalize_list(raw: Any) -> list[Drama]:
    """Normalise a list response; unknown envelopes yield an empty list."""

    dramas: list[Drama] = []
    for entry in _list_items(raw):
        if not isinstance(entry, Mapping):
            continue
        drama = normalize(entry)
        if drama is not None:
            dramas.append(drama)
    return dramas


def _group_entries(raw: Any) -> list[Any]:
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if not isinstance(raw, Mapping):
        return []
    for key in GROUP_CONTAINER_KEYS:
        nested = raw.get(key)
        if isinstance(nested, list):
            return nested
    data = raw.get("data")
    if data is not None:
        return _group_entries(data)
    return _list_items(raw)


def normalize_grouped_list(raw: Any) -> list[Drama]:
    """Flatten category groupings (columns of books) into one drama list."""

    dramas: list[Drama] = []
    seen: set[str] = set()

    def _add(entry: Mapping[str, Any]) -> None:
        drama = normalize(entry)
        if drama is None or drama.id in seen:
            return
        seen.add(drama.id)
        dramas.append(drama)

    for group in _group_entries(raw):
        if not isinstance(group, Mapping):
            continue
        nested = first_present(group, GROUP_ITEM_KEYS)
        if isinstance(nested, list):
            for entry in nested:
                if isinstance(entry, Mapping):
                    _add(entry)
        elif _has_identity(group):
            _add(group)
    return dramas


def _normalize_quality(value: Any) -> int | str:
    if isinstance(value, bool) or value is None:
        return "default"
    if isinstance(value, float) and not math.isfinite(value):
        return "default"
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else "default"
    if isinstance(value, str):
        digits = value.strip().lower().rstrip("p")
        if digits.isdigit() and int(digits) > 0:
            return int(digits)
    return "default"


def _normalize_cdn_groups(value: Any) -> tuple[CdnGroup, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    groups: list[CdnGroup] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, Mapping):
            continue
        cdn_id = str(_resolve(entry, CDN_FIELDS, "cdn_id") or f"cdn-{index}")
        variants: list[StreamVariant] = []
        seen_tiers: set[int | str] = set()
        raw_variants = _resolve(entry, CDN_FIELDS, "variants")
        for variant in raw_variants if isinstance(raw_variants, list) else []:
            if not isinstance(variant, Mapping):
                continue
            url = _resolve(variant, VARIANT_FIELDS, "url")
            if not isinstance(url, str) or not url.strip():
                continue
            quality = _normalize_quality(_resolve(variant, VARIANT_FIELDS, "quality"))
            if quality in seen_tiers:
                continue
            seen_tiers.add(quality)
            variants.append(
                StreamVariant(
                    cdn_id=cdn_id,
                    quality=quality,
                    is_default=coerce_bool(_resolve(variant, VARIANT_FIELDS, "is_default")),
                    url=url.strip(),
                )
            )
        groups.append(
            CdnGroup(
                cdn_id=cdn_id,
                is_default=coerce_bool(_resolve(entry, CDN_FIELDS, "is_default")),
                variants=tuple(variants),
            )
        )
    return tuple(groups)


def normalize_episode(raw: Any, ordinal: int, drama_id: str) -> Episode | None:
    """Normalise one episode entry; a bare string is treated as its URL."""

    if isinstance(raw, str):
        url = raw.strip()
        if not url:
            return None
        return Episode(
            drama_id=drama_id,
            ordinal=ordinal,
            display_name=EPISODE_NAME_TEMPLATE.format(number=ordinal + 1),
            video_url=url,
            raw={"url": url},
        )
    if not isinstance(raw, Mapping):
        return None

    name = _resolve(raw, EPISODE_FIELDS, "display_name")
    duration = coerce_float(_resolve(raw, EPISODE_FIELDS, "duration_seconds"))
    video_url = _resolve(raw, EPISODE_FIELDS, "video_url")
    return Episode(
        drama_id=drama_id,
        ordinal=ordinal,
        display_name=str(name) if name else EPISODE_NAME_TEMPLATE.format(number=ordinal + 1),
        thumbnail=str(_resolve(raw, EPISODE_FIELDS, "thumbnail") or ""),
        duration_seconds=duration if duration > 0 else None,
        video_url=video_url.strip() if isinstance(video_url, str) and video_url.strip() else None,
        cdn_groups=_normalize_cdn_groups(_resolve(raw, EPISODE_FIELDS, "cdn_groups")),
        raw=dict(raw),
    )


def _episode_items(raw: Any) -> list[Any]:
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if not isinstance(raw, Mapping):
        return []
    nested = first_present(raw, DETAIL_EPISODE_KEYS)
    if isinstance(nested, list):
        return nested
    data = raw.get("data")
    if data is not None:
        return _episode_items(data)
    return _list_items(raw)


def normalize_episodes(raw: Any, drama_id: str) -> list[Episode]:
    """Normalise an episode list, assigning dense ordinals by list position."""

    episodes: list[Episode] = []
    for entry in _episode_items(raw):
        episode = normalize_episode(entry, len(episodes), drama_id)
        if episode is not None:
            episodes.append(episode)
    return episodes


def normalize_detail(raw: Any, drama_id: str) -> DramaDetail:
    """Split a detail payload into its drama and its episodes.

    Handles ``{drama, chapters}`` pairs, ``data`` envelopes around either,
    chapter-only payloads and bare drama objects.
    """

    if raw is None:
        return DramaDetail()
    payload: Any = raw
    if isinstance(payload, Mapping) and not _looks_like_drama(payload):
        data = payload.get("data")
        if isinstance(data, (Mapping, list)) and not any(
            key in payload for key in DETAIL_DRAMA_KEYS + DETAIL_EPISODE_KEYS
        ):
            payload = data

    if isinstance(payload, list):
        return DramaDetail(episodes=tuple(normalize_episodes(payload, drama_id)))
    if not isinstance(payload, Mapping):
        return DramaDetail()

    drama_payload = first_present(payload, DETAIL_DRAMA_KEYS)
    episodes_payload = first_present(payload, DETAIL_EPISODE_KEYS)
    if drama_payload is None and _looks_like_drama(payload):
        drama_payload = payload

    drama = None
    if isinstance(drama_payload, Mapping) and _looks_like_drama(drama_payload):
        drama = normalize(drama_payload, fallback_id=drama_id)
    episodes = (
        normalize_episodes(episodes_payload, drama_id)
        if isinstance(episodes_payload, list)
        else []
    )
    return DramaDetail(drama=drama, episodes=tuple(episodes))


def normalize_keywords(raw: Any) -> list[str]:
    """Normalise popular-search payloads of strings or keyword objects."""

    keywords: list[str] = []
    for entry in _list_items(raw):
        if isinstance(entry, str):
            keyword = entry.strip()
        elif isinstance(entry, Mapping):
            keyword = str(first_present(entry, ("keyword", "name", "title", "bookName")) or "").strip()
        else:
            continue
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords
