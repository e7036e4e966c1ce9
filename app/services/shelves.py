"""Group discovery listings into per-tag shelves."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..models import Drama
from .aggregator import dedupe_dramas
from .catalog_client import CatalogClient

logger = logging.getLogger(__name__)

DEFAULT_SKIP_TAGS: frozenset[str] = frozenset({"modern", "bg"})
PRIORITY_TAGS: tuple[str, ...] = (
    "Romance",
    "CEO",
    "Revenge",
    "Family",
    "Comedy",
    "Fantasy",
    "Action",
)
DISCOVERY_FACETS: tuple[str, ...] = ("for-you", "trending", "latest")


@dataclass(slots=True)
class TagShelf:
    canonical_name: str
    local_name: str
    dramas: list[Drama] = field(default_factory=list)


def group_by_tag(
    dramas: Iterable[Drama],
    *,
    skip: Iterable[str] = DEFAULT_SKIP_TAGS,
    priority: Sequence[str] = PRIORITY_TAGS,
    min_size: int = 2,
) -> list[TagShelf]:
    """Bucket dramas by canonical tag name.

    Priority tags come first in the given order, the rest follow by size
    (largest first) and then by the order in which the tag was first seen.
    """

    skipped = {name.casefold() for name in skip}
    shelves: dict[str, TagShelf] = {}
    for drama in dedupe_dramas(dramas):
        for tag in drama.tags:
            marker = tag.canonical_name.casefold()
            if marker in skipped:
                continue
            shelf = shelves.get(marker)
            if shelf is None:
                shelf = shelves[marker] = TagShelf(
                    canonical_name=tag.canonical_name, local_name=tag.local_name
                )
            shelf.dramas.append(drama)

    ranking = {name.casefold(): index for index, name in enumerate(priority)}
    first_seen = {marker: index for index, marker in enumerate(shelves)}

    def sort_key(marker: str) -> tuple[int, int, int]:
        if marker in ranking:
            return (0, ranking[marker], 0)
        return (1, -len(shelves[marker].dramas), first_seen[marker])

    return [
        shelves[marker]
        for marker in sorted(shelves, key=sort_key)
        if len(shelves[marker].dramas) >= min_size
    ]


async def build_discovery_shelves(
    client: CatalogClient,
    *,
    facets: Sequence[str] = DISCOVERY_FACETS,
    min_size: int = 2,
) -> list[TagShelf]:
    """Fetch the discovery listings concurrently and group them by tag."""

    results = await asyncio.gather(
        *(client.shelf(facet) for facet in facets), return_exceptions=True
    )
    combined: list[Drama] = []
    for facet, result in zip(facets, results):
        if isinstance(result, Exception):
            logger.warning("Skipping %s listing for tag shelves: %s", facet, result)
            continue
        if isinstance(result, BaseException):
            raise result
        combined.extend(result)
    return group_by_tag(combined, min_size=min_size)
