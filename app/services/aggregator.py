"""Concurrent multi-page shelf aggregation."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from ..models import Drama

logger = logging.getLogger(__name__)

PageFetcher = Callable[[int], Awaitable[list[Drama]]]


def dedupe_dramas(dramas: Iterable[Drama]) -> list[Drama]:
    """Drop repeated dramas, keeping the first occurrence of each id."""

    seen: set[str] = set()
    unique: list[Drama] = []
    for drama in dramas:
        if drama.id in seen:
            continue
        seen.add(drama.id)
        unique.append(drama)
    return unique


async def aggregate_pages(fetch_page: PageFetcher, pages: int) -> list[Drama]:
    """Fetch pages ``1..pages`` concurrently and merge them in page order.

    A page that raises contributes nothing; the remaining pages are still
    returned. Duplicates across pages keep their first occurrence.
    """

    if pages <= 0:
        return []

    results = await asyncio.gather(
        *(fetch_page(page) for page in range(1, pages + 1)),
        return_exceptions=True,
    )

    merged: list[Drama] = []
    for page, result in enumerate(results, start=1):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning(
                "Dropping page %s from aggregated shelf: %s", page, result
            )
            continue
        merged.extend(result)
    return dedupe_dramas(merged)
