"""Locate a drama by id across the catalog endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from ..errors import DramaNotFoundError, TransientFetchError
from ..models import Drama, Episode
from ..normalizer import DRAMA_FIELDS
from ..utils import same_id
from .catalog_client import CatalogClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DramaResolution:
    """A located drama, any episodes the detail endpoint returned, and where it was found."""

    drama: Drama
    episodes: tuple[Episode, ...] = ()
    source: str = "detail"


def matches_id(drama: Drama, drama_id: str) -> bool:
    """Return whether ``drama`` answers to ``drama_id`` under any upstream id key."""

    if same_id(drama.id, drama_id):
        return True
    return any(same_id(drama.raw.get(key), drama_id) for key in DRAMA_FIELDS["id"])


def find_drama(dramas: Iterable[Drama], drama_id: str) -> Drama | None:
    for drama in dramas:
        if matches_id(drama, drama_id):
            return drama
    return None


class FallbackResolver:
    """Resolve a drama reference through a fixed chain of catalogs.

    The detail endpoint is consulted first. When it does not describe the
    drama itself, the first page of the home catalog, the recommended
    catalog and finally the VIP catalog are searched in that order. The first
    match ends the chain.
    """

    def __init__(self, client: CatalogClient) -> None:
        self._client = client

    def _fallback_sources(self) -> tuple[tuple[str, Callable[[], Awaitable[list[Drama]]]], ...]:
        return (
            ("home", lambda: self._client.home(1)),
            ("recommend", self._client.recommend),
            ("vip", self._client.vip),
        )

    async def resolve(self, drama_id: str) -> DramaResolution:
        """Return the drama for ``drama_id``.

        Raises :class:`DramaNotFoundError` once every source answered without
        it, or :class:`TransientFetchError` when it was not found but at least
        one source could not be consulted.
        """

        drama_id = str(drama_id).strip()
        if not drama_id:
            raise DramaNotFoundError(drama_id)

        failures: list[TransientFetchError] = []
        episodes: tuple[Episode, ...] = ()

        try:
            detail = await self._client.detail(drama_id)
        except TransientFetchError as exc:
            logger.warning("Detail lookup for %s failed, trying fallbacks: %s", drama_id, exc)
            failures.append(exc)
        else:
            if detail.drama is not None:
                return DramaResolution(drama=detail.drama, episodes=detail.episodes)
            episodes = detail.episodes

        for source, fetch in self._fallback_sources():
            try:
                dramas = await fetch()
            except TransientFetchError as exc:
                logger.warning("Fallback %s lookup for %s failed: %s", source, drama_id, exc)
                failures.append(exc)
                continue
            found = find_drama(dramas, drama_id)
            if found is not None:
                logger.info("Resolved drama %s via %s catalog", drama_id, source)
                return DramaResolution(drama=found, episodes=episodes, source=source)

        if failures:
            raise TransientFetchError(
                "resolve",
                f"Drama {drama_id!r} not found and {len(failures)} catalog(s) were unreachable",
                status_code=failures[-1].status_code,
            ) from failures[-1]
        raise DramaNotFoundError(drama_id)
