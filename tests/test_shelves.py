from __future__ import annotations

import pytest

from app.errors import TransientFetchError
from app.models import Drama, Tag
from app.services.shelves import build_discovery_shelves, group_by_tag


def _drama(drama_id: str, *tags: str) -> Drama:
    return Drama(
        id=drama_id,
        tags=tuple(Tag(local_name=name.lower(), canonical_name=name) for name in tags),
    )


def test_priority_tags_lead_then_size() -> None:
    dramas = [
        _drama("1", "Thriller", "Revenge"),
        _drama("2", "Thriller", "Romance"),
        _drama("3", "Thriller", "Revenge", "Modern"),
        _drama("4", "Romance", "Sweet"),
        _drama("5", "Sweet", "Modern"),
        _drama("6", "Modern"),
    ]

    shelves = group_by_tag(dramas)

    assert [shelf.canonical_name for shelf in shelves] == [
        "Romance",
        "Revenge",
        "Thriller",
        "Sweet",
    ]
    assert [drama.id for drama in shelves[2].dramas] == ["1", "2", "3"]
    assert shelves[0].local_name == "romance"


def test_small_groups_are_dropped() -> None:
    shelves = group_by_tag([_drama("1", "Solo"), _drama("2", "Pair"), _drama("3", "Pair")])

    assert [shelf.canonical_name for shelf in shelves] == ["Pair"]


def test_duplicate_dramas_counted_once() -> None:
    shelves = group_by_tag([_drama("1", "CEO"), _drama("1", "CEO")], min_size=1)

    assert len(shelves[0].dramas) == 1


class ShelfCatalog:
    def __init__(self, listings: dict[str, list[Drama] | Exception]) -> None:
        self._listings = listings

    async def shelf(self, facet: str, page: int = 1) -> list[Drama]:
        result = self._listings[facet]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.anyio
async def test_discovery_shelves_tolerate_failed_listing() -> None:
    catalog = ShelfCatalog(
        {
            "for-you": [_drama("1", "Family")],
            "trending": TransientFetchError("trending", "HTTP 500"),
            "latest": [_drama("2", "Family"), _drama("1", "Family")],
        }
    )

    shelves = await build_discovery_shelves(catalog)

    assert [shelf.canonical_name for shelf in shelves] == ["Family"]
    assert [drama.id for drama in shelves[0].dramas] == ["1", "2"]
