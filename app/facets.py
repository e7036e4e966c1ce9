"""Upstream catalog facet definitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


ListShape = Literal["list", "grouped"]


@dataclass(frozen=True)
class FacetDefinition:
    """Describes a drama listing offered by the upstream catalog."""

    key: str
    title: str
    path: str
    paged: bool = True
    shape: ListShape = "list"


SHELF_FACETS: tuple[FacetDefinition, ...] = (
    FacetDefinition(key="trending", title="Trending", path="/trending"),
    FacetDefinition(key="latest", title="Latest", path="/latest"),
    FacetDefinition(key="for-you", title="For You", path="/foryou"),
    FacetDefinition(key="hot", title="Hot", path="/hot"),
    FacetDefinition(key="completed", title="Completed", path="/completed"),
    FacetDefinition(key="home", title="Home", path="/home"),
    FacetDefinition(key="recommend", title="Recommended", path="/recommend", paged=False),
    FacetDefinition(key="vip", title="VIP", path="/vip", paged=False, shape="grouped"),
)

CATEGORY_PATH = "/category/{slug}"
SEARCH_PATH = "/search"
DETAIL_PATH = "/detail"
EPISODES_PATH = "/allepisode"
POPULAR_SEARCH_PATH = "/populersearch"

DEFAULT_CATEGORIES: tuple[str, ...] = ("romance", "action", "comedy")


def get_facet(key: str) -> FacetDefinition:
    """Return the shelf facet registered under ``key``."""

    for facet in SHELF_FACETS:
        if facet.key == key:
            return facet
    raise KeyError(f"Unknown catalog facet: {key}")
