"""Exception types surfaced by the catalog layer."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for catalog failures the presentation layer can tell apart."""


class TransientFetchError(CatalogError):
    """An upstream request failed and may succeed if retried."""

    def __init__(
        self,
        facet: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{facet}: {message}")
        self.facet = facet
        self.status_code = status_code


class DramaNotFoundError(CatalogError, LookupError):
    """Every catalog consulted for a drama reference came back without it."""

    def __init__(self, drama_id: str) -> None:
        super().__init__(f"Drama {drama_id!r} was not found in any catalog")
        self.drama_id = drama_id
