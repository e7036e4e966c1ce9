"""Client for the upstream short-drama catalog."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, TypeVar
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from ..cache import TTLCache
from ..config import Settings
from ..errors import TransientFetchError
from ..facets import (
    CATEGORY_PATH,
    DETAIL_PATH,
    EPISODES_PATH,
    POPULAR_SEARCH_PATH,
    SEARCH_PATH,
    FacetDefinition,
    get_facet,
)
from ..models import Drama, DramaDetail, Episode
from ..normalizer import (
    normalize_detail,
    normalize_episodes,
    normalize_grouped_list,
    normalize_keywords,
    normalize_list,
)
from ..utils import slugify
from .aggregator import aggregate_pages

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
ResultT = TypeVar("ResultT")


class CatalogClient:
    """Fetch catalog facets through the response cache.

    Every request is keyed by facet, parameters and the locale active when
    the request started, so a response that lands after a locale switch is
    cached under the locale it was fetched for and never leaks into another
    language's listings.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        cache: TTLCache,
        *,
        locale: str | None = None,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._cache = cache
        self._locale = self._validate_locale(locale or settings.default_locale)

    @property
    def locale(self) -> str:
        return self._locale

    def _validate_locale(self, locale: str) -> str:
        normalized = (locale or "").strip().lower()
        if normalized not in self._settings.supported_locales:
            raise ValueError(f"Unsupported locale: {locale}")
        return normalized

    async def set_locale(self, locale: str) -> bool:
        """Switch the request locale, dropping every cached response on change."""

        normalized = self._validate_locale(locale)
        if normalized == self._locale:
            return False
        logger.info("Switching catalog locale from %s to %s", self._locale, normalized)
        self._locale = normalized
        await self._cache.invalidate_all()
        return True

    @staticmethod
    def cache_key(facet: str, params: Mapping[str, Any], locale: str) -> str:
        query = urlencode(sorted((key, str(value)) for key, value in params.items()))
        return f"{locale}:{facet}?{query}"

    async def _request(
        self,
        facet: str,
        path: str,
        params: Mapping[str, Any],
        *,
        locale: str,
    ) -> Any:
        query = {**params, "lang": locale}
        try:
            response = await self._client.get(path, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else None
            logger.warning("Catalog %s request failed with HTTP %s", facet, status)
            raise TransientFetchError(facet, f"HTTP {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Catalog %s request failed: %s", facet, exc.__class__.__name__
            )
            raise TransientFetchError(facet, str(exc) or exc.__class__.__name__) from exc

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Catalog %s returned a non-JSON body", facet)
            raise TransientFetchError(
                facet, "Invalid JSON payload", status_code=response.status_code
            ) from exc

    async def _cached(
        self,
        facet: str,
        path: str,
        params: Mapping[str, Any],
        *,
        normalize: Callable[[Any], ResultT],
        dump: Callable[[ResultT], Any],
        load: Callable[[Any], ResultT],
    ) -> ResultT:
        locale = self._locale
        key = self.cache_key(facet, params, locale)
        cached = await self._cache.get(key)
        if cached is not None:
            try:
                return load(cached)
            except (ValidationError, TypeError, ValueError):
                logger.warning("Discarding unreadable cache entry for %s", key)

        raw = await self._request(facet, path, params, locale=locale)
        result = normalize(raw)
        await self._cache.put(key, dump(result))
        return result

    async def _drama_list(
        self,
        facet: str,
        path: str,
        params: Mapping[str, Any],
        *,
        grouped: bool = False,
    ) -> list[Drama]:
        return await self._cached(
            facet,
            path,
            params,
            normalize=normalize_grouped_list if grouped else normalize_list,
            dump=_dump_models,
            load=lambda payload: _load_models(Drama, payload),
        )

    async def shelf(self, facet: FacetDefinition | str, page: int = 1) -> list[Drama]:
        """Return one page of a shelf facet such as ``trending`` or ``vip``."""

        definition = get_facet(facet) if isinstance(facet, str) else facet
        params: dict[str, Any] = {}
        if definition.paged:
            params["page"] = page
        if definition.key == "home":
            params["size"] = self._settings.home_page_size
        return await self._drama_list(
            definition.key,
            definition.path,
            params,
            grouped=definition.shape == "grouped",
        )

    async def trending(self, page: int = 1) -> list[Drama]:
        return await self.shelf("trending", page)

    async def latest(self, page: int = 1) -> list[Drama]:
        return await self.shelf("latest", page)

    async def for_you(self, page: int = 1) -> list[Drama]:
        """Personalised recommendations."""

        return await self.shelf("for-you", page)

    async def hot(self, page: int = 1) -> list[Drama]:
        return await self.shelf("hot", page)

    async def completed(self, page: int = 1) -> list[Drama]:
        return await self.shelf("completed", page)

    async def home(self, page: int = 1, size: int | None = None) -> list[Drama]:
        """Return a page of the general catalog, the largest listing upstream."""

        params = {"page": page, "size": size or self._settings.home_page_size}
        return await self._drama_list("home", get_facet("home").path, params)

    async def recommend(self) -> list[Drama]:
        return await self.shelf("recommend")

    async def vip(self) -> list[Drama]:
        """Return the VIP catalog flattened out of its category columns."""

        return await self.shelf("vip")

    async def category(self, slug: str, page: int = 1) -> list[Drama]:
        normalized = slugify(slug)
        if not normalized:
            raise ValueError("Category slug may not be empty")
        return await self._drama_list(
            f"category/{normalized}",
            CATEGORY_PATH.format(slug=normalized),
            {"page": page},
        )

    async def search(self, query: str) -> list[Drama]:
        """Search titles; a blank query returns nothing without a request."""

        normalized = (query or "").strip()
        if not normalized:
            return []
        return await self._drama_list("search", SEARCH_PATH, {"query": normalized})

    async def detail(self, drama_id: str) -> DramaDetail:
        drama_id = str(drama_id).strip()
        return await self._cached(
            "detail",
            DETAIL_PATH,
            {"bookId": drama_id},
            normalize=lambda raw: normalize_detail(raw, drama_id),
            dump=lambda detail: detail.model_dump(mode="json"),
            load=DramaDetail.model_validate,
        )

    async def episodes(self, drama_id: str) -> list[Episode]:
        drama_id = str(drama_id).strip()
        return await self._cached(
            "episodes",
            EPISODES_PATH,
            {"bookId": drama_id},
            normalize=lambda raw: normalize_episodes(raw, drama_id),
            dump=_dump_models,
            load=lambda payload: _load_models(Episode, payload),
        )

    async def popular_searches(self) -> list[str]:
        return await self._cached(
            "popular-searches",
            POPULAR_SEARCH_PATH,
            {},
            normalize=normalize_keywords,
            dump=list,
            load=lambda payload: [str(entry) for entry in payload],
        )

    async def collect_shelf(
        self, facet: FacetDefinition | str, pages: int | None = None
    ) -> list[Drama]:
        """Fetch several pages of a shelf concurrently and merge them."""

        definition = get_facet(facet) if isinstance(facet, str) else facet
        if not definition.paged:
            return await self.shelf(definition)
        page_count = pages or self._settings.shelf_page_count

        def fetch_page(page: int) -> Awaitable[list[Drama]]:
            return self.shelf(definition, page)

        return await aggregate_pages(fetch_page, page_count)


def _dump_models(models: list[ModelT]) -> list[dict[str, Any]]:
    return [model.model_dump(mode="json") for model in models]


def _load_models(model: type[ModelT], payload: Any) -> list[ModelT]:
    if not isinstance(payload, list):
        raise TypeError("Cached payload is not a list")
    return [model.model_validate(entry) for entry in payload]
