"""Entry point for the FastAPI-powered catalog facade."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .cache import TTLCache
from .config import Settings, settings
from .database import Database
from .errors import DramaNotFoundError, TransientFetchError
from .facets import DEFAULT_CATEGORIES, SHELF_FACETS
from .models import Drama, Episode, ProgressRecord
from .services.catalog_client import CatalogClient
from .services.favorites import FavoritesStore, PreferencesStore
from .services.progress import ProgressStore
from .services.resolver import FallbackResolver
from .services.shelves import build_discovery_shelves
from .services.stream_selector import available_qualities, select_best_url
from .storage import DatabaseKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .utils import Clock, system_clock

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@dataclass
class CatalogServices:
    """Everything the routes need, wired once per application lifespan."""

    settings: Settings
    client: CatalogClient
    resolver: FallbackResolver
    progress: ProgressStore
    favorites: FavoritesStore
    preferences: PreferencesStore


def build_services(
    app_settings: Settings,
    http_client: httpx.AsyncClient,
    store: KeyValueStore,
    *,
    clock: Clock = system_clock,
) -> CatalogServices:
    cache = TTLCache(store, ttl_seconds=app_settings.cache_ttl_seconds, clock=clock)
    client = CatalogClient(app_settings, http_client, cache)
    return CatalogServices(
        settings=app_settings,
        client=client,
        resolver=FallbackResolver(client),
        progress=ProgressStore(
            store,
            clock=clock,
            limit=app_settings.progress_history_limit,
            completion_threshold=app_settings.completion_threshold,
        ),
        favorites=FavoritesStore(store, clock=clock),
        preferences=PreferencesStore(store),
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.catalog_api_url),
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=5.0),
            follow_redirects=True,
        )
    )
    database: Database | None = None
    store: KeyValueStore
    if settings.storage_backend == "database":
        database = Database(settings.database_url)
        await database.create_all()
        store = DatabaseKeyValueStore(database)
    else:
        store = MemoryKeyValueStore(settings.storage_capacity_bytes)

    services = build_services(settings, http_client, store)
    services.progress.subscribe(
        lambda change: logger.info(
            "Progress %s for %s", change.action, change.drama_id or "all titles"
        )
    )
    fastapi_app.state.services = services

    try:
        yield
    finally:
        if database is not None:
            await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Normalized short-drama catalog, playback and watch history",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_services(fastapi_app: FastAPI) -> CatalogServices:
    services = getattr(fastapi_app.state, "services", None)
    if not isinstance(services, CatalogServices):
        raise RuntimeError("Catalog services not initialised")
    return services


class LocaleUpdate(BaseModel):
    locale: str = Field(min_length=1)


class ProgressPayload(BaseModel):
    episode_ordinal: int = Field(default=0, ge=0, alias="episodeOrdinal")
    episode_name: str = Field(default="", alias="episodeName")
    position_seconds: float = Field(default=0.0, ge=0, alias="positionSeconds")
    duration_seconds: float = Field(default=0.0, ge=0, alias="durationSeconds")
    total_episodes: int = Field(default=0, ge=0, alias="totalEpisodes")
    title: str = ""
    cover_url: str = Field(default="", alias="coverUrl")


class PlayheadUpdate(BaseModel):
    position_seconds: float = Field(ge=0, alias="positionSeconds")
    duration_seconds: float = Field(ge=0, alias="durationSeconds")


def _drama_payload(drama: Drama) -> dict[str, Any]:
    return drama.model_dump(mode="json", exclude={"raw"})


def _episode_payload(episode: Episode) -> dict[str, Any]:
    payload = episode.model_dump(mode="json", exclude={"raw"})
    payload["playable"] = episode.is_playable
    return payload


def _progress_payload(record: ProgressRecord) -> dict[str, Any]:
    payload = record.model_dump(mode="json")
    payload["progress_percent"] = record.progress_percent
    return payload


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(TransientFetchError)
    async def _transient_failure(_: Request, exc: TransientFetchError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={"error": "upstream_unavailable", "facet": exc.facet},
        )

    @fastapi_app.exception_handler(DramaNotFoundError)
    async def _not_found(_: Request, exc: DramaNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"error": "not_found", "dramaId": exc.drama_id},
        )

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/locale")
    async def get_locale() -> dict[str, Any]:
        services = get_services(fastapi_app)
        return {
            "locale": services.client.locale,
            "supported": list(services.settings.supported_locales),
        }

    @fastapi_app.put("/api/locale")
    async def put_locale(request: Request) -> dict[str, Any]:
        services = get_services(fastapi_app)
        try:
            update = LocaleUpdate.model_validate(await _read_json(request))
            changed = await services.client.set_locale(update.locale)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_context=False)
            ) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"locale": services.client.locale, "changed": changed}

    @fastapi_app.get("/api/facets")
    async def list_facets() -> dict[str, Any]:
        return {
            "shelves": [
                {"key": facet.key, "title": facet.title, "paged": facet.paged}
                for facet in SHELF_FACETS
            ],
            "categories": list(DEFAULT_CATEGORIES),
        }

    @fastapi_app.get("/api/shelves/{facet}")
    async def shelf(facet: str, pages: int | None = None) -> dict[str, Any]:
        services = get_services(fastapi_app)
        if pages is not None and not 1 <= pages <= 20:
            raise HTTPException(status_code=400, detail="pages must be between 1 and 20")
        try:
            dramas = await services.client.collect_shelf(facet, pages)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown facet: {facet}") from exc
        return {"facet": facet, "dramas": [_drama_payload(drama) for drama in dramas]}

    @fastapi_app.get("/api/tags")
    async def tag_shelves() -> dict[str, Any]:
        services = get_services(fastapi_app)
        shelves = await build_discovery_shelves(services.client)
        return {
            "shelves": [
                {
                    "canonicalName": entry.canonical_name,
                    "localName": entry.local_name,
                    "dramas": [_drama_payload(drama) for drama in entry.dramas],
                }
                for entry in shelves
            ]
        }

    @fastapi_app.get("/api/category/{slug}")
    async def category(slug: str, page: int = 1) -> dict[str, Any]:
        services = get_services(fastapi_app)
        try:
            dramas = await services.client.category(slug, page)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"category": slug, "page": page, "dramas": [_drama_payload(d) for d in dramas]}

    @fastapi_app.get("/api/search")
    async def search(q: str = "") -> dict[str, Any]:
        services = get_services(fastapi_app)
        dramas = await services.client.search(q)
        return {"query": q, "dramas": [_drama_payload(drama) for drama in dramas]}

    @fastapi_app.get("/api/search/popular")
    async def popular_searches() -> dict[str, Any]:
        services = get_services(fastapi_app)
        return {"keywords": await services.client.popular_searches()}

    @fastapi_app.get("/api/dramas/{drama_id}")
    async def drama_detail(drama_id: str) -> dict[str, Any]:
        services = get_services(fastapi_app)
        resolution = await services.resolver.resolve(drama_id)
        return {
            "drama": _drama_payload(resolution.drama),
            "episodes": [_episode_payload(episode) for episode in resolution.episodes],
            "source": resolution.source,
        }

    @fastapi_app.get("/api/dramas/{drama_id}/episodes")
    async def drama_episodes(drama_id: str) -> dict[str, Any]:
        services = get_services(fastapi_app)
        episodes = await services.client.episodes(drama_id)
        return {
            "dramaId": drama_id,
            "episodes": [_episode_payload(episode) for episode in episodes],
        }

    @fastapi_app.get("/api/dramas/{drama_id}/episodes/{ordinal}/stream")
    async def episode_stream(
        drama_id: str, ordinal: int, quality: int | None = None
    ) -> dict[str, Any]:
        services = get_services(fastapi_app)
        episodes = await services.client.episodes(drama_id)
        if not 0 <= ordinal < len(episodes):
            raise HTTPException(status_code=404, detail="Episode not found")
        episode = episodes[ordinal]
        preferred = quality if quality is not None else services.settings.preferred_quality
        url = select_best_url(
            episode, preferred, ladder=services.settings.quality_ladder
        )
        return {
            "dramaId": drama_id,
            "ordinal": ordinal,
            "url": url,
            "playable": url is not None,
            "qualities": available_qualities(episode),
        }

    @fastapi_app.get("/api/progress")
    async def progress_history() -> dict[str, Any]:
        services = get_services(fastapi_app)
        records = await services.progress.history()
        return {"items": [_progress_payload(record) for record in records]}

    @fastapi_app.get("/api/progress/continue")
    async def continue_watching(limit: int = 10) -> dict[str, Any]:
        services = get_services(fastapi_app)
        records = await services.progress.get_continue_watching(limit)
        return {"items": [_progress_payload(record) for record in records]}

    @fastapi_app.get("/api/progress/{drama_id}")
    async def progress_for(drama_id: str) -> dict[str, Any]:
        services = get_services(fastapi_app)
        record = await services.progress.get(drama_id)
        status = await services.progress.status(drama_id)
        return {
            "status": status.value,
            "record": _progress_payload(record) if record is not None else None,
        }

    @fastapi_app.put("/api/progress/{drama_id}")
    async def save_progress(drama_id: str, request: Request) -> dict[str, Any]:
        services = get_services(fastapi_app)
        try:
            payload = ProgressPayload.model_validate(await _read_json(request))
            record = ProgressRecord(drama_id=drama_id, **payload.model_dump())
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_context=False)
            ) from exc
        saved = await services.progress.save(record)
        return _progress_payload(saved)

    @fastapi_app.patch("/api/progress/{drama_id}")
    async def update_progress(drama_id: str, request: Request) -> dict[str, Any]:
        services = get_services(fastapi_app)
        try:
            update = PlayheadUpdate.model_validate(await _read_json(request))
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_context=False)
            ) from exc
        record = await services.progress.update_progress(
            drama_id, update.position_seconds, update.duration_seconds
        )
        if record is None:
            raise HTTPException(status_code=404, detail="No saved progress for drama")
        return _progress_payload(record)

    @fastapi_app.delete("/api/progress/{drama_id}")
    async def remove_progress(drama_id: str) -> dict[str, bool]:
        services = get_services(fastapi_app)
        return {"removed": await services.progress.remove(drama_id)}

    @fastapi_app.delete("/api/progress")
    async def clear_progress() -> dict[str, bool]:
        services = get_services(fastapi_app)
        await services.progress.clear()
        return {"cleared": True}

    @fastapi_app.get("/api/favorites")
    async def list_favorites() -> dict[str, Any]:
        services = get_services(fastapi_app)
        entries = await services.favorites.list()
        return {"items": [entry.model_dump(mode="json") for entry in entries]}

    @fastapi_app.post("/api/favorites/{drama_id}")
    async def add_favorite(drama_id: str) -> dict[str, bool]:
        services = get_services(fastapi_app)
        resolution = await services.resolver.resolve(drama_id)
        return {"favorite": await services.favorites.add(resolution.drama)}

    @fastapi_app.delete("/api/favorites/{drama_id}")
    async def remove_favorite(drama_id: str) -> dict[str, bool]:
        services = get_services(fastapi_app)
        return {"removed": await services.favorites.remove(drama_id)}

    @fastapi_app.get("/api/preferences")
    async def get_preferences() -> dict[str, Any]:
        services = get_services(fastapi_app)
        return (await services.preferences.get()).model_dump(mode="json")

    @fastapi_app.patch("/api/preferences")
    async def update_preferences(request: Request) -> dict[str, Any]:
        services = get_services(fastapi_app)
        payload = await _read_json(request)
        try:
            updated = await services.preferences.update(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_context=False)
            ) from exc
        return updated.model_dump(mode="json")


app = create_app()
