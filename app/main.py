"""Entry point for the FastAPI-powered catalog service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from enum import Enum
from typing import Any, Awaitable, TypeVar

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .config import settings
from .database import Database
from .exceptions import (
    ExternalProviderError,
    InvalidSeasonOperation,
    MissingExternalReference,
    NoUnwatchedContent,
    NotFound,
)
from .models import (
    ContentType,
    MovieCreate,
    PriorityUpdate,
    SeriesCreate,
    SeriesStatus,
    WatchStatus,
    WatchStatusUpdate,
)
from .services.catalog import CatalogService
from .services.catalog_store import CatalogStore
from .services.notifications import NotificationService
from .services.recommendation import (
    RecommendationService,
    WeightedRecommendationSelector,
)
from .services.reconciliation import (
    BulkReconciliationRunner,
    ReconciliationScheduler,
    SeasonReconciler,
)
from .services.schedule_store import ScheduleStore
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


def create_tmdb_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=str(settings.tmdb_api_url).rstrip("/"),
        timeout=httpx.Timeout(15.0, connect=5.0),
    )


def build_reconciliation(
    store: CatalogStore,
    notifications: NotificationService,
    tmdb_http_client: httpx.AsyncClient,
) -> tuple[SeasonReconciler, BulkReconciliationRunner]:
    """Wire the reconciler and bulk runner from the configured settings."""

    reconciler = SeasonReconciler(
        store,
        TMDBClient(settings, tmdb_http_client),
        notifications,
        notify_unstarted_series=settings.notify_unstarted_series,
    )
    runner = BulkReconciliationRunner(
        store, reconciler, concurrency=settings.reconcile_concurrency
    )
    return reconciler, runner


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    database = Database(settings.database_url)
    await database.create_all()

    store = CatalogStore(database.session_factory)
    notifications = NotificationService(database.session_factory)
    fastapi_app.state.database = database
    fastapi_app.state.catalog_service = CatalogService(store)
    fastapi_app.state.notification_service = notifications
    fastapi_app.state.recommendation_service = RecommendationService(
        store,
        WeightedRecommendationSelector(),
        max_count=settings.recommendation_max_count,
    )

    scheduler: ReconciliationScheduler | None = None
    if settings.tmdb_api_key:
        tmdb_http_client = await exit_stack.enter_async_context(
            create_tmdb_http_client()
        )
        reconciler, runner = build_reconciliation(
            store, notifications, tmdb_http_client
        )
        scheduler = ReconciliationScheduler(
            runner,
            reconciler,
            interval_seconds=settings.season_check_interval_seconds,
            state=ScheduleStore(database.session_factory),
        )
        if settings.season_check_enabled:
            await scheduler.start()
    else:
        logger.warning("TMDB_API_KEY is not set; season reconciliation is disabled")
    fastapi_app.state.reconciliation_scheduler = scheduler

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        if scheduler is not None:
            await scheduler.stop()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Personal movie and series catalog with weighted recommendations",
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


def _get_state_service(fastapi_app: FastAPI, name: str, expected: type[T]) -> T:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{expected.__name__} not initialised")
    return service


def get_catalog_service(fastapi_app: FastAPI) -> CatalogService:
    return _get_state_service(fastapi_app, "catalog_service", CatalogService)


def get_notification_service(fastapi_app: FastAPI) -> NotificationService:
    return _get_state_service(fastapi_app, "notification_service", NotificationService)


def get_recommendation_service(fastapi_app: FastAPI) -> RecommendationService:
    return _get_state_service(
        fastapi_app, "recommendation_service", RecommendationService
    )


def get_reconciliation_scheduler(fastapi_app: FastAPI) -> ReconciliationScheduler:
    scheduler = getattr(fastapi_app.state, "reconciliation_scheduler", None)
    if not isinstance(scheduler, ReconciliationScheduler):
        raise HTTPException(
            status_code=503, detail="Season reconciliation is not configured"
        )
    return scheduler


async def _call(operation: Awaitable[T]) -> T:
    """Await a service call, translating catalog errors into HTTP errors."""

    try:
        return await operation
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (MissingExternalReference, InvalidSeasonOperation) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ExternalProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except NoUnwatchedContent as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


async def _parse_body(request: Request, model: type[T]) -> T:
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    try:
        return model.model_validate(payload)  # type: ignore[attr-defined]
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()) from exc


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _query_enum(request: Request, name: str, enum_type: type[E]) -> E | None:
    raw = (request.query_params.get(name) or "").strip()
    if not raw:
        return None
    try:
        return enum_type(raw.upper())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {raw}") from exc


def _query_bool(request: Request, name: str) -> bool | None:
    raw = (request.query_params.get(name) or "").strip().lower()
    if not raw:
        return None
    if raw in {"true", "1", "yes"}:
        return True
    if raw in {"false", "0", "no"}:
        return False
    raise HTTPException(status_code=400, detail=f"Invalid {name}: {raw}")


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    # Catalog -----------------------------------------------------------

    @fastapi_app.get("/api/catalog")
    async def catalog(request: Request) -> list[dict[str, Any]]:
        service = get_catalog_service(fastapi_app)
        entries = await service.get_catalog(
            content_type=_query_enum(request, "contentType", ContentType),
            genre=request.query_params.get("genre") or None,
            watch_status=_query_enum(request, "watchStatus", WatchStatus),
            added_by=request.query_params.get("addedBy") or None,
            has_new_seasons=_query_bool(request, "hasNewSeasons"),
            series_status=_query_enum(request, "seriesStatus", SeriesStatus),
            sort_by=request.query_params.get("sortBy") or None,
        )
        return [entry.to_payload() for entry in entries]

    @fastapi_app.get("/api/catalog/search")
    async def search_catalog(request: Request) -> list[dict[str, Any]]:
        query = (request.query_params.get("query") or "").strip()
        if not query:
            raise HTTPException(status_code=400, detail="query must not be empty")
        service = get_catalog_service(fastapi_app)
        return [entry.to_payload() for entry in await service.search_catalog(query)]

    # Series ------------------------------------------------------------

    @fastapi_app.post("/api/series", status_code=201)
    async def add_series(request: Request) -> dict[str, Any]:
        payload = await _parse_body(request, SeriesCreate)
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.add_series(payload)))

    @fastapi_app.get("/api/series")
    async def list_series() -> list[dict[str, Any]]:
        service = get_catalog_service(fastapi_app)
        return [_dump(series) for series in await service.list_series()]

    @fastapi_app.post("/api/series/refresh")
    async def refresh_all_series() -> dict[str, int]:
        scheduler = get_reconciliation_scheduler(fastapi_app)
        result = await scheduler.on_manual_trigger()
        return result.to_payload()  # type: ignore[union-attr]

    @fastapi_app.get("/api/series/{series_id}")
    async def get_series(series_id: str) -> dict[str, Any]:
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.get_series(series_id)))

    @fastapi_app.put("/api/series/{series_id}")
    async def update_series(series_id: str, request: Request) -> dict[str, Any]:
        payload = await _parse_body(request, SeriesCreate)
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.update_series(series_id, payload)))

    @fastapi_app.delete(
        "/api/series/{series_id}", status_code=204, response_class=Response
    )
    async def delete_series(series_id: str) -> None:
        service = get_catalog_service(fastapi_app)
        await _call(service.delete_series(series_id))

    @fastapi_app.patch("/api/series/{series_id}/seasons/{season_number}/watch-status")
    async def update_season_watch_status(
        series_id: str, season_number: int, request: Request
    ) -> dict[str, Any]:
        payload = await _parse_body(request, WatchStatusUpdate)
        service = get_catalog_service(fastapi_app)
        return _dump(
            await _call(
                service.set_season_watch_status(
                    series_id, season_number, payload.watch_status
                )
            )
        )

    @fastapi_app.patch("/api/series/{series_id}/watch-status")
    async def update_series_watch_status(
        series_id: str, request: Request
    ) -> dict[str, Any]:
        payload = await _parse_body(request, WatchStatusUpdate)
        service = get_catalog_service(fastapi_app)
        return _dump(
            await _call(service.set_series_watch_status(series_id, payload.watch_status))
        )

    @fastapi_app.patch("/api/series/{series_id}/priority")
    async def update_series_priority(series_id: str, request: Request) -> dict[str, Any]:
        payload = await _parse_body(request, PriorityUpdate)
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.set_series_priority(series_id, payload.priority)))

    @fastapi_app.post("/api/series/{series_id}/seasons")
    async def add_season(series_id: str) -> dict[str, Any]:
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.add_season(series_id)))

    @fastapi_app.delete("/api/series/{series_id}/seasons/last")
    async def remove_last_season(series_id: str) -> dict[str, Any]:
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.remove_last_season(series_id)))

    @fastapi_app.post("/api/series/{series_id}/refresh")
    async def refresh_series(series_id: str) -> dict[str, Any]:
        scheduler = get_reconciliation_scheduler(fastapi_app)
        return _dump(await _call(scheduler.on_manual_trigger(series_id)))

    # Movies ------------------------------------------------------------

    @fastapi_app.post("/api/movies", status_code=201)
    async def add_movie(request: Request) -> dict[str, Any]:
        payload = await _parse_body(request, MovieCreate)
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.add_movie(payload)))

    @fastapi_app.get("/api/movies")
    async def list_movies() -> list[dict[str, Any]]:
        service = get_catalog_service(fastapi_app)
        return [_dump(movie) for movie in await service.list_movies()]

    @fastapi_app.patch("/api/movies/{movie_id}/watch-status")
    async def update_movie_watch_status(movie_id: str, request: Request) -> dict[str, Any]:
        payload = await _parse_body(request, WatchStatusUpdate)
        service = get_catalog_service(fastapi_app)
        return _dump(
            await _call(service.set_movie_watch_status(movie_id, payload.watch_status))
        )

    @fastapi_app.patch("/api/movies/{movie_id}/priority")
    async def update_movie_priority(movie_id: str, request: Request) -> dict[str, Any]:
        payload = await _parse_body(request, PriorityUpdate)
        service = get_catalog_service(fastapi_app)
        return _dump(await _call(service.set_movie_priority(movie_id, payload.priority)))

    @fastapi_app.delete(
        "/api/movies/{movie_id}", status_code=204, response_class=Response
    )
    async def delete_movie(movie_id: str) -> None:
        service = get_catalog_service(fastapi_app)
        await _call(service.delete_movie(movie_id))

    # Recommendations and notifications ----------------------------------

    @fastapi_app.get("/api/recommendations")
    async def recommendations(request: Request) -> list[dict[str, Any]]:
        raw_count = request.query_params.get("count", "1")
        try:
            count = int(raw_count)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="count must be an integer") from exc
        if count < 1:
            raise HTTPException(status_code=400, detail="count must be at least 1")
        added_by = request.query_params.get("addedBy") or None
        service = get_recommendation_service(fastapi_app)
        picks = await _call(service.recommend(count, added_by))
        return [candidate.to_payload() for candidate in picks]

    @fastapi_app.get("/api/notifications")
    async def notifications() -> list[dict[str, Any]]:
        service = get_notification_service(fastapi_app)
        return [_dump(notification) for notification in await service.list_active()]

    @fastapi_app.delete(
        "/api/notifications/{notification_id}", status_code=204, response_class=Response
    )
    async def dismiss_notification(notification_id: str) -> None:
        service = get_notification_service(fastapi_app)
        await _call(service.dismiss(notification_id))


app = create_app()
