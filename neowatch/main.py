import logging
import time
from datetime import date
from typing import Callable

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .cache import TTLCache
from .config import Settings
from .errors import NeoWatchError, NotFound, UpstreamUnavailable, ValidationFailure
from .logging_config import configure_logging
from .metrics import REQUEST_COUNT, REQUEST_LATENCY
from .scheduler import build_scheduler
from .services import NeoFeedClient, NeoService

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationFailure.kind: 400,
    NotFound.kind: 404,
    UpstreamUnavailable.kind: 500,
}

UNMATCHED_ROUTE = "<unmatched>"

router = APIRouter(prefix="/neo", tags=["neo"])


def get_service(request: Request) -> NeoService:
    return request.app.state.service


@router.get("/today")
async def neo_today(service: NeoService = Depends(get_service)):
    return await service.today()


@router.get("/feed")
async def neo_feed(
    start_date: str | None = None,
    end_date: str | None = None,
    service: NeoService = Depends(get_service),
):
    return await service.feed(start_date, end_date)


@router.get("/hazardous")
async def neo_hazardous(
    start_date: str | None = None,
    end_date: str | None = None,
    service: NeoService = Depends(get_service),
):
    return await service.hazardous(start_date, end_date)


@router.get("/stats")
async def neo_stats(service: NeoService = Depends(get_service)):
    return await service.stats()


@router.get("/closest")
async def neo_closest(
    date: str | None = None,
    limit: str | None = None,
    service: NeoService = Depends(get_service),
):
    return await service.closest(date, limit)


@router.get("/largest")
async def neo_largest(
    date: str | None = None,
    limit: str | None = None,
    service: NeoService = Depends(get_service),
):
    return await service.largest(date, limit)


@router.get("/summary")
@router.get("/summary/{date}")
async def neo_summary(date: str | None = None, service: NeoService = Depends(get_service)):
    return await service.summary(date)


@router.get("/simple")
@router.get("/simple/{date}")
async def neo_simple(date: str | None = None, service: NeoService = Depends(get_service)):
    return await service.simple(date)


@router.get("/charts/size-distribution")
@router.get("/charts/size-distribution/{date}")
async def chart_size_distribution(
    date: str | None = None, service: NeoService = Depends(get_service)
):
    return await service.size_distribution(date)


@router.get("/charts/distance-size")
@router.get("/charts/distance-size/{date}")
async def chart_distance_size(date: str | None = None, service: NeoService = Depends(get_service)):
    return await service.distance_size(date)


@router.get("/charts/timeline")
async def chart_timeline(days: str | None = None, service: NeoService = Depends(get_service)):
    return await service.timeline(days)


@router.get("/risk-assessment")
@router.get("/risk-assessment/{date}")
async def risk_assessment(date: str | None = None, service: NeoService = Depends(get_service)):
    return await service.risk_assessment(date)


@router.get("/highest-risk")
async def highest_risk(
    start_date: str | None = None,
    end_date: str | None = None,
    limit: str | None = None,
    service: NeoService = Depends(get_service),
):
    return await service.highest_risk(start_date, end_date, limit)


# registered last so it does not shadow the fixed paths above
@router.get("/{neo_id}")
async def neo_by_id(neo_id: str, service: NeoService = Depends(get_service)):
    return await service.neo_by_id(neo_id)


async def neo_error_handler(request: Request, exc: NeoWatchError):
    status = ERROR_STATUS.get(exc.kind, 500)
    logger.warning(
        "request failed",
        extra={"path": request.url.path, "kind": exc.kind, "status": status},
    )
    return JSONResponse(status_code=status, content=exc.to_dict())


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    today: Callable[[], date] | None = None,
) -> FastAPI:
    """Wire settings, cache, upstream client and routes into one application."""
    settings = settings or Settings()
    configure_logging(settings.log_level)

    cache = TTLCache(ttl_seconds=settings.cache_ttl_seconds)
    client = NeoFeedClient(
        settings.nasa_api_key,
        base_url=settings.nasa_api_url,
        timeout=settings.upstream_timeout_seconds,
        client=http_client,
    )
    service_kwargs = {"day_timeout": settings.timeline_day_timeout_seconds}
    if today is not None:
        service_kwargs["today"] = today
    service = NeoService(client, cache, **service_kwargs)
    scheduler = build_scheduler(service, cache, settings.warm_interval_minutes)

    app = FastAPI(title="NEO Watch")
    app.state.settings = settings
    app.state.cache = cache
    app.state.service = service
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(NeoWatchError, neo_error_handler)
    app.include_router(router)

    @app.on_event("startup")
    async def startup_event():
        if settings.enable_scheduler:
            scheduler.start()
        logger.info("neo watch started", extra={"ttl_seconds": cache.ttl_seconds})

    @app.on_event("shutdown")
    async def shutdown_event():
        if scheduler.running:
            scheduler.shutdown(wait=False)
        await client.aclose()
        cache.clear()

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        method = request.method
        start_time = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start_time
        # route template, not the raw path, keeps label cardinality bounded
        route = request.scope.get("route")
        endpoint = getattr(route, "path", UNMATCHED_ROUTE)
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, http_status=response.status_code).inc()
        REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(duration)
        return response

    @app.get("/health")
    async def health():
        return {"status": "ok", "cache_entries": len(cache)}

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
