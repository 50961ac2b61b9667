import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .cache import TTLCache
from .errors import UpstreamUnavailable
from .services import NeoService

logger = logging.getLogger(__name__)


def purge_cache(cache: TTLCache) -> None:
    removed = cache.purge_expired()
    if removed:
        logger.info("purged expired cache entries", extra={"removed": removed})


async def warm_today(service: NeoService) -> None:
    try:
        await service.warm()
    except UpstreamUnavailable:
        logger.warning("cache warm-up failed", exc_info=True)


def build_scheduler(
    service: NeoService, cache: TTLCache, warm_interval_minutes: int = 60
) -> AsyncIOScheduler:
    """Background jobs: sweep expired entries every TTL, warm today's risk view."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        purge_cache,
        IntervalTrigger(seconds=cache.ttl_seconds),
        args=[cache],
        id="purge_cache",
    )
    scheduler.add_job(
        warm_today,
        IntervalTrigger(minutes=warm_interval_minutes),
        args=[service],
        id="warm_today",
    )
    return scheduler
