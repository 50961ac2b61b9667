import asyncio
import logging
import math
import re
import time
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List

import httpx

from . import risk
from .cache import TTLCache, cache_key
from .errors import NotFound, UpstreamUnavailable, ValidationFailure
from .metrics import UPSTREAM_LATENCY, UPSTREAM_REQUESTS
from .schemas import ScatterPoint, SimpleNeo, SizeBin, TimelineDay

logger = logging.getLogger(__name__)

API_URL = "https://api.nasa.gov/neo/rest/v1"

# NeoWs rejects feed ranges longer than this
MAX_FEED_DAYS = 7
MAX_TIMELINE_DAYS = 30
MAX_LIMIT = 100
DEFAULT_LIMIT = 10

NEO_ID_PATTERN = re.compile(r"[0-9]+")
DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

SIZE_CATEGORIES = (
    ("Small (< 0.1 km)", 0.0, 0.1),
    ("Medium (0.1-1 km)", 0.1, 1.0),
    ("Large (1-10 km)", 1.0, 10.0),
    ("Very Large (> 10 km)", 10.0, math.inf),
)


class NeoFeedClient:
    """Thin async client for the NASA NeoWs REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = API_URL,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, endpoint: str, path: str, params: dict | None = None) -> dict:
        query = dict(params or {}, api_key=self.api_key)
        start = time.monotonic()
        try:
            resp = await self._client.get(f"{self.base_url}{path}", params=query)
        except httpx.TimeoutException as exc:
            UPSTREAM_REQUESTS.labels(endpoint=endpoint, outcome="timeout").inc()
            raise UpstreamUnavailable(f"NeoWs {endpoint} request timed out") from exc
        except httpx.HTTPError as exc:
            UPSTREAM_REQUESTS.labels(endpoint=endpoint, outcome="error").inc()
            raise UpstreamUnavailable(f"NeoWs {endpoint} request failed: {exc}") from exc
        finally:
            UPSTREAM_LATENCY.labels(endpoint=endpoint).observe(time.monotonic() - start)

        if resp.is_error:
            UPSTREAM_REQUESTS.labels(endpoint=endpoint, outcome=str(resp.status_code)).inc()
            raise UpstreamUnavailable(
                f"NeoWs {endpoint} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            UPSTREAM_REQUESTS.labels(endpoint=endpoint, outcome="invalid").inc()
            raise UpstreamUnavailable(f"NeoWs {endpoint} returned invalid JSON") from exc
        UPSTREAM_REQUESTS.labels(endpoint=endpoint, outcome="ok").inc()
        return data

    async def fetch_feed(self, start: date, end: date) -> dict:
        """Fetch the feed for an inclusive date range."""
        params = {"start_date": start.isoformat(), "end_date": end.isoformat()}
        return await self._get("feed", "/feed", params)

    async def fetch_neo(self, neo_id: str) -> dict:
        try:
            return await self._get("lookup", f"/neo/{neo_id}")
        except UpstreamUnavailable as exc:
            if exc.status_code == 404:
                raise NotFound(f"No near-Earth object with id {neo_id}") from exc
            raise

    async def fetch_stats(self) -> dict:
        return await self._get("stats", "/stats")


def flatten_feed(feed: dict) -> List[dict]:
    """Flatten the per-day ``near_earth_objects`` map, earliest day first."""
    by_day = feed.get("near_earth_objects") or {}
    return [neo for day in sorted(by_day) for neo in by_day[day]]


def parse_date(value: str | None, field: str, default: date | None = None) -> date:
    if value is None or value == "":
        if default is None:
            raise ValidationFailure(f"{field} is required", field=field)
        return default
    message = f"{field} must be a date in YYYY-MM-DD format"
    if not isinstance(value, str) or not DATE_PATTERN.fullmatch(value):
        raise ValidationFailure(message, field=field)
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationFailure(message, field=field)


def parse_int(value, field: str, default: int, low: int, high: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationFailure(f"{field} must be an integer", field=field)
    if not low <= number <= high:
        raise ValidationFailure(f"{field} must be between {low} and {high}", field=field)
    return number


def parse_range(start_date: str | None, end_date: str | None, today: date) -> tuple[date, date]:
    start = parse_date(start_date, "start_date", default=today)
    end = parse_date(end_date, "end_date", default=start)
    if end < start:
        raise ValidationFailure("end_date must not be before start_date", field="end_date")
    if (end - start).days >= MAX_FEED_DAYS:
        raise ValidationFailure(
            f"date range must not exceed {MAX_FEED_DAYS} days", field="end_date"
        )
    return start, end


def simplify(neo: dict) -> SimpleNeo:
    distance = risk.miss_distance_km(neo)
    return SimpleNeo(
        id=str(neo.get("id", "")),
        name=neo.get("name", "Unknown"),
        is_hazardous=bool(neo.get("is_potentially_hazardous_asteroid", False)),
        diameter_min_km=risk.diameter_km(neo, "min"),
        diameter_max_km=risk.diameter_km(neo, "max"),
        miss_distance_km=distance if math.isfinite(distance) else None,
        miss_distance_lunar=risk.lunar_distances(distance),
        velocity_kmh=risk.velocity_kmh(neo),
        approach_date=risk.approach_date(neo),
        orbiting_body=risk.first_approach(neo).get("orbiting_body"),
        nasa_jpl_url=neo.get("nasa_jpl_url"),
    )


def size_distribution(neos: List[dict]) -> List[SizeBin]:
    total = len(neos)
    bins = []
    for label, low, high in SIZE_CATEGORIES:
        count = sum(1 for neo in neos if low <= risk.diameter_km(neo) < high)
        percentage = round(count / total * 100, 1) if total else 0.0
        bins.append(SizeBin(category=label, count=count, percentage=percentage))
    return bins


def _pick(neo: SimpleNeo | None, *fields: str) -> dict | None:
    if neo is None:
        return None
    return {f: getattr(neo, f) for f in fields}


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class NeoService:
    """Read-only NEO views, each cached for the lifetime of the cache TTL.

    Raw feed responses are cached separately from the views built on them,
    so several views of the same day cost a single upstream request.
    """

    def __init__(
        self,
        client: NeoFeedClient,
        cache: TTLCache,
        day_timeout: float = 15.0,
        today: Callable[[], date] = _utc_today,
    ):
        self.client = client
        self.cache = cache
        self.day_timeout = day_timeout
        self._today = today

    async def _feed(self, start: date, end: date) -> dict:
        key = cache_key("feed", start_date=start.isoformat(), end_date=end.isoformat())
        return await self.cache.get_or_compute(key, lambda: self.client.fetch_feed(start, end))

    async def _day_neos(self, day: date) -> List[dict]:
        return flatten_feed(await self._feed(day, day))

    def _resolve_day(self, value: str | None) -> date:
        return parse_date(value, "date", default=self._today())

    # -- pass-through views ------------------------------------------------

    async def today(self) -> dict:
        day = self._today()
        return await self._feed(day, day)

    async def feed(self, start_date: str | None, end_date: str | None = None) -> dict:
        if not start_date:
            raise ValidationFailure("start_date is required", field="start_date")
        start, end = parse_range(start_date, end_date, self._today())
        return await self._feed(start, end)

    async def stats(self) -> dict:
        return await self.cache.get_or_compute(cache_key("stats"), self.client.fetch_stats)

    async def neo_by_id(self, neo_id: str) -> dict:
        if not neo_id or not NEO_ID_PATTERN.fullmatch(str(neo_id)):
            raise ValidationFailure("neo_id must be a numeric NeoWs id", field="neo_id")
        key = cache_key("neo", neo_id=str(neo_id))
        return await self.cache.get_or_compute(key, lambda: self.client.fetch_neo(str(neo_id)))

    # -- derived views -----------------------------------------------------

    async def hazardous(self, start_date: str | None = None, end_date: str | None = None) -> dict:
        start, end = parse_range(start_date, end_date, self._today())

        async def produce():
            neos = flatten_feed(await self._feed(start, end))
            hazardous = [n for n in neos if n.get("is_potentially_hazardous_asteroid")]
            return {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "total_count": len(hazardous),
                "hazardous_neos": hazardous,
            }

        key = cache_key("hazardous", start_date=start.isoformat(), end_date=end.isoformat())
        return await self.cache.get_or_compute(key, produce)

    async def closest(self, date: str | None = None, limit=None) -> dict:
        day = self._resolve_day(date)
        count = parse_int(limit, "limit", DEFAULT_LIMIT, 1, MAX_LIMIT)

        async def produce():
            neos = sorted(await self._day_neos(day), key=risk.miss_distance_km)
            return {
                "date": day.isoformat(),
                "closest_neos": [simplify(n).model_dump() for n in neos[:count]],
            }

        key = cache_key("closest", date=day.isoformat(), limit=count)
        return await self.cache.get_or_compute(key, produce)

    async def largest(self, date: str | None = None, limit=None) -> dict:
        day = self._resolve_day(date)
        count = parse_int(limit, "limit", DEFAULT_LIMIT, 1, MAX_LIMIT)

        async def produce():
            neos = sorted(await self._day_neos(day), key=risk.diameter_km, reverse=True)
            return {
                "date": day.isoformat(),
                "largest_neos": [simplify(n).model_dump() for n in neos[:count]],
            }

        key = cache_key("largest", date=day.isoformat(), limit=count)
        return await self.cache.get_or_compute(key, produce)

    async def summary(self, date: str | None = None) -> dict:
        day = self._resolve_day(date)

        async def produce():
            neos = [simplify(n) for n in await self._day_neos(day)]
            with_distance = [n for n in neos if n.miss_distance_km is not None]
            closest = min(with_distance, key=lambda n: n.miss_distance_km, default=None)
            largest = max(neos, key=lambda n: n.diameter_max_km, default=None)
            fastest = max(neos, key=lambda n: n.velocity_kmh, default=None)
            average = (
                round(sum(n.diameter_max_km for n in neos) / len(neos), 3) if neos else 0.0
            )
            return {
                "date": day.isoformat(),
                "total_count": len(neos),
                "hazardous_count": sum(1 for n in neos if n.is_hazardous),
                "closest_approach": _pick(
                    closest, "id", "name", "miss_distance_km", "miss_distance_lunar"
                ),
                "largest_object": _pick(largest, "id", "name", "diameter_max_km"),
                "fastest_object": _pick(fastest, "id", "name", "velocity_kmh"),
                "average_diameter_km": average,
            }

        return await self.cache.get_or_compute(cache_key("summary", date=day.isoformat()), produce)

    async def simple(self, date: str | None = None) -> dict:
        day = self._resolve_day(date)

        async def produce():
            neos = [simplify(n).model_dump() for n in await self._day_neos(day)]
            return {"date": day.isoformat(), "count": len(neos), "neos": neos}

        return await self.cache.get_or_compute(cache_key("simple", date=day.isoformat()), produce)

    async def size_distribution(self, date: str | None = None) -> dict:
        day = self._resolve_day(date)

        async def produce():
            neos = await self._day_neos(day)
            return {
                "date": day.isoformat(),
                "total_neos": len(neos),
                "size_distribution": [b.model_dump() for b in size_distribution(neos)],
            }

        key = cache_key("size-distribution", date=day.isoformat())
        return await self.cache.get_or_compute(key, produce)

    async def distance_size(self, date: str | None = None) -> dict:
        day = self._resolve_day(date)

        async def produce():
            points = [
                ScatterPoint(
                    x=risk.miss_distance_km(neo),
                    y=risk.diameter_km(neo),
                    name=neo.get("name", "Unknown"),
                    is_hazardous=bool(neo.get("is_potentially_hazardous_asteroid", False)),
                    velocity_kmh=risk.velocity_kmh(neo),
                ).model_dump()
                for neo in await self._day_neos(day)
                if math.isfinite(risk.miss_distance_km(neo))
            ]
            return {"date": day.isoformat(), "scatter_data": points}

        key = cache_key("distance-size", date=day.isoformat())
        return await self.cache.get_or_compute(key, produce)

    async def timeline(self, days=None) -> dict:
        span = parse_int(days, "days", 7, 1, MAX_TIMELINE_DAYS)
        end = self._today()
        start = end - timedelta(days=span - 1)

        async def produce():
            timeline_data = []
            for offset in range(span):
                day = start + timedelta(days=offset)
                try:
                    neos = await asyncio.wait_for(self._day_neos(day), timeout=self.day_timeout)
                except (UpstreamUnavailable, asyncio.TimeoutError) as exc:
                    logger.warning(
                        "timeline day skipped",
                        extra={"day": day.isoformat(), "reason": str(exc) or "timeout"},
                    )
                    continue
                distances = [d for d in map(risk.miss_distance_km, neos) if math.isfinite(d)]
                timeline_data.append(
                    TimelineDay(
                        date=day.isoformat(),
                        total_count=len(neos),
                        hazardous_count=sum(
                            1 for n in neos if n.get("is_potentially_hazardous_asteroid")
                        ),
                        closest_distance=min(distances, default=None),
                        largest_diameter=max(map(risk.diameter_km, neos), default=0.0),
                    ).model_dump()
                )
            return {
                "date_range": {"start": start.isoformat(), "end": end.isoformat()},
                "timeline_data": timeline_data,
            }

        key = cache_key("timeline", end_date=end.isoformat(), days=span)
        # a timeline with skipped days is returned but not cached, so the gap can recover
        return await self.cache.get_or_compute(
            key, produce, cacheable=lambda result: len(result["timeline_data"]) == span
        )

    async def risk_assessment(self, date: str | None = None) -> dict:
        day = self._resolve_day(date)

        async def produce():
            assessments = risk.assess_neos(await self._day_neos(day), day.isoformat())
            return {
                "date": day.isoformat(),
                "risk_summary": risk.summarize_risk(assessments).model_dump(),
                "risk_assessments": [a.model_dump(mode="json") for a in assessments],
            }

        key = cache_key("risk-assessment", date=day.isoformat())
        return await self.cache.get_or_compute(key, produce)

    async def highest_risk(
        self, start_date: str | None = None, end_date: str | None = None, limit=None
    ) -> dict:
        start, end = parse_range(start_date, end_date, self._today())
        count = parse_int(limit, "limit", DEFAULT_LIMIT, 1, MAX_LIMIT)

        async def produce():
            neos = flatten_feed(await self._feed(start, end))
            assessments = risk.assess_neos(neos, start.isoformat())
            return {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "total_assessed": len(assessments),
                "highest_risk_neos": [a.model_dump(mode="json") for a in assessments[:count]],
            }

        key = cache_key(
            "highest-risk", start_date=start.isoformat(), end_date=end.isoformat(), limit=count
        )
        return await self.cache.get_or_compute(key, produce)

    async def warm(self) -> None:
        """Pre-compute today's risk assessment so the first visitor hits the cache."""
        await self.risk_assessment()
