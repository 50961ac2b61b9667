import asyncio
from datetime import date, timedelta

import httpx
import pytest
import pytest_asyncio

from neowatch.cache import TTLCache
from neowatch.config import Settings
from neowatch.main import create_app
from neowatch.services import NeoFeedClient, NeoService

TODAY = date(2026, 10, 18)


def build_neo(
    neo_id,
    name=None,
    diameter_max=0.2,
    miss_km="500000",
    velocity_kmh="40000",
    hazardous=False,
    approaches=1,
    approach_date=TODAY.isoformat(),
):
    approach = {
        "close_approach_date": approach_date,
        "miss_distance": {"kilometers": miss_km},
        "relative_velocity": {"kilometers_per_hour": velocity_kmh},
        "orbiting_body": "Earth",
    }
    return {
        "id": str(neo_id),
        "name": name or f"({neo_id})",
        "nasa_jpl_url": f"https://ssd.jpl.nasa.gov/tools/sbdb_lookup.html#/?sstr={neo_id}",
        "is_potentially_hazardous_asteroid": hazardous,
        "estimated_diameter": {
            "kilometers": {
                "estimated_diameter_min": diameter_max / 2,
                "estimated_diameter_max": diameter_max,
            }
        },
        "close_approach_data": [dict(approach) for _ in range(approaches)],
    }


class FakeNasa:
    """Stands in for the NeoWs REST API behind an httpx MockTransport."""

    def __init__(self):
        self.days = {}
        self.failing_days = set()
        self.slow_days = set()
        self.slow_seconds = 0.5
        self.calls = []

    def add(self, day, *neos):
        self.days.setdefault(day, []).extend(neos)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        if path.endswith("/feed"):
            start = date.fromisoformat(request.url.params["start_date"])
            end = date.fromisoformat(request.url.params["end_date"])
            objects = {}
            day = start
            while day <= end:
                key = day.isoformat()
                if key in self.slow_days:
                    await asyncio.sleep(self.slow_seconds)
                if key in self.failing_days:
                    return httpx.Response(503, json={"error": "unavailable"})
                objects[key] = self.days.get(key, [])
                day += timedelta(days=1)
            count = sum(len(v) for v in objects.values())
            return httpx.Response(
                200, json={"element_count": count, "near_earth_objects": objects}
            )
        if path.endswith("/stats"):
            return httpx.Response(200, json={"near_earth_object_count": 35000})
        if "/neo/" in path:
            neo_id = path.rsplit("/", 1)[-1]
            for neos in self.days.values():
                for neo in neos:
                    if neo["id"] == neo_id:
                        return httpx.Response(200, json=neo)
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(404)


@pytest.fixture
def make_neo():
    return build_neo


@pytest.fixture
def nasa():
    return FakeNasa()


@pytest_asyncio.fixture
async def service(nasa):
    http = httpx.AsyncClient(transport=httpx.MockTransport(nasa.handler))
    feed = NeoFeedClient("test-key", client=http)
    svc = NeoService(feed, TTLCache(), day_timeout=0.1, today=lambda: TODAY)
    yield svc
    await feed.aclose()


@pytest.fixture
def app(nasa):
    settings = Settings(enable_scheduler=False, log_level="WARNING")
    http = httpx.AsyncClient(transport=httpx.MockTransport(nasa.handler))
    return create_app(settings, http_client=http, today=lambda: TODAY)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
