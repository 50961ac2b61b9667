import pytest

TODAY = "2026-10-18"


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_risk_assessment_today_and_by_date(client, nasa, make_neo):
    nasa.add(TODAY, make_neo(1, diameter_max=12), make_neo(2))
    nasa.add("2026-10-17", make_neo(3))

    resp = await client.get("/neo/risk-assessment")
    assert resp.status_code == 200
    body = resp.json()
    assert body["date"] == TODAY
    assert body["risk_summary"]["total_objects"] == 2
    assert body["risk_assessments"][0]["id"] == "1"

    resp = await client.get("/neo/risk-assessment/2026-10-17")
    assert resp.status_code == 200
    assert [a["id"] for a in resp.json()["risk_assessments"]] == ["3"]


@pytest.mark.asyncio
async def test_dated_and_undated_routes(client, nasa, make_neo):
    nasa.add(TODAY, make_neo(1))
    for path in (
        "/neo/today",
        "/neo/summary",
        f"/neo/summary/{TODAY}",
        "/neo/simple",
        f"/neo/simple/{TODAY}",
        "/neo/charts/size-distribution",
        f"/neo/charts/size-distribution/{TODAY}",
        "/neo/charts/distance-size",
        f"/neo/charts/distance-size/{TODAY}",
        "/neo/charts/timeline?days=3",
        "/neo/closest?limit=5",
        "/neo/largest",
        "/neo/hazardous",
        f"/neo/feed?start_date={TODAY}",
        "/neo/highest-risk?limit=3",
        "/neo/stats",
    ):
        resp = await client.get(path)
        assert resp.status_code == 200, path


@pytest.mark.asyncio
async def test_neo_by_id(client, nasa, make_neo):
    nasa.add(TODAY, make_neo(2000433, name="433 Eros"))
    resp = await client.get("/neo/2000433")
    assert resp.status_code == 200
    assert resp.json()["name"] == "433 Eros"


@pytest.mark.asyncio
async def test_neo_not_found(client):
    resp = await client.get("/neo/999")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_validation_errors(client, nasa):
    resp = await client.get("/neo/summary/not-a-date")
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_failure"
    assert resp.json()["field"] == "date"

    resp = await client.get("/neo/feed")
    assert resp.status_code == 400

    resp = await client.get("/neo/highest-risk", params={"limit": "many"})
    assert resp.status_code == 400

    resp = await client.get(
        "/neo/hazardous", params={"start_date": TODAY, "end_date": "2026-10-01"}
    )
    assert resp.status_code == 400
    assert nasa.calls == []


@pytest.mark.asyncio
async def test_upstream_failure(client, nasa):
    nasa.failing_days.add(TODAY)
    resp = await client.get("/neo/risk-assessment")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "upstream_unavailable"
    assert body["upstream_status"] == 503


@pytest.mark.asyncio
async def test_responses_are_cached(client, nasa, make_neo):
    nasa.add(TODAY, make_neo(1))
    first = await client.get("/neo/highest-risk")
    second = await client.get("/neo/highest-risk")
    assert first.json() == second.json()
    assert len(nasa.calls) == 1


@pytest.mark.asyncio
async def test_cors_allows_dashboard_origin(client):
    resp = await client.get("/health", headers={"Origin": "http://localhost:5173"})
    assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"
