from __future__ import annotations

import httpx
import pytest


@pytest.mark.anyio
async def test_effective_thresholds_fall_back_to_defaults(async_client: httpx.AsyncClient):
    res = await async_client.get("/api/thresholds/effective/hive-1")
    assert res.status_code == 200
    body = res.json()
    assert body["source"] == "default"
    assert body["profile"]["temperature_max"] == 38.0

    res = await async_client.get("/api/thresholds/global")
    assert res.status_code == 404


@pytest.mark.anyio
async def test_global_and_hive_override_flow(async_client: httpx.AsyncClient):
    res = await async_client.put("/api/thresholds/global", json={"temperature_max": 36.0})
    assert res.status_code == 200, res.text
    global_profile = res.json()
    assert global_profile["scope"] == {"kind": "global"}

    res = await async_client.post("/api/thresholds", json={"hive_id": "hive-1", "temperature_max": 40.0})
    assert res.status_code == 201, res.text
    override = res.json()
    assert override["scope"] == {"kind": "hive", "hive_id": "hive-1"}

    eff = (await async_client.get("/api/thresholds/effective/hive-1")).json()
    assert eff["source"] == "hive"
    assert eff["profile"]["temperature_max"] == 40.0

    eff = (await async_client.get("/api/thresholds/effective/hive-2")).json()
    assert eff["source"] == "global"
    assert eff["profile"]["temperature_max"] == 36.0

    listed = (await async_client.get("/api/thresholds")).json()
    assert listed["total"] == 2

    res = await async_client.get(f"/api/thresholds/{override['id']}")
    assert res.status_code == 200
    assert res.json()["id"] == override["id"]

    res = await async_client.delete("/api/thresholds/hives/hive-1")
    assert res.status_code == 204
    eff = (await async_client.get("/api/thresholds/effective/hive-1")).json()
    assert eff["source"] == "global"

    res = await async_client.delete(f"/api/thresholds/{global_profile['id']}")
    assert res.status_code == 204
    eff = (await async_client.get("/api/thresholds/effective/hive-1")).json()
    assert eff["source"] == "default"


@pytest.mark.anyio
async def test_malformed_profile_rejected_with_400(async_client: httpx.AsyncClient):
    res = await async_client.put("/api/thresholds/global", json={"temperature_min": 40.0, "temperature_max": 38.0})
    assert res.status_code == 400
    assert "temperature_min" in res.json()["detail"]
    assert (await async_client.get("/api/thresholds/global")).status_code == 404


@pytest.mark.anyio
async def test_update_profile_by_id(async_client: httpx.AsyncClient):
    created = (await async_client.post("/api/thresholds", json={"hive_id": "hive-1"})).json()
    res = await async_client.put(f"/api/thresholds/{created['id']}", json={"sound_level_threshold": 90.0})
    assert res.status_code == 200
    body = res.json()
    assert body["sound_level_threshold"] == 90.0
    assert body["scope"]["hive_id"] == "hive-1"

    res = await async_client.put("/api/thresholds/missing", json={})
    assert res.status_code == 404


@pytest.mark.anyio
async def test_unknown_profile_routes_404(async_client: httpx.AsyncClient):
    assert (await async_client.get("/api/thresholds/missing")).status_code == 404
    assert (await async_client.delete("/api/thresholds/missing")).status_code == 404
    assert (await async_client.delete("/api/thresholds/hives/hive-x")).status_code == 404


@pytest.mark.anyio
async def test_non_finite_limit_rejected_with_400(async_client: httpx.AsyncClient):
    body = '{"temperature_min": NaN}'
    res = await async_client.put(
        "/api/thresholds/global", content=body, headers={"content-type": "application/json"}
    )
    assert res.status_code == 400
    assert (await async_client.get("/api/thresholds/global")).status_code == 404
