"""Tests for the FastAPI server endpoints."""

from __future__ import annotations

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from skane_core.api import server
from skane_core.api.server import app
from skane_core.engine.scoring import IndexEngine
from skane_core.engine.tuning import IndexConfig
from skane_core.models import InternalState

HIGH_SIGNALS = {
    "brow_furrow": 0.9,
    "jaw_tension": 0.9,
    "head_jitter": 0.8,
    "lip_compression": 0.7,
    "symmetry_delta": 0.6,
    "eye_openness": 0.5,
    "blink_rate": 0.5,
    "skin_tone_variance": 0.5,
}


@pytest.fixture
async def client():
    """Async test client with lifespan (startup / shutdown) fully executed."""
    async with LifespanManager(app) as manager:
        transport = ASGITransport(app=manager.app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


async def _create(client: AsyncClient, **body) -> str:
    resp = await client.post("/sessions", json=body)
    assert resp.status_code == 201
    return resp.json()["session_id"]


async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_full_session_flow(client: AsyncClient, unique_id: str):
    session_id = await _create(client, user_id=f"user-{unique_id}")

    resp = await client.post(f"/sessions/{session_id}/scan")
    assert resp.json()["flow_state"] == "SCANNING"

    resp = await client.post(f"/sessions/{session_id}/scan/result", json={"signals": HIGH_SIGNALS})
    assert resp.status_code == 200
    body = resp.json()
    assert body["flow_state"] == "DECIDE"
    assert body["before_index"] - body["after_index"] >= 45
    assert body["micro_action"]
    # internal state and raw score never leave the service
    assert set(body) == {"session_id", "flow_state", "before_index", "after_index", "micro_action"}

    for path, expected in (
        ("action/start", "ACTION"),
        ("action/complete", "FEEDBACK"),
    ):
        resp = await client.post(f"/sessions/{session_id}/{path}")
        assert resp.json()["flow_state"] == expected

    resp = await client.post(f"/sessions/{session_id}/feedback", json={"feedback": "better"})
    assert resp.json()["flow_state"] == "RESULT"

    resp = await client.post(f"/sessions/{session_id}/share")
    assert resp.json()["flow_state"] == "SHARE"


async def test_guest_session(client: AsyncClient, unique_id: str):
    session_id = await _create(client, device_id=f"device-{unique_id}")
    await client.post(f"/sessions/{session_id}/scan")
    resp = await client.post(f"/sessions/{session_id}/scan/result", json={"signals": {}})
    assert resp.status_code == 200
    assert resp.json()["flow_state"] == "DECIDE"


async def test_illegal_transition_is_409(client: AsyncClient):
    session_id = await _create(client)
    resp = await client.post(f"/sessions/{session_id}/action/start")
    assert resp.status_code == 409
    assert resp.json()["flow_state"] == "IDLE"
    assert resp.json()["allowed"] == ["DECIDE"]


async def test_unknown_session_is_404(client: AsyncClient):
    resp = await client.get("/sessions/no-such-session")
    assert resp.status_code == 404
    resp = await client.post("/sessions/no-such-session/scan")
    assert resp.status_code == 404


async def test_duplicate_session_is_409(client: AsyncClient, unique_id: str):
    await _create(client, session_id=unique_id)
    resp = await client.post("/sessions", json={"session_id": unique_id})
    assert resp.status_code == 409


async def test_session_restored_from_storage(client: AsyncClient, unique_id: str):
    session_id = await _create(client, user_id=f"user-{unique_id}")
    await client.post(f"/sessions/{session_id}/scan")
    resp = await client.post(f"/sessions/{session_id}/scan/result", json={"signals": HIGH_SIGNALS})
    before = resp.json()

    server._sessions.evict(session_id)

    resp = await client.get(f"/sessions/{session_id}")
    assert resp.status_code == 200
    assert resp.json() == before
    resp = await client.post(f"/sessions/{session_id}/action/start")
    assert resp.json()["flow_state"] == "ACTION"


async def test_failed_scan_is_422_without_internal_state(
    client: AsyncClient, monkeypatch: pytest.MonkeyPatch, regulated_features
):
    strict = IndexConfig(
        min_delta={
            InternalState.HIGH_ACTIVATION: 45,
            InternalState.LOW_ENERGY: 38,
            InternalState.REGULATED: 90,
        },
        strict=True,
    )
    monkeypatch.setitem(server._sessions._components, "index_engine", IndexEngine(strict))

    session_id = await _create(client)
    await client.post(f"/sessions/{session_id}/scan")
    resp = await client.post(
        f"/sessions/{session_id}/scan/result",
        json={"signals": regulated_features.model_dump()},
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Scan could not be processed."
    assert "REGULATED" not in resp.text

    resp = await client.get(f"/sessions/{session_id}")
    assert resp.json()["flow_state"] == "ERROR"


async def test_invalid_feedback_is_422(client: AsyncClient):
    session_id = await _create(client)
    resp = await client.post(f"/sessions/{session_id}/feedback", json={"feedback": "amazing"})
    assert resp.status_code == 422


async def test_get_action(client: AsyncClient):
    resp = await client.get("/actions/box_breathing")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == "box_breathing"
    assert len(body["instructions"]) == 4

    resp = await client.get("/actions/jaw_release")
    assert resp.status_code == 404


async def test_list_actions_and_amplifier(client: AsyncClient):
    resp = await client.get("/actions")
    assert len(resp.json()["actions"]) == 11

    resp = await client.get("/amplifiers/warm_sip")
    assert resp.json()["duration"] == 5
