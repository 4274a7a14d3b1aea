"""
Tests for the access queue and queue admin endpoints.
"""

import pytest
from httpx import AsyncClient


def session(session_id: str, user_id: int = None) -> dict:
    headers = {"X-Session-ID": session_id}
    if user_id is not None:
        headers["X-User-ID"] = str(user_id)
    return headers


@pytest.mark.asyncio
async def test_join_and_wait(client: AsyncClient):
    """Two slots: the third session waits at position 1."""
    for sid in ("a", "b"):
        response = await client.post("/api/v1/queue/join", headers=session(sid))
        assert response.status_code == 200
        assert response.json()["can_access"] is True

    response = await client.post("/api/v1/queue/join", headers=session("c", user_id=5))
    data = response.json()
    assert data["status"] == "waiting"
    assert data["can_access"] is False
    assert data["position"] == 1
    assert data["estimated_wait_time"] == 2


@pytest.mark.asyncio
async def test_join_requires_session_header(client: AsyncClient):
    response = await client.post("/api/v1/queue/join")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_status_promotes_after_leave(client: AsyncClient):
    for sid in ("a", "b", "c"):
        await client.post("/api/v1/queue/join", headers=session(sid))

    left = await client.delete("/api/v1/queue/leave", headers=session("a"))
    assert left.json() == {"removed": True, "message": "Left queue successfully"}

    status = await client.get("/api/v1/queue/status", headers=session("c"))
    data = status.json()
    assert data["status"] == "active"
    assert data["can_access"] is True
    assert data["total_active"] == 2
    assert data["total_waiting"] == 0


@pytest.mark.asyncio
async def test_status_not_in_queue(client: AsyncClient):
    response = await client.get("/api/v1/queue/status", headers=session("ghost"))
    assert response.status_code == 200
    assert response.json()["status"] == "not_in_queue"


@pytest.mark.asyncio
async def test_leave_when_absent(client: AsyncClient):
    response = await client.delete("/api/v1/queue/leave", headers=session("ghost"))
    assert response.json()["removed"] is False


@pytest.mark.asyncio
async def test_disable_and_enable(client: AsyncClient):
    """Disabled queue lets everyone in; enabling resumes enforcement."""
    disabled = await client.post("/api/v1/admin/queue/disable")
    assert disabled.json()["queue_enabled"] is False

    for sid in ("a", "b", "c"):
        response = await client.post("/api/v1/queue/join", headers=session(sid))
        assert response.json()["can_access"] is True

    enabled = await client.post("/api/v1/admin/queue/enable")
    assert enabled.json() == {"queue_enabled": True, "max_active_users": 2, "session_duration": 15}

    stats = (await client.get("/api/v1/admin/queue/stats")).json()
    assert stats["total_active"] == 0
    assert stats["total_waiting"] == 0


@pytest.mark.asyncio
async def test_set_max_users(client: AsyncClient):
    for sid in ("a", "b", "c", "d"):
        await client.post("/api/v1/queue/join", headers=session(sid))

    raised = await client.put("/api/v1/admin/queue/max-users", json={"max_users": 3})
    assert raised.status_code == 200
    assert raised.json()["activated"] == 1
    assert raised.json()["current_active"] == 3

    lowered = await client.put("/api/v1/admin/queue/max-users", json={"max_users": 1})
    data = lowered.json()
    assert data["over_limit"] is True
    assert data["current_active"] == 3
    assert "above the new limit" in data["message"]


@pytest.mark.asyncio
async def test_set_max_users_validation(client: AsyncClient):
    response = await client.put("/api/v1/admin/queue/max-users", json={"max_users": 0})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_clear_and_activate(client: AsyncClient):
    for sid in ("a", "b", "c", "d"):
        await client.post("/api/v1/queue/join", headers=session(sid))

    await client.delete("/api/v1/queue/leave", headers=session("a"))
    activated = await client.post("/api/v1/admin/queue/activate-next")
    assert activated.json() == {"activated_count": 1, "active": 2, "waiting": 1}

    cleared = await client.delete("/api/v1/admin/queue/clear-waiting")
    assert cleared.json() == {"deleted_count": 1}

    expired = await client.delete("/api/v1/admin/queue/clear-expired")
    assert expired.json() == {"deleted_count": 0}


@pytest.mark.asyncio
async def test_stats_endpoint(client: AsyncClient):
    for sid in ("a", "b", "c"):
        await client.post("/api/v1/queue/join", headers=session(sid))

    response = await client.get("/api/v1/admin/queue/stats")
    assert response.status_code == 200
    data = response.json()
    assert data["total_active"] == 2
    assert data["total_waiting"] == 1
    assert data["queue_enabled"] is True
    assert data["average_wait_time"] == 2.0
    assert len(data["recent_activity"]) == 3


@pytest.mark.asyncio
async def test_health_and_metrics(client: AsyncClient):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["cache"] == {"status": "disabled"}

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "ticket_reservation_attempts_total" in metrics.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    headers = {**session("a", user_id=9), "X-Request-ID": "door-42"}
    response = await client.get("/api/v1/queue/status", headers=headers)
    assert response.headers["X-Request-ID"] == "door-42"
    assert response.headers["X-Response-Time"].endswith("ms")
