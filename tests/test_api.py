"""Tests for the FastAPI server."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from dispatch import Orchestrator
from dispatch.api.server import create_app


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def app() -> FastAPI:
    return create_app(Orchestrator(), run_rebalancer=False)


def client_for(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.anyio
async def test_health(app: FastAPI) -> None:
    async with client_for(app) as client:
        response = await client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert "uptime_seconds" in data
    assert data["rebalancer_running"] is False


@pytest.mark.anyio
async def test_submit_task(app: FastAPI) -> None:
    async with client_for(app) as client:
        response = await client.post("/api/tasks", json={"id": "t1", "kind": "text"})
    assert response.status_code == 200
    data = response.json()
    assert data["task_id"] == "t1"
    assert data["agent_id"] == "text-processing-generalist"
    assert data["reasoning"].startswith("Selected based on")
    assert data["forced"] is False


@pytest.mark.anyio
async def test_submit_validates_body(app: FastAPI) -> None:
    async with client_for(app) as client:
        bad_kind = await client.post("/api/tasks", json={"id": "t1", "kind": "hologram"})
        bad_complexity = await client.post(
            "/api/tasks", json={"id": "t2", "kind": "text", "complexity": 11}
        )
    assert bad_kind.status_code == 422
    assert bad_complexity.status_code == 422


@pytest.mark.anyio
async def test_duplicate_submit_conflicts(app: FastAPI) -> None:
    async with client_for(app) as client:
        await client.post("/api/tasks", json={"id": "t1", "kind": "text"})
        response = await client.post("/api/tasks", json={"id": "t1", "kind": "text"})
    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateAssignmentError"


@pytest.mark.anyio
async def test_no_capable_agent(app: FastAPI) -> None:
    async with client_for(app) as client:
        await client.put(
            "/api/agents/text-processing-generalist/availability",
            json={"availability": "offline"},
        )
        response = await client.post("/api/tasks", json={"id": "t1", "kind": "text"})
    assert response.status_code == 503
    assert response.json()["error"] == "NoCapableAgentError"


@pytest.mark.anyio
async def test_critical(app: FastAPI) -> None:
    async with client_for(app) as client:
        response = await client.post(
            "/api/tasks/critical", json={"id": "c1", "kind": "video", "priority": "low"}
        )
    assert response.status_code == 200
    data = response.json()
    assert data["forced"] is True
    assert data["agent_id"] == "hunyuan-video-specialist"


@pytest.mark.anyio
async def test_critical_all_offline(app: FastAPI) -> None:
    orch = app.state.orchestrator
    for agent in orch.agent_status():
        orch.set_availability(agent.id, "offline")
    async with client_for(app) as client:
        response = await client.post("/api/tasks/critical", json={"id": "c1", "kind": "text"})
    assert response.status_code == 503
    assert response.json()["error"] == "NoAgentsAvailableError"


@pytest.mark.anyio
async def test_predict(app: FastAPI) -> None:
    async with client_for(app) as client:
        response = await client.post("/api/tasks/predict", json={"id": "p1", "kind": "video"})
        assignments = await client.get("/api/assignments")
    assert response.status_code == 200
    data = response.json()
    assert data["agent_id"] == "hunyuan-video-specialist"
    assert set(data["candidates"]) == {"hunyuan-video-specialist", "mochi-video-specialist"}
    assert assignments.json()["count"] == 0


@pytest.mark.anyio
async def test_report_and_repeat(app: FastAPI) -> None:
    async with client_for(app) as client:
        await client.post("/api/tasks", json={"id": "t1", "kind": "text"})
        first = await client.post(
            "/api/tasks/t1/report", json={"success": True, "quality": 0.9, "duration_ms": 1200}
        )
        second = await client.post(
            "/api/tasks/t1/report", json={"success": True, "quality": 0.9, "duration_ms": 1200}
        )
        learning = await client.get("/api/learning")
    assert first.json() == {"task_id": "t1", "retired": True}
    assert second.status_code == 200
    assert second.json() == {"task_id": "t1", "retired": False}
    data = learning.json()
    assert len(data["entries"]) == 1
    assert data["summary"]["entries"] == 1


@pytest.mark.anyio
async def test_report_validates_quality(app: FastAPI) -> None:
    async with client_for(app) as client:
        response = await client.post(
            "/api/tasks/t1/report", json={"success": True, "quality": 1.5, "duration_ms": 10}
        )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_cancel(app: FastAPI) -> None:
    async with client_for(app) as client:
        await client.post("/api/tasks", json={"id": "t1", "kind": "text"})
        response = await client.post("/api/tasks/t1/cancel")
        assignments = await client.get("/api/assignments")
    assert response.json() == {"task_id": "t1", "cancelled": True}
    assert assignments.json() == {"assignments": [], "count": 0}


@pytest.mark.anyio
async def test_agents(app: FastAPI) -> None:
    async with client_for(app) as client:
        await client.post("/api/tasks", json={"id": "t1", "kind": "text"})
        response = await client.get("/api/agents")
    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 7
    generalist = next(a for a in data["agents"] if a["id"] == "text-processing-generalist")
    assert generalist["current_tasks"] == ["t1"]
    assert generalist["current_load_pct"] == 10.0


@pytest.mark.anyio
async def test_availability_unknown_agent(app: FastAPI) -> None:
    async with client_for(app) as client:
        response = await client.put("/api/agents/ghost/availability", json={"availability": "offline"})
    assert response.status_code == 404
    assert response.json()["error"] == "AgentNotFoundError"


@pytest.mark.anyio
async def test_availability_round_trip(app: FastAPI) -> None:
    async with client_for(app) as client:
        offline = await client.put(
            "/api/agents/audio-specialist/availability", json={"availability": "offline"}
        )
        online = await client.put(
            "/api/agents/audio-specialist/availability", json={"availability": "available"}
        )
    assert offline.json()["availability"] == "offline"
    assert online.json()["availability"] == "available"


@pytest.mark.anyio
async def test_metrics(app: FastAPI) -> None:
    async with client_for(app) as client:
        await client.post("/api/tasks", json={"id": "t1", "kind": "image"})
        response = await client.get("/api/metrics")
    assert response.status_code == 200
    data = response.json()
    assert data["total_tasks_assigned"] == 1
    assert data["active_assignments"] == 1
    assert data["capacity_overrides"] == 0


@pytest.mark.anyio
async def test_learning_limit(app: FastAPI) -> None:
    async with client_for(app) as client:
        response = await client.get("/api/learning", params={"limit": 0})
    assert response.status_code == 422
