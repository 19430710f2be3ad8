"""FastAPI server exposing submit/report/status over HTTP."""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

import click
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from dispatch import __version__
from dispatch.api.schemas import (
    AssignmentResponse,
    AvailabilityUpdate,
    CompletionReport,
    PredictionResponse,
    TaskSchema,
)
from dispatch.config import DispatchConfig, load_config
from dispatch.engine.models import TaskAssignment
from dispatch.engine.orchestrator import Orchestrator
from dispatch.errors import (
    AgentNotFoundError,
    DispatchError,
    DuplicateAssignmentError,
    NoAgentsAvailableError,
    NoCapableAgentError,
)

_STATUS_CODES: dict[type[DispatchError], int] = {
    NoCapableAgentError: 503,
    NoAgentsAvailableError: 503,
    DuplicateAssignmentError: 409,
    AgentNotFoundError: 404,
}


def _assignment_response(assignment: TaskAssignment) -> AssignmentResponse:
    return AssignmentResponse(**asdict(assignment))


def create_app(
    orchestrator: Orchestrator | None = None,
    config: DispatchConfig | None = None,
    run_rebalancer: bool = True,
) -> FastAPI:
    """
    Build the API around an orchestrator.

    The rebalancer runs for the lifetime of the app when run_rebalancer is set.
    """
    orch = orchestrator or Orchestrator(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if run_rebalancer:
            orch.start()
        try:
            yield
        finally:
            orch.stop()

    app = FastAPI(
        title="Agent Dispatch API",
        version=__version__,
        description="Capacity-aware task assignment for AI agent pools",
        lifespan=lifespan,
    )
    app.state.orchestrator = orch
    app.state.start_time = time.monotonic()

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
        status = next(
            (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 400
        )
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        """Health check."""
        uptime = time.monotonic() - app.state.start_time
        return {
            "status": "ok",
            "version": __version__,
            "uptime_seconds": round(uptime, 1),
            "rebalancer_running": orch.rebalancer.running,
        }

    @app.post("/api/tasks", response_model=AssignmentResponse)
    def submit(task: TaskSchema) -> AssignmentResponse:
        """Assign a task to the best capable agent."""
        return _assignment_response(orch.submit(task.to_task()))

    @app.post("/api/tasks/critical", response_model=AssignmentResponse)
    def submit_critical(task: TaskSchema) -> AssignmentResponse:
        """Force-assign a critical task, ignoring capacity."""
        return _assignment_response(orch.assign_critical(task.to_task()))

    @app.post("/api/tasks/predict", response_model=PredictionResponse)
    def predict(task: TaskSchema) -> PredictionResponse:
        """Show which agent would be picked, without assigning."""
        prediction = orch.predict(task.to_task())
        return PredictionResponse(
            agent_id=prediction.agent_id,
            score=prediction.score,
            confidence=prediction.confidence,
            candidates=dict(prediction.candidates),
        )

    @app.post("/api/tasks/{task_id}/report")
    def report(task_id: str, body: CompletionReport) -> dict[str, Any]:
        """Completion callback. Unknown or finished tasks are acknowledged as no-ops."""
        retired = orch.report(task_id, body.success, body.quality, body.duration_ms)
        return {"task_id": task_id, "retired": retired is not None}

    @app.post("/api/tasks/{task_id}/cancel")
    def cancel(task_id: str) -> dict[str, Any]:
        """Cancel an assigned task."""
        retired = orch.cancel(task_id)
        return {"task_id": task_id, "cancelled": retired is not None}

    @app.get("/api/assignments")
    def assignments() -> dict[str, Any]:
        """Active assignments."""
        active = [a.to_dict() for a in orch.active_assignments()]
        return {"assignments": active, "count": len(active)}

    @app.get("/api/agents")
    def agents() -> dict[str, Any]:
        """Agent pool with live load."""
        pool = [a.to_dict() for a in orch.agent_status()]
        return {"agents": pool, "count": len(pool)}

    @app.put("/api/agents/{agent_id}/availability")
    def set_availability(agent_id: str, body: AvailabilityUpdate) -> dict[str, Any]:
        """Take an agent offline or bring it back."""
        return orch.set_availability(agent_id, body.availability).to_dict()

    @app.get("/api/metrics")
    def metrics() -> dict[str, Any]:
        """Orchestration metrics."""
        return asdict(orch.system_metrics())

    @app.get("/api/learning")
    def learning(limit: int = 50) -> dict[str, Any]:
        """Recent completion outcomes and calibration summary."""
        if limit < 1:
            raise HTTPException(status_code=422, detail="limit must be >= 1")
        entries = orch.learning_history()[-limit:]
        return {
            "entries": [e.to_dict() for e in entries],
            "summary": orch.history.summary(),
        }

    return app


@click.command()
@click.option("--port", default=3850, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--config", "config_path", default=None, help="Path to config JSON")
def main(port: int, host: str, config_path: str | None) -> None:
    """Start the Dispatch API server."""
    import uvicorn

    from dispatch.log import setup_logging

    setup_logging()
    uvicorn.run(create_app(config=load_config(config_path)), host=host, port=port)
