"""Shared fixtures for dispatch tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from dispatch.engine.models import Agent, AgentKind, TaskKind, TaskRequest


def build_agent(
    agent_id: str = "agent-a",
    capabilities: tuple[str, ...] = ("text-generation",),
    max_concurrent: int = 4,
    kind: AgentKind = AgentKind.GENERALIST,
    cost_per_task: float = 0.2,
    quality_score: float = 0.9,
    average_response_time_ms: float = 60_000,
    **kwargs: Any,
) -> Agent:
    return Agent(
        id=agent_id,
        name=agent_id.replace("-", " ").title(),
        kind=kind,
        capabilities=frozenset(capabilities),
        max_concurrent=max_concurrent,
        cost_per_task=cost_per_task,
        quality_score=quality_score,
        average_response_time_ms=average_response_time_ms,
        **kwargs,
    )


def build_task(task_id: str = "task-1", kind: TaskKind = TaskKind.TEXT, **kwargs: Any) -> TaskRequest:
    return TaskRequest(id=task_id, kind=kind, **kwargs)


@pytest.fixture
def make_agent() -> Callable[..., Agent]:
    """Factory for agents with sensible defaults."""
    return build_agent


@pytest.fixture
def make_task() -> Callable[..., TaskRequest]:
    """Factory for task requests with sensible defaults."""
    return build_task
