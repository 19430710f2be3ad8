"""Assignment engine: data model, registry and capability matching."""

from dispatch.engine.matcher import (
    TASK_KIND_CAPABILITIES,
    find_capable,
    is_capable,
    is_eligible,
)
from dispatch.engine.models import (
    Agent,
    AgentKind,
    Availability,
    OrchestrationMetrics,
    PerformanceRecord,
    Priority,
    TaskAssignment,
    TaskKind,
    TaskRequest,
    TaskStatus,
)
from dispatch.engine.registry import AgentRegistry

__all__ = [
    "Agent",
    "AgentKind",
    "AgentRegistry",
    "Availability",
    "OrchestrationMetrics",
    "PerformanceRecord",
    "Priority",
    "TASK_KIND_CAPABILITIES",
    "TaskAssignment",
    "TaskKind",
    "TaskRequest",
    "TaskStatus",
    "find_capable",
    "is_capable",
    "is_eligible",
]
