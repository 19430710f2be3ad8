"""Dispatch data model - agents, task requests, assignments and metrics."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentKind(StrEnum):
    """Agent specialization."""

    SPECIALIST = "specialist"
    GENERALIST = "generalist"
    HYBRID = "hybrid"


class Availability(StrEnum):
    """Agent availability states."""

    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class TaskKind(StrEnum):
    """Task types accepted by the dispatcher."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    REASONING = "reasoning"
    VISION = "vision"
    OCR = "ocr"
    TRANSCRIPTION = "transcription"


class Priority(StrEnum):
    """Task priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskStatus(StrEnum):
    """Task lifecycle states."""

    CREATED = "created"
    QUEUED = "queued"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    FAILED = "failed"
    REASSIGNED = "reassigned"
    CANCELLED = "cancelled"


# Priorities the rebalancer is allowed to migrate
MIGRATABLE_PRIORITIES = frozenset({Priority.LOW, Priority.MEDIUM})


@dataclass
class PerformanceRecord:
    """Running performance aggregates for an agent."""

    tasks_completed: int = 0
    success_rate: float = 0.95
    average_quality: float = 0.85
    last_updated: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.tasks_completed < 0:
            raise ValueError(f"tasks_completed must be >= 0, got {self.tasks_completed}")
        for name in ("success_rate", "average_quality"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0.0, 1.0], got {value}")


@dataclass
class Agent:
    """
    A schedulable worker.

    current_tasks and availability are mutated only through
    AgentRegistry.apply_load_delta / set_availability. Load percentage is
    always derived from current_tasks.
    """

    id: str
    name: str
    kind: AgentKind
    capabilities: frozenset[str]
    max_concurrent: int
    cost_per_task: float
    quality_score: float
    average_response_time_ms: float
    availability: Availability = Availability.AVAILABLE
    current_tasks: list[str] = field(default_factory=list)
    performance: PerformanceRecord = field(default_factory=PerformanceRecord)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("agent id must be non-empty")
        self.kind = AgentKind(self.kind)
        self.availability = Availability(self.availability)
        self.capabilities = frozenset(self.capabilities)
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {self.max_concurrent}")
        if self.cost_per_task < 0:
            raise ValueError(f"cost_per_task must be >= 0, got {self.cost_per_task}")
        if not 0.0 <= self.quality_score <= 1.0:
            raise ValueError(f"quality_score must be in [0.0, 1.0], got {self.quality_score}")
        if self.average_response_time_ms <= 0:
            raise ValueError(
                f"average_response_time_ms must be > 0, got {self.average_response_time_ms}"
            )
        if len(set(self.current_tasks)) != len(self.current_tasks):
            raise ValueError("current_tasks must not contain duplicates")

    @property
    def current_load_pct(self) -> float:
        return len(self.current_tasks) / self.max_concurrent * 100

    @property
    def has_capacity(self) -> bool:
        return len(self.current_tasks) < self.max_concurrent

    @property
    def is_online(self) -> bool:
        return self.availability != Availability.OFFLINE

    def snapshot(self) -> Agent:
        """Detached copy for read-only consumers."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "capabilities": sorted(self.capabilities),
            "max_concurrent": self.max_concurrent,
            "current_tasks": list(self.current_tasks),
            "current_load_pct": round(self.current_load_pct, 2),
            "availability": self.availability.value,
            "cost_per_task": self.cost_per_task,
            "quality_score": round(self.quality_score, 4),
            "average_response_time_ms": round(self.average_response_time_ms, 1),
            "performance": {
                "tasks_completed": self.performance.tasks_completed,
                "success_rate": round(self.performance.success_rate, 4),
                "average_quality": round(self.performance.average_quality, 4),
                "last_updated": self.performance.last_updated.isoformat(),
            },
        }


@dataclass
class TaskRequest:
    """A unit of work to be assigned."""

    id: str
    kind: TaskKind
    priority: Priority = Priority.MEDIUM
    complexity: int = 5  # 1-10
    required_capabilities: frozenset[str] = field(default_factory=frozenset)
    prompt: str = ""
    estimated_duration_ms: float | None = None
    deadline: datetime | None = None
    status: TaskStatus = TaskStatus.CREATED

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("task id must be non-empty")
        self.kind = TaskKind(self.kind)
        self.priority = Priority(self.priority)
        self.status = TaskStatus(self.status)
        self.required_capabilities = frozenset(self.required_capabilities)
        if not 1 <= self.complexity <= 10:
            raise ValueError(f"complexity must be in [1, 10], got {self.complexity}")
        if self.estimated_duration_ms is not None and self.estimated_duration_ms < 0:
            raise ValueError(
                f"estimated_duration_ms must be >= 0, got {self.estimated_duration_ms}"
            )


@dataclass
class TaskAssignment:
    """Binding of a task to an agent at a point in time."""

    task_id: str
    agent_id: str
    assigned_at: datetime
    estimated_completion: datetime
    confidence: float
    reasoning: str
    fallback_agents: list[str] = field(default_factory=list)
    score: float = 0.0
    forced: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0.0, 1.0], got {self.confidence}")

    def to_dict(self) -> dict[str, object]:
        return {
            "task_id": self.task_id,
            "agent_id": self.agent_id,
            "assigned_at": self.assigned_at.isoformat(),
            "estimated_completion": self.estimated_completion.isoformat(),
            "confidence": round(self.confidence, 4),
            "reasoning": self.reasoning,
            "fallback_agents": list(self.fallback_agents),
            "score": round(self.score, 4),
            "forced": self.forced,
        }


@dataclass(frozen=True)
class OrchestrationMetrics:
    """Observational counters. Safe to recompute at any time."""

    total_tasks_assigned: int
    total_tasks_completed: int
    task_success_rate: float
    average_assignment_time_ms: float
    resource_utilization: float  # busy agents / all agents
    average_load_pct: float
    active_assignments: int
    system_throughput: int
    tasks_reassigned: int
    capacity_overrides: int
