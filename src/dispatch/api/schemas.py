"""
API Schemas - Request/Response Models

Pydantic models for request validation and documentation.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from dispatch.engine.models import Availability, Priority, TaskKind, TaskRequest


class TaskSchema(BaseModel):
    """Task submission schema."""

    id: str = Field(..., min_length=1)
    kind: TaskKind
    priority: Priority = Priority.MEDIUM
    complexity: int = Field(5, ge=1, le=10, description="Complexity (1-10)")
    required_capabilities: list[str] = Field(default_factory=list)
    prompt: str = ""
    estimated_duration_ms: float | None = Field(None, ge=0)
    deadline: datetime | None = None

    def to_task(self) -> TaskRequest:
        return TaskRequest(
            id=self.id,
            kind=self.kind,
            priority=self.priority,
            complexity=self.complexity,
            required_capabilities=frozenset(self.required_capabilities),
            prompt=self.prompt,
            estimated_duration_ms=self.estimated_duration_ms,
            deadline=self.deadline,
        )


class CompletionReport(BaseModel):
    """Completion callback from an executor."""

    success: bool
    quality: float = Field(0.0, ge=0.0, le=1.0)
    duration_ms: float = Field(..., ge=0)


class AvailabilityUpdate(BaseModel):
    """Administrative availability change."""

    availability: Availability


class AssignmentResponse(BaseModel):
    """Assignment information response."""

    task_id: str
    agent_id: str
    assigned_at: datetime
    estimated_completion: datetime
    confidence: float
    reasoning: str
    fallback_agents: list[str]
    score: float
    forced: bool


class PredictionResponse(BaseModel):
    """Dry-run selection response."""

    agent_id: str
    score: float
    confidence: float
    candidates: dict[str, float]
