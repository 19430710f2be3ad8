"""Assignment Ledger - owns the task -> agent mapping and its load side effects."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import timedelta

from dispatch.config import DispatchConfig
from dispatch.engine.matcher import is_eligible, matched_required
from dispatch.engine.metrics import MetricsCollector
from dispatch.engine.models import (
    Agent,
    AgentKind,
    Availability,
    TaskAssignment,
    TaskRequest,
    TaskStatus,
    utcnow,
)
from dispatch.engine.registry import AgentRegistry
from dispatch.errors import (
    AssignmentNotFoundError,
    CapacityError,
    DuplicateAssignmentError,
)
from dispatch.feedback.performance import LearningEntry, LearningHistory, record_outcome
from dispatch.scoring.agent_scorer import ScoredAgent

logger = logging.getLogger(__name__)

CAPABILITY_CONFIDENCE_BOOST = 0.1
HIGH_LOAD_CONFIDENCE_PENALTY = 0.15
SPECIALIST_CONFIDENCE_BOOST = 0.1
SPECIALIST_CONFIDENCE_COMPLEXITY = 6


@dataclass
class _LedgerEntry:
    task: TaskRequest
    assignment: TaskAssignment


class AssignmentLedger:
    """
    Records active assignments.

    Lock order: agent locks (sorted) first, then the ledger lock. The
    registry's current_tasks and this mapping change together under both,
    so every active task is held by exactly one agent.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        config: DispatchConfig | None = None,
        history: LearningHistory | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or DispatchConfig()
        self.history = history or LearningHistory(self.config.learning_history_size)
        self.metrics = metrics or MetricsCollector()
        self._active: dict[str, _LedgerEntry] = {}
        self._lock = threading.Lock()

    # ---------------------------------------------------------
    # ASSIGN
    # ---------------------------------------------------------

    def assign(
        self,
        task: TaskRequest,
        agent: Agent,
        ranked: Sequence[ScoredAgent] = (),
        force: bool = False,
    ) -> TaskAssignment:
        """
        Bind a task to an agent and increment its load.

        Args:
            task: Task to assign
            agent: Chosen agent
            ranked: Scored candidates, best first, used for the fallback chain
            force: Allow exceeding max_concurrent (critical path)

        Raises:
            CapacityError: Agent went offline or filled up since it was scored
            DuplicateAssignmentError: Task already has an active assignment
        """
        with self.registry.locked(agent.id):
            if not agent.is_online:
                raise CapacityError(f"Agent {agent.id} is offline")
            overflow = not agent.has_capacity
            if overflow and not force:
                raise CapacityError(
                    f"Agent {agent.id} at capacity "
                    f"({len(agent.current_tasks)}/{agent.max_concurrent})"
                )

            with self._lock:
                if task.id in self._active:
                    holder = self._active[task.id].assignment.agent_id
                    logger.error("Duplicate assignment for task %s (held by %s)", task.id, holder)
                    raise DuplicateAssignmentError(
                        f"Task {task.id} already assigned to agent {holder}"
                    )

                confidence = self.calculate_confidence(agent, task)
                score = next((s.score for s in ranked if s.agent_id == agent.id), 0.0)
                assigned_at = utcnow()
                assignment = TaskAssignment(
                    task_id=task.id,
                    agent_id=agent.id,
                    assigned_at=assigned_at,
                    estimated_completion=assigned_at
                    + timedelta(milliseconds=agent.average_response_time_ms),
                    confidence=confidence,
                    reasoning=generate_reasoning(agent, task, confidence),
                    fallback_agents=self.fallback_agents(agent, task, ranked),
                    score=score,
                    forced=force,
                )

                self.registry.apply_load_delta(agent.id, task.id, +1, force=force)
                task.status = TaskStatus.ASSIGNED
                self._active[task.id] = _LedgerEntry(task=task, assignment=assignment)

        self.metrics.record_assignment(overflow=overflow)
        logger.info(
            "Task %s (%s/%s) assigned to %s (score %.3f, confidence %.0f%%, load %.0f%%)",
            task.id,
            task.kind.value,
            task.priority.value,
            agent.id,
            score,
            confidence * 100,
            agent.current_load_pct,
        )
        return replace(assignment, fallback_agents=list(assignment.fallback_agents))

    def calculate_confidence(self, agent: Agent, task: TaskRequest) -> float:
        """Confidence that the agent will succeed, from its record and fit."""
        confidence = agent.performance.success_rate
        confidence += CAPABILITY_CONFIDENCE_BOOST * matched_required(agent, task)

        if agent.current_load_pct > self.config.high_load_pct:
            confidence -= HIGH_LOAD_CONFIDENCE_PENALTY

        if (
            agent.kind == AgentKind.SPECIALIST
            and task.complexity > SPECIALIST_CONFIDENCE_COMPLEXITY
        ):
            confidence += SPECIALIST_CONFIDENCE_BOOST

        return max(0.0, min(confidence, self.config.max_confidence))

    def fallback_agents(
        self, primary: Agent, task: TaskRequest, ranked: Sequence[ScoredAgent]
    ) -> list[str]:
        """Next-best ranked agents that could still take the task."""
        fallbacks: list[str] = []
        for candidate in ranked:
            if len(fallbacks) >= self.config.max_fallbacks:
                break
            agent = candidate.agent
            if agent.id == primary.id:
                continue
            if agent.availability == Availability.AVAILABLE and is_eligible(agent, task):
                fallbacks.append(agent.id)
        return fallbacks

    # ---------------------------------------------------------
    # COMPLETE / CANCEL
    # ---------------------------------------------------------

    def complete(
        self, task_id: str, success: bool, quality: float, duration_ms: float
    ) -> TaskAssignment | None:
        """
        Retire an assignment and feed its outcome back.

        Unknown or already-completed tasks are a logged no-op, since late or
        duplicate completion reports are expected.

        Returns:
            The retired assignment, or None if there was nothing to retire
        """
        entry = self._retire(task_id, success, quality, duration_ms)
        if entry is None:
            return None
        entry.task.status = TaskStatus.COMPLETED if success else TaskStatus.FAILED
        return entry.assignment

    def cancel(self, task_id: str) -> TaskAssignment | None:
        """Cancel an active assignment through the failed-completion path."""
        with self._lock:
            entry = self._active.get(task_id)
        if entry is None:
            logger.info("Cancel for task %s ignored: no active assignment", task_id)
            return None

        elapsed_ms = (utcnow() - entry.assignment.assigned_at).total_seconds() * 1000
        retired = self._retire(task_id, False, 0.0, max(0.0, elapsed_ms))
        if retired is None:
            return None
        retired.task.status = TaskStatus.CANCELLED
        logger.info("Task %s cancelled on agent %s", task_id, retired.assignment.agent_id)
        return retired.assignment

    def _retire(
        self, task_id: str, success: bool, quality: float, duration_ms: float
    ) -> _LedgerEntry | None:
        if not 0.0 <= quality <= 1.0:
            raise ValueError(f"quality must be in [0.0, 1.0], got {quality}")
        if duration_ms < 0:
            raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")

        while True:
            with self._lock:
                entry = self._active.get(task_id)
            if entry is None:
                logger.info("Completion for task %s ignored: no active assignment", task_id)
                return None

            agent_id = entry.assignment.agent_id
            with self.registry.locked(agent_id), self._lock:
                current = self._active.get(task_id)
                if current is None:
                    logger.info("Completion for task %s ignored: already retired", task_id)
                    return None
                if current.assignment.agent_id != agent_id:
                    # Migrated between lookup and lock; retry against the new owner
                    continue

                agent = self.registry.get(agent_id)
                record_outcome(agent, success, quality, duration_ms)
                self.registry.apply_load_delta(agent_id, task_id, -1)
                del self._active[task_id]
                break

        assignment = current.assignment
        self.history.record(
            LearningEntry(
                task_id=task_id,
                agent_id=agent_id,
                task_kind=current.task.kind.value,
                success=success,
                quality=quality,
                estimated_duration_ms=(
                    assignment.estimated_completion - assignment.assigned_at
                ).total_seconds()
                * 1000,
                actual_duration_ms=duration_ms,
                confidence=assignment.confidence,
                timestamp=utcnow(),
            )
        )
        self.metrics.record_completion(success)
        logger.info(
            "Task %s %s on %s (quality %.2f, %.0f ms); agent success rate %.2f",
            task_id,
            "completed" if success else "failed",
            agent_id,
            quality,
            duration_ms,
            agent.performance.success_rate,
        )
        return current

    # ---------------------------------------------------------
    # REASSIGN
    # ---------------------------------------------------------

    def reassign(
        self,
        task_id: str,
        target_id: str,
        reason: str = "rebalance",
        max_target_load_pct: float | None = None,
    ) -> TaskAssignment:
        """
        Move an active assignment to another agent.

        When max_target_load_pct is given, the target must be strictly below
        it at commit time.

        Raises:
            AssignmentNotFoundError: Task has no active assignment (or moved meanwhile)
            AgentNotFoundError: Unknown target agent
            CapacityError: Target offline, full or at/above max_target_load_pct
        """
        with self._lock:
            entry = self._active.get(task_id)
        if entry is None:
            raise AssignmentNotFoundError(f"Task {task_id} has no active assignment")

        source_id = entry.assignment.agent_id
        if source_id == target_id:
            raise ValueError(f"Task {task_id} is already on agent {target_id}")
        target = self.registry.get(target_id)

        with self.registry.locked(source_id, target_id), self._lock:
            current = self._active.get(task_id)
            if current is None or current.assignment.agent_id != source_id:
                raise AssignmentNotFoundError(
                    f"Task {task_id} changed owner or completed during reassignment"
                )
            if not target.is_online or not target.has_capacity:
                raise CapacityError(f"Agent {target_id} cannot accept task {task_id}")
            if max_target_load_pct is not None and target.current_load_pct >= max_target_load_pct:
                raise CapacityError(
                    f"Agent {target_id} at {target.current_load_pct:.0f}% load, "
                    f"migration needs under {max_target_load_pct:.0f}%"
                )

            confidence = self.calculate_confidence(target, current.task)
            self.registry.apply_load_delta(target_id, task_id, +1)
            self.registry.apply_load_delta(source_id, task_id, -1)

            assigned_at = utcnow()
            current.assignment = replace(
                current.assignment,
                agent_id=target_id,
                assigned_at=assigned_at,
                estimated_completion=assigned_at
                + timedelta(milliseconds=target.average_response_time_ms),
                confidence=confidence,
                reasoning=f"Reassigned from {source_id}: {reason}",
                fallback_agents=[
                    f for f in current.assignment.fallback_agents if f != target_id
                ],
                forced=False,
            )
            current.task.status = TaskStatus.REASSIGNED
            updated = replace(
                current.assignment, fallback_agents=list(current.assignment.fallback_agents)
            )

        self.metrics.record_reassignment()
        logger.info("Reassigned task %s from %s to %s (%s)", task_id, source_id, target_id, reason)
        return updated

    # ---------------------------------------------------------
    # READ
    # ---------------------------------------------------------

    def get(self, task_id: str) -> TaskAssignment | None:
        with self._lock:
            entry = self._active.get(task_id)
            if entry is None:
                return None
            return replace(entry.assignment, fallback_agents=list(entry.assignment.fallback_agents))

    def agent_for(self, task_id: str) -> str | None:
        with self._lock:
            entry = self._active.get(task_id)
            return entry.assignment.agent_id if entry else None

    def task(self, task_id: str) -> TaskRequest | None:
        with self._lock:
            entry = self._active.get(task_id)
            return entry.task if entry else None

    def tasks_for_agent(self, agent_id: str) -> list[TaskRequest]:
        """Active tasks on an agent, in the order the agent took them."""
        agent = self.registry.get(agent_id)
        with self.registry.locked(agent_id), self._lock:
            return [
                self._active[t].task
                for t in agent.current_tasks
                if t in self._active and self._active[t].assignment.agent_id == agent_id
            ]

    def active(self) -> list[TaskAssignment]:
        with self._lock:
            return [
                replace(e.assignment, fallback_agents=list(e.assignment.fallback_agents))
                for e in self._active.values()
            ]

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)


def generate_reasoning(agent: Agent, task: TaskRequest, confidence: float) -> str:
    """Human-readable explanation of why an agent was picked."""
    reasons = []

    if agent.quality_score > 0.9:
        reasons.append("high quality score")
    if agent.current_load_pct < 50:
        reasons.append("low current load")
    if agent.capabilities & task.required_capabilities:
        reasons.append("perfect capability match")
    if agent.kind == AgentKind.SPECIALIST:
        reasons.append("specialized expertise")
    if confidence > 0.9:
        reasons.append("high confidence prediction")

    if not reasons:
        reasons.append("best available score")
    return f"Selected based on: {', '.join(reasons)}"
