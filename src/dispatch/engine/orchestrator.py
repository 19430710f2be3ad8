"""Orchestrator - entry point wiring matcher, scorer, selector, ledger and rebalancer."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from types import TracebackType

from dispatch.config import DispatchConfig
from dispatch.engine.defaults import default_agents
from dispatch.engine.ledger import AssignmentLedger
from dispatch.engine.matcher import find_capable
from dispatch.engine.metrics import MetricsCollector
from dispatch.engine.models import (
    Agent,
    Availability,
    OrchestrationMetrics,
    Priority,
    TaskAssignment,
    TaskRequest,
    TaskStatus,
)
from dispatch.engine.rebalancer import Migration, Rebalancer
from dispatch.engine.registry import AgentRegistry
from dispatch.engine.selector import select, select_top
from dispatch.errors import (
    CapacityError,
    DuplicateAssignmentError,
    NoAgentsAvailableError,
    NoCapableAgentError,
)
from dispatch.feedback.performance import LearningEntry, LearningHistory
from dispatch.scoring.agent_scorer import rank_agents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    """Dry-run selection result."""

    agent_id: str
    score: float
    confidence: float
    candidates: list[tuple[str, float]]


class Orchestrator:
    """
    Task assignment and load balancing for an agent pool.

    Workflow:
    1. Match capable agents (online, spare capacity, capability overlap)
    2. Score each candidate
    3. Select with the clear-winner / load tie-break rule
    4. Commit through the ledger, revalidating capacity under the agent lock
    5. Feed completion reports back into agent performance
    6. Rebalance overloaded agents in the background

    Constructed once by the host and passed to whoever needs it.
    """

    def __init__(
        self,
        config: DispatchConfig | None = None,
        agents: Iterable[Agent] | None = None,
    ) -> None:
        self.config = config or DispatchConfig()
        self.registry = AgentRegistry(default_agents() if agents is None else agents)
        self.metrics = MetricsCollector()
        self.history = LearningHistory(self.config.learning_history_size)
        self.ledger = AssignmentLedger(self.registry, self.config, self.history, self.metrics)
        self.rebalancer = Rebalancer(self.registry, self.ledger, self.config)
        logger.info("Orchestrator ready with %d agents", len(self.registry))

    # ---------------------------------------------------------
    # POOL ADMINISTRATION
    # ---------------------------------------------------------

    def register_agent(self, agent: Agent) -> Agent:
        return self.registry.register(agent).snapshot()

    def set_availability(self, agent_id: str, state: Availability | str) -> Agent:
        return self.registry.set_availability(agent_id, state).snapshot()

    # ---------------------------------------------------------
    # ASSIGNMENT
    # ---------------------------------------------------------

    def submit(self, task: TaskRequest) -> TaskAssignment:
        """
        Assign a task to the best capable agent.

        Raises:
            NoCapableAgentError: No online agent with spare capacity matches
            DuplicateAssignmentError: Task already has an active assignment
        """
        start = time.perf_counter()
        self._check_not_assigned(task)
        task.status = TaskStatus.QUEUED
        logger.debug("Submitting task %s: %s", task.id, task.prompt[:50])

        excluded: set[str] = set()
        while True:
            capable = find_capable(task, self.registry.list_agents(), exclude=excluded)
            if not capable:
                raise NoCapableAgentError(
                    f"No agents available for task {task.id} (type: {task.kind.value})"
                )

            ranked = rank_agents(capable, task, self.config)
            chosen = select(ranked, self.config)
            try:
                assignment = self.ledger.assign(task, chosen.agent, ranked)
            except CapacityError as e:
                # Lost a race for the slot; pick again without this agent
                logger.info("Reselecting for task %s: %s", task.id, e)
                excluded.add(chosen.agent_id)
                continue
            break

        self.metrics.record_assignment_time((time.perf_counter() - start) * 1000)
        return assignment

    def assign_critical(self, task: TaskRequest) -> TaskAssignment:
        """
        Force-assign urgent work to the top-scoring online agent.

        Capacity is ignored: the agent may end up above max_concurrent,
        which is logged as a deliberate violation.

        Raises:
            NoAgentsAvailableError: Every agent is offline
            DuplicateAssignmentError: Task already has an active assignment
        """
        start = time.perf_counter()
        self._check_not_assigned(task)
        task.priority = Priority.CRITICAL
        task.status = TaskStatus.QUEUED

        excluded: set[str] = set()
        while True:
            online = [a for a in self.registry.list_online() if a.id not in excluded]
            if not online:
                raise NoAgentsAvailableError(f"No agents available for critical task {task.id}")

            ranked = rank_agents(online, task, self.config)
            best = select_top(ranked)
            try:
                assignment = self.ledger.assign(task, best.agent, ranked, force=True)
            except CapacityError as e:
                logger.info("Reselecting for critical task %s: %s", task.id, e)
                excluded.add(best.agent_id)
                continue
            break

        self.metrics.record_assignment_time((time.perf_counter() - start) * 1000)
        logger.warning(
            "CRITICAL task %s force-assigned to %s (load now %.0f%%)",
            task.id,
            best.agent_id,
            best.agent.current_load_pct,
        )
        return assignment

    def predict(self, task: TaskRequest) -> Prediction:
        """Which agent submit() would pick right now, without assigning."""
        capable = find_capable(task, self.registry.list_agents())
        if not capable:
            raise NoCapableAgentError(
                f"No agents available for task {task.id} (type: {task.kind.value})"
            )
        ranked = rank_agents(capable, task, self.config)
        chosen = select(ranked, self.config)
        return Prediction(
            agent_id=chosen.agent_id,
            score=chosen.score,
            confidence=self.ledger.calculate_confidence(chosen.agent, task),
            candidates=[(s.agent_id, s.score) for s in ranked],
        )

    def _check_not_assigned(self, task: TaskRequest) -> None:
        holder = self.ledger.agent_for(task.id)
        if holder is not None:
            logger.error("Task %s submitted while assigned to %s", task.id, holder)
            raise DuplicateAssignmentError(f"Task {task.id} already assigned to agent {holder}")

    # ---------------------------------------------------------
    # COMPLETION
    # ---------------------------------------------------------

    def report(
        self, task_id: str, success: bool, quality: float, duration_ms: float
    ) -> TaskAssignment | None:
        """Completion callback from the executor. Idempotent."""
        return self.ledger.complete(task_id, success, quality, duration_ms)

    def cancel(self, task_id: str) -> TaskAssignment | None:
        """Cancel an assigned task. Unassigned or finished tasks are a no-op."""
        return self.ledger.cancel(task_id)

    # ---------------------------------------------------------
    # REBALANCING
    # ---------------------------------------------------------

    def rebalance(self) -> list[Migration]:
        return self.rebalancer.run_once()

    def start(self) -> None:
        self.rebalancer.start()

    def stop(self) -> None:
        self.rebalancer.stop()

    def __enter__(self) -> Orchestrator:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    # ---------------------------------------------------------
    # OBSERVABILITY
    # ---------------------------------------------------------

    def agent_status(self) -> list[Agent]:
        return self.registry.snapshot()

    def system_metrics(self) -> OrchestrationMetrics:
        return self.metrics.compute(self.registry, len(self.ledger))

    def active_assignments(self) -> list[TaskAssignment]:
        return self.ledger.active()

    def learning_history(self) -> list[LearningEntry]:
        return self.history.entries()
