"""Rebalancer - migrates non-critical work off overloaded agents."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from types import TracebackType

from dispatch.config import DispatchConfig
from dispatch.engine.ledger import AssignmentLedger
from dispatch.engine.matcher import find_capable
from dispatch.engine.models import MIGRATABLE_PRIORITIES
from dispatch.engine.registry import AgentRegistry
from dispatch.errors import DispatchError
from dispatch.scoring.agent_scorer import rank_agents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """A task moved from one agent to another."""

    task_id: str
    source_id: str
    target_id: str


class Rebalancer:
    """
    Periodic load redistribution.

    Each pass looks at agents above the overload threshold that hold more
    than one task, and tries to move one low/medium priority task to the
    best-scoring capable agent under the migration target load. When no
    destination qualifies the task stays put: overload is tolerated over
    starvation. A pass never raises.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        ledger: AssignmentLedger,
        config: DispatchConfig | None = None,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.config = config or DispatchConfig()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ---------------------------------------------------------
    # SINGLE PASS
    # ---------------------------------------------------------

    def run_once(self) -> list[Migration]:
        """Run one rebalancing pass and return the migrations performed."""
        migrations: list[Migration] = []

        overloaded = [
            (a, a.current_load_pct)
            for a in self.registry.list_agents()
            if a.current_load_pct > self.config.overload_threshold_pct
        ]

        for agent, load_pct in overloaded:
            if len(agent.current_tasks) <= 1:
                continue

            movable = [
                t for t in self.ledger.tasks_for_agent(agent.id) if t.priority in MIGRATABLE_PRIORITIES
            ][:1]

            for task in movable:
                migration = self._migrate(task.id, agent.id, load_pct)
                if migration is not None:
                    migrations.append(migration)

        return migrations

    def _migrate(self, task_id: str, source_id: str, source_load_pct: float) -> Migration | None:
        task = self.ledger.task(task_id)
        if task is None:
            return None

        destinations = [
            a
            for a in find_capable(task, self.registry.list_agents(), exclude={source_id})
            if a.current_load_pct < self.config.migration_target_max_pct
        ]
        if not destinations:
            logger.debug("No destination for task %s on overloaded %s", task_id, source_id)
            return None

        target = rank_agents(destinations, task, self.config)[0].agent
        try:
            self.ledger.reassign(
                task_id,
                target.id,
                reason=f"source load {source_load_pct:.0f}% over "
                f"{self.config.overload_threshold_pct:.0f}%",
                max_target_load_pct=self.config.migration_target_max_pct,
            )
        except (DispatchError, ValueError) as e:
            logger.warning("Migration of task %s from %s failed: %s", task_id, source_id, e)
            return None

        return Migration(task_id=task_id, source_id=source_id, target_id=target.id)

    # ---------------------------------------------------------
    # BACKGROUND LOOP
    # ---------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="dispatch-rebalancer", daemon=True
        )
        self._thread.start()
        logger.info(
            "Rebalancer started (interval %.1fs)", self.config.rebalance_interval_seconds
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the loop to exit and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Rebalancer stopped")

    def _loop(self) -> None:
        while not self._stop.wait(self.config.rebalance_interval_seconds):
            try:
                migrations = self.run_once()
                self._log_status(len(migrations))
            except Exception:
                # Redistribution is best-effort; keep the loop alive
                logger.exception("Rebalance pass failed")

    def _log_status(self, migrated: int) -> None:
        agents = self.registry.list_agents()
        active = [a for a in agents if a.current_tasks]
        total_tasks = sum(len(a.current_tasks) for a in active)
        logger.info(
            "Orchestration status: %d active tasks across %d agents, %d migrated",
            total_tasks,
            len(active),
            migrated,
        )

    def __enter__(self) -> Rebalancer:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
