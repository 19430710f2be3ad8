"""Orchestration metrics - event counters plus values derived from live state."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from dispatch.engine.models import Availability, OrchestrationMetrics

if TYPE_CHECKING:
    from dispatch.engine.registry import AgentRegistry


class MetricsCollector:
    """Thread-safe event counters. Not authoritative state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.assigned = 0
        self.completed = 0
        self.succeeded = 0
        self.reassigned = 0
        self.capacity_overrides = 0
        self._assignment_time_total_ms = 0.0
        self._assignment_time_samples = 0

    def record_assignment(self, overflow: bool = False) -> None:
        with self._lock:
            self.assigned += 1
            if overflow:
                self.capacity_overrides += 1

    def record_assignment_time(self, elapsed_ms: float) -> None:
        with self._lock:
            self._assignment_time_total_ms += elapsed_ms
            self._assignment_time_samples += 1

    def record_completion(self, success: bool) -> None:
        with self._lock:
            self.completed += 1
            if success:
                self.succeeded += 1

    def record_reassignment(self) -> None:
        with self._lock:
            self.reassigned += 1

    def compute(self, registry: AgentRegistry, active_assignments: int) -> OrchestrationMetrics:
        """Combine counters with the registry's current load picture."""
        agents = registry.list_agents()
        busy = sum(1 for a in agents if a.availability == Availability.BUSY)

        with self._lock:
            avg_time = (
                self._assignment_time_total_ms / self._assignment_time_samples
                if self._assignment_time_samples
                else 0.0
            )
            success_rate = self.succeeded / self.completed if self.completed else 0.0
            return OrchestrationMetrics(
                total_tasks_assigned=self.assigned,
                total_tasks_completed=self.completed,
                task_success_rate=round(success_rate, 4),
                average_assignment_time_ms=round(avg_time, 3),
                resource_utilization=round(busy / len(agents), 4) if agents else 0.0,
                average_load_pct=(
                    round(sum(a.current_load_pct for a in agents) / len(agents), 2)
                    if agents
                    else 0.0
                ),
                active_assignments=active_assignments,
                system_throughput=self.completed,
                tasks_reassigned=self.reassigned,
                capacity_overrides=self.capacity_overrides,
            )
