"""Performance Feedback - folds completion outcomes into agent reputation.

record_outcome is the only writer of an agent's success_rate,
average_quality, average_response_time_ms, quality_score and
tasks_completed. Updates are incremental weighted averages over the
completed-task count; failed tasks do not dilute the quality average.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from dispatch.engine.models import Agent, utcnow

MAX_QUALITY_SCORE = 0.99


def record_outcome(agent: Agent, success: bool, quality: float, duration_ms: float) -> Agent:
    """
    Apply one completion outcome to an agent's performance record.

    The caller must hold the agent's registry lock.

    Args:
        agent: Agent that executed the task
        success: Whether the task succeeded
        quality: Reported output quality (0-1), ignored on failure
        duration_ms: Actual execution time

    Returns:
        The updated agent
    """
    if not 0.0 <= quality <= 1.0:
        raise ValueError(f"quality must be in [0.0, 1.0], got {quality}")
    if duration_ms < 0:
        raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")

    perf = agent.performance
    n = perf.tasks_completed
    total = n + 1

    perf.success_rate = (perf.success_rate * n + (1.0 if success else 0.0)) / total
    if success:
        perf.average_quality = (perf.average_quality * n + quality) / total

    # Zero durations would break the > 0 invariant on a first report
    new_avg = (agent.average_response_time_ms * n + duration_ms) / total
    if new_avg > 0:
        agent.average_response_time_ms = new_avg

    perf.tasks_completed = total
    perf.last_updated = utcnow()
    agent.quality_score = min(MAX_QUALITY_SCORE, perf.average_quality * perf.success_rate)
    return agent


@dataclass(frozen=True)
class LearningEntry:
    """One completed assignment, estimate vs. actual."""

    task_id: str
    agent_id: str
    task_kind: str
    success: bool
    quality: float
    estimated_duration_ms: float
    actual_duration_ms: float
    confidence: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "agent_id": self.agent_id,
            "task_kind": self.task_kind,
            "success": self.success,
            "quality": self.quality,
            "estimated_duration_ms": round(self.estimated_duration_ms, 1),
            "actual_duration_ms": round(self.actual_duration_ms, 1),
            "confidence": round(self.confidence, 4),
            "timestamp": self.timestamp.isoformat(),
        }


class LearningHistory:
    """Bounded history of completed assignments; oldest entries are evicted."""

    def __init__(self, max_entries: int = 1000) -> None:
        self._entries: deque[LearningEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, entry: LearningEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> list[LearningEntry]:
        with self._lock:
            return list(self._entries)

    def for_agent(self, agent_id: str) -> list[LearningEntry]:
        return [e for e in self.entries() if e.agent_id == agent_id]

    def __len__(self) -> int:
        return len(self._entries)

    def summary(self) -> dict[str, Any]:
        """
        Aggregate calibration stats.

        Returns:
            {
                "entries": int,
                "success_rate": float,
                "avg_confidence": float,
                "avg_duration_error_ms": float  # actual - estimated
            }
        """
        entries = self.entries()
        if not entries:
            return {
                "entries": 0,
                "success_rate": 0.0,
                "avg_confidence": 0.0,
                "avg_duration_error_ms": 0.0,
            }

        count = len(entries)
        return {
            "entries": count,
            "success_rate": round(sum(1 for e in entries if e.success) / count, 4),
            "avg_confidence": round(sum(e.confidence for e in entries) / count, 4),
            "avg_duration_error_ms": round(
                sum(e.actual_duration_ms - e.estimated_duration_ms for e in entries) / count, 1
            ),
        }
