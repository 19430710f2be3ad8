"""Tests for feedback module (performance updates and learning history)."""

from __future__ import annotations

from datetime import timedelta

import pytest

from dispatch.engine.models import utcnow
from dispatch.feedback import LearningEntry, LearningHistory, record_outcome
from dispatch.feedback.performance import MAX_QUALITY_SCORE


def entry(task_id: str, agent_id: str = "a1", success: bool = True, **kwargs) -> LearningEntry:
    values = {
        "task_kind": "text",
        "quality": 0.8,
        "estimated_duration_ms": 1000.0,
        "actual_duration_ms": 1500.0,
        "confidence": 0.9,
        "timestamp": utcnow(),
    }
    values.update(kwargs)
    return LearningEntry(task_id=task_id, agent_id=agent_id, success=success, **values)


# ============================================================================
# record_outcome
# ============================================================================


def test_first_success_then_failure(make_agent) -> None:
    agent = make_agent(average_response_time_ms=1000)

    record_outcome(agent, success=True, quality=0.9, duration_ms=3000)
    assert agent.performance.tasks_completed == 1
    assert agent.performance.success_rate == pytest.approx(1.0)
    assert agent.performance.average_quality == pytest.approx(0.9)
    assert agent.average_response_time_ms == pytest.approx(3000)
    assert agent.quality_score == pytest.approx(0.9)

    record_outcome(agent, success=False, quality=0.0, duration_ms=1000)
    assert agent.performance.tasks_completed == 2
    assert agent.performance.success_rate == pytest.approx(0.5)
    assert agent.performance.average_quality == pytest.approx(0.9)
    assert agent.average_response_time_ms == pytest.approx(2000)
    assert agent.quality_score == pytest.approx(0.45)


def test_incremental_quality_average(make_agent) -> None:
    agent = make_agent()
    for quality in (0.6, 0.8, 1.0):
        record_outcome(agent, success=True, quality=quality, duration_ms=100)
    assert agent.performance.average_quality == pytest.approx(0.8)
    assert agent.performance.success_rate == pytest.approx(1.0)


def test_quality_score_capped(make_agent) -> None:
    agent = make_agent()
    record_outcome(agent, success=True, quality=1.0, duration_ms=100)
    assert agent.quality_score == MAX_QUALITY_SCORE


def test_zero_duration_keeps_response_time_positive(make_agent) -> None:
    agent = make_agent(average_response_time_ms=5000)
    record_outcome(agent, success=True, quality=0.9, duration_ms=0)
    assert agent.average_response_time_ms == 5000
    assert agent.performance.tasks_completed == 1


def test_last_updated_advances(make_agent) -> None:
    agent = make_agent()
    before = agent.performance.last_updated
    record_outcome(agent, success=True, quality=0.5, duration_ms=10)
    assert agent.performance.last_updated >= before


@pytest.mark.parametrize(("quality", "duration"), [(1.5, 10), (-0.1, 10), (0.5, -1)])
def test_rejects_invalid_report(make_agent, quality: float, duration: float) -> None:
    agent = make_agent()
    with pytest.raises(ValueError):
        record_outcome(agent, success=True, quality=quality, duration_ms=duration)
    assert agent.performance.tasks_completed == 0


# ============================================================================
# LearningHistory
# ============================================================================


class TestLearningHistory:
    """Tests for the bounded learning history."""

    def test_evicts_oldest(self) -> None:
        history = LearningHistory(max_entries=3)
        for i in range(5):
            history.record(entry(f"t{i}"))
        assert len(history) == 3
        assert [e.task_id for e in history.entries()] == ["t2", "t3", "t4"]

    def test_for_agent(self) -> None:
        history = LearningHistory()
        history.record(entry("t1", agent_id="a1"))
        history.record(entry("t2", agent_id="a2"))
        history.record(entry("t3", agent_id="a1"))
        assert [e.task_id for e in history.for_agent("a1")] == ["t1", "t3"]

    def test_empty_summary(self) -> None:
        summary = LearningHistory().summary()
        assert summary["entries"] == 0
        assert summary["success_rate"] == 0.0

    def test_summary(self) -> None:
        history = LearningHistory()
        history.record(entry("t1", success=True, confidence=0.9, actual_duration_ms=1500.0))
        history.record(entry("t2", success=False, confidence=0.7, actual_duration_ms=500.0))
        summary = history.summary()
        assert summary["entries"] == 2
        assert summary["success_rate"] == 0.5
        assert summary["avg_confidence"] == pytest.approx(0.8)
        assert summary["avg_duration_error_ms"] == pytest.approx(0.0)

    def test_entry_to_dict(self) -> None:
        ts = utcnow() - timedelta(minutes=1)
        data = entry("t1", timestamp=ts).to_dict()
        assert data["task_id"] == "t1"
        assert data["timestamp"] == ts.isoformat()
        assert data["success"] is True
