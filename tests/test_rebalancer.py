"""Tests for the rebalancer."""

from __future__ import annotations

import logging
import time

import pytest

from dispatch.config import DispatchConfig
from dispatch.engine.ledger import AssignmentLedger
from dispatch.engine.models import Priority, TaskStatus
from dispatch.engine.rebalancer import Migration, Rebalancer
from dispatch.engine.registry import AgentRegistry
from dispatch.errors import CapacityError


@pytest.fixture
def registry(make_agent) -> AgentRegistry:
    return AgentRegistry(
        [
            make_agent("hot", max_concurrent=2),
            make_agent("cool", max_concurrent=10, quality_score=0.7),
            make_agent("cooler", max_concurrent=10, quality_score=0.95),
        ]
    )


@pytest.fixture
def ledger(registry: AgentRegistry) -> AssignmentLedger:
    return AssignmentLedger(registry)


def load(ledger: AssignmentLedger, registry: AgentRegistry, agent_id: str, tasks) -> None:
    for task in tasks:
        ledger.assign(task, registry.get(agent_id))


class TestRunOnce:
    """Tests for a single rebalancing pass."""

    def test_migrates_one_task_to_best_destination(self, registry, ledger, make_task) -> None:
        t1 = make_task("t1", priority=Priority.LOW)
        t2 = make_task("t2", priority=Priority.MEDIUM)
        load(ledger, registry, "hot", [t1, t2])

        migrations = Rebalancer(registry, ledger).run_once()

        assert migrations == [Migration(task_id="t1", source_id="hot", target_id="cooler")]
        assert registry.get("hot").current_tasks == ["t2"]
        assert registry.get("cooler").current_tasks == ["t1"]
        assert ledger.agent_for("t1") == "cooler"
        assert t1.status == TaskStatus.REASSIGNED
        assert ledger.metrics.reassigned == 1

    def test_skips_high_and_critical(self, registry, ledger, make_task) -> None:
        load(
            ledger,
            registry,
            "hot",
            [make_task("t1", priority=Priority.HIGH), make_task("t2", priority=Priority.CRITICAL)],
        )
        assert Rebalancer(registry, ledger).run_once() == []
        assert registry.get("hot").current_tasks == ["t1", "t2"]

    def test_picks_first_movable_task(self, registry, ledger, make_task) -> None:
        load(
            ledger,
            registry,
            "hot",
            [make_task("t1", priority=Priority.HIGH), make_task("t2", priority=Priority.LOW)],
        )
        [migration] = Rebalancer(registry, ledger).run_once()
        assert migration.task_id == "t2"

    def test_single_task_agent_left_alone(self, make_agent, make_task) -> None:
        registry = AgentRegistry([make_agent("solo", max_concurrent=1), make_agent("idle")])
        ledger = AssignmentLedger(registry)
        ledger.assign(make_task("t1", priority=Priority.LOW), registry.get("solo"))

        assert Rebalancer(registry, ledger).run_once() == []

    def test_below_threshold_left_alone(self, make_agent, make_task) -> None:
        registry = AgentRegistry([make_agent("warm", max_concurrent=10), make_agent("idle")])
        ledger = AssignmentLedger(registry)
        for i in range(8):
            ledger.assign(make_task(f"t{i}", priority=Priority.LOW), registry.get("warm"))

        assert Rebalancer(registry, ledger).run_once() == []

    def test_no_destination_under_target_load(self, make_agent, make_task) -> None:
        registry = AgentRegistry(
            [make_agent("hot", max_concurrent=2), make_agent("warm", max_concurrent=10)]
        )
        ledger = AssignmentLedger(registry)
        load(ledger, registry, "hot", [make_task("t1"), make_task("t2")])
        for i in range(7):
            ledger.assign(make_task(f"w{i}", priority=Priority.HIGH), registry.get("warm"))

        assert Rebalancer(registry, ledger).run_once() == []
        assert ledger.agent_for("t1") == "hot"

    def test_incapable_destination_ignored(self, make_agent, make_task) -> None:
        registry = AgentRegistry(
            [
                make_agent("hot", max_concurrent=2),
                make_agent("painter", capabilities=("image-generation",)),
            ]
        )
        ledger = AssignmentLedger(registry)
        load(ledger, registry, "hot", [make_task("t1"), make_task("t2")])

        assert Rebalancer(registry, ledger).run_once() == []

    def test_failed_migration_is_logged_not_raised(
        self, registry, ledger, make_task, monkeypatch, caplog
    ) -> None:
        load(ledger, registry, "hot", [make_task("t1"), make_task("t2")])

        def refuse(*args, **kwargs):
            raise CapacityError("target filled up")

        monkeypatch.setattr(ledger, "reassign", refuse)
        with caplog.at_level(logging.WARNING, logger="dispatch"):
            assert Rebalancer(registry, ledger).run_once() == []

        assert "target filled up" in caplog.text
        assert registry.get("hot").current_tasks == ["t1", "t2"]

    def test_destination_filled_before_commit(self, make_agent, make_task, monkeypatch) -> None:
        registry = AgentRegistry(
            [make_agent("hot", max_concurrent=2), make_agent("cool", max_concurrent=10)]
        )
        ledger = AssignmentLedger(registry)
        load(ledger, registry, "hot", [make_task("t1"), make_task("t2")])
        load(ledger, registry, "cool", [make_task(f"c{i}", priority=Priority.HIGH) for i in range(6)])
        real_reassign = ledger.reassign

        def racing_reassign(*args, **kwargs):
            # Concurrent submits land on the destination after it was chosen
            load(ledger, registry, "cool", [make_task("r1"), make_task("r2")])
            return real_reassign(*args, **kwargs)

        monkeypatch.setattr(ledger, "reassign", racing_reassign)

        assert Rebalancer(registry, ledger).run_once() == []
        assert registry.get("cool").current_load_pct == 80.0
        assert registry.get("hot").current_tasks == ["t1", "t2"]
        assert ledger.agent_for("t1") == "hot"

    def test_reason_uses_load_seen_at_pass_start(self, make_agent, make_task) -> None:
        registry = AgentRegistry([make_agent("hot", max_concurrent=2), make_agent("idle")])
        ledger = AssignmentLedger(registry)
        load(ledger, registry, "hot", [make_task("t1", priority=Priority.LOW), make_task("t2")])

        Rebalancer(registry, ledger).run_once()

        assert ledger.get("t1").reasoning == "Reassigned from hot: source load 100% over 85%"


class TestBackgroundLoop:
    """Tests for the periodic loop lifecycle."""

    def test_start_and_stop(self, registry, ledger, make_task) -> None:
        load(ledger, registry, "hot", [make_task("t1"), make_task("t2")])
        rebalancer = Rebalancer(registry, ledger, DispatchConfig(rebalance_interval_seconds=0.01))

        rebalancer.start()
        try:
            assert rebalancer.running
            deadline = time.monotonic() + 5
            while ledger.agent_for("t1") == "hot" and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            rebalancer.stop()

        assert not rebalancer.running
        assert ledger.agent_for("t1") == "cooler"

    def test_start_twice_is_noop(self, registry, ledger) -> None:
        rebalancer = Rebalancer(registry, ledger, DispatchConfig(rebalance_interval_seconds=60))
        rebalancer.start()
        thread = rebalancer._thread
        rebalancer.start()
        assert rebalancer._thread is thread
        rebalancer.stop()

    def test_stop_without_start(self, registry, ledger) -> None:
        Rebalancer(registry, ledger).stop()

    def test_context_manager(self, registry, ledger) -> None:
        with Rebalancer(registry, ledger, DispatchConfig(rebalance_interval_seconds=60)) as rebalancer:
            assert rebalancer.running
        assert not rebalancer.running

    def test_loop_survives_errors(self, registry, ledger, monkeypatch, caplog) -> None:
        rebalancer = Rebalancer(registry, ledger, DispatchConfig(rebalance_interval_seconds=0.01))
        calls = []

        def explode():
            calls.append(1)
            raise RuntimeError("boom")

        monkeypatch.setattr(rebalancer, "run_once", explode)
        with caplog.at_level(logging.ERROR, logger="dispatch"):
            rebalancer.start()
            deadline = time.monotonic() + 5
            while len(calls) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            rebalancer.stop()

        assert len(calls) >= 2
        assert "Rebalance pass failed" in caplog.text
