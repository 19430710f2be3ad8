"""Agent Registry - Holds the agent pool and is the single writer of agent load."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from typing import Any

from dispatch.engine.models import Agent, Availability
from dispatch.errors import AgentNotFoundError, CapacityError

logger = logging.getLogger(__name__)


class AgentRegistry:
    """
    Manages the agent pool and its live load state.

    Features:
    - One reentrant lock per agent; multi-agent sections lock in sorted id order
    - apply_load_delta is the only writer of current_tasks and load-driven availability
    - Registration order is preserved and used as the stable tie order
    """

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents: dict[str, Agent] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._pool_lock = threading.Lock()
        for agent in agents:
            self.register(agent)

    def register(self, agent: Agent) -> Agent:
        """
        Register a new agent.

        Raises:
            ValueError: If an agent with the same id is already registered
        """
        with self._pool_lock:
            if agent.id in self._agents:
                raise ValueError(f"Agent {agent.id} already registered")
            self._agents[agent.id] = agent
            self._locks[agent.id] = threading.RLock()
            self._sync_availability(agent)

        logger.info(
            "Registered agent %s (%s, capacity %d, caps: %s)",
            agent.id,
            agent.kind.value,
            agent.max_concurrent,
            ", ".join(sorted(agent.capabilities)),
        )
        return agent

    def get(self, agent_id: str) -> Agent:
        """Get agent by ID."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent {agent_id} not found in registry")
        return agent

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def list_agents(self) -> list[Agent]:
        """All agents in registration order."""
        return list(self._agents.values())

    def list_available(self) -> list[Agent]:
        """Agents in the available state."""
        return [a for a in self._agents.values() if a.availability == Availability.AVAILABLE]

    def list_online(self) -> list[Agent]:
        """Agents that are not offline (available or busy)."""
        return [a for a in self._agents.values() if a.is_online]

    def snapshot(self) -> list[Agent]:
        """Detached copies of every agent, each taken under its own lock."""
        copies = []
        for agent in self.list_agents():
            with self.locked(agent.id):
                copies.append(agent.snapshot())
        return copies

    @contextmanager
    def locked(self, *agent_ids: str) -> Iterator[None]:
        """Hold the locks of the given agents, acquired in sorted id order."""
        locks = []
        for agent_id in sorted(set(agent_ids)):
            lock = self._locks.get(agent_id)
            if lock is None:
                raise AgentNotFoundError(f"Agent {agent_id} not found in registry")
            locks.append(lock)

        with ExitStack() as stack:
            for lock in locks:
                stack.enter_context(lock)
            yield

    def apply_load_delta(
        self, agent_id: str, task_id: str, delta: int, force: bool = False
    ) -> Agent:
        """
        Add (+1) or remove (-1) a task from an agent's load.

        Args:
            agent_id: Agent to mutate
            task_id: Task being attached or released
            delta: +1 or -1
            force: Allow an increment past max_concurrent (critical path only)

        Raises:
            AgentNotFoundError: Unknown agent
            CapacityError: Increment on a full agent without force
            ValueError: Invalid delta, double attach, or release of an unheld task
        """
        if delta not in (1, -1):
            raise ValueError(f"delta must be +1 or -1, got {delta}")

        agent = self.get(agent_id)
        with self.locked(agent_id):
            if delta == 1:
                if task_id in agent.current_tasks:
                    raise ValueError(f"Task {task_id} already held by agent {agent_id}")
                if not agent.has_capacity:
                    if not force:
                        raise CapacityError(
                            f"Agent {agent_id} at capacity "
                            f"({len(agent.current_tasks)}/{agent.max_concurrent})"
                        )
                    logger.warning(
                        "Capacity override: agent %s now holds %d/%d tasks (task %s)",
                        agent_id,
                        len(agent.current_tasks) + 1,
                        agent.max_concurrent,
                        task_id,
                    )
                agent.current_tasks.append(task_id)
            else:
                if task_id not in agent.current_tasks:
                    raise ValueError(f"Task {task_id} not held by agent {agent_id}")
                agent.current_tasks.remove(task_id)

            self._sync_availability(agent)
        return agent

    def set_availability(self, agent_id: str, state: Availability | str) -> Agent:
        """
        Administratively change availability.

        OFFLINE takes the agent out of matching. Bringing it back online
        lands on AVAILABLE or BUSY depending on its current load.
        """
        state = Availability(state)
        agent = self.get(agent_id)
        with self.locked(agent_id):
            previous = agent.availability
            if state == Availability.OFFLINE:
                agent.availability = Availability.OFFLINE
            else:
                agent.availability = Availability.AVAILABLE
                self._sync_availability(agent)

        if agent.availability != previous:
            logger.info("Agent %s availability %s -> %s", agent_id, previous, agent.availability)
        return agent

    @staticmethod
    def _sync_availability(agent: Agent) -> None:
        if agent.availability == Availability.OFFLINE:
            return
        if agent.current_load_pct >= 100:
            agent.availability = Availability.BUSY
        else:
            agent.availability = Availability.AVAILABLE

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        agents = self.list_agents()

        by_availability: dict[str, int] = {}
        for agent in agents:
            key = agent.availability.value
            by_availability[key] = by_availability.get(key, 0) + 1

        return {
            "total_agents": len(agents),
            "by_availability": by_availability,
            "active_tasks": sum(len(a.current_tasks) for a in agents),
            "total_capacity": sum(a.max_concurrent for a in agents),
            "avg_quality_score": (
                sum(a.quality_score for a in agents) / len(agents) if agents else 0.0
            ),
        }
