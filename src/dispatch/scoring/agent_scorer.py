"""Agent Scorer - weighted multi-factor suitability score for an agent/task pair.

Score = quality (0.25) + availability (0.20) + cost (0.15) + speed (0.15)
        + capability match (0.15) + load balance (0.10) + bonuses, capped at 1.0

Deterministic given agent state: no randomness, so assignments stay
explainable and reproducible.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

from dispatch.config import DispatchConfig
from dispatch.engine.matcher import matched_required
from dispatch.engine.models import Agent, AgentKind, Priority, TaskKind, TaskRequest

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════

CRITICAL_BONUS: Final[float] = 0.10
SPECIALIST_BONUS: Final[float] = 0.05
SPECIALIST_COMPLEXITY_THRESHOLD: Final[int] = 7
VIDEO_BONUS: Final[float] = 0.10
VIDEO_CAPABILITY: Final[str] = "video-generation"
MAX_SCORE: Final[float] = 1.0


# ═══════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScoreBreakdown:
    """Weighted contribution of each factor."""

    quality: float
    availability: float
    cost: float
    speed: float
    capability: float
    load: float
    bonus: float

    @property
    def weighted_sum(self) -> float:
        return self.quality + self.availability + self.cost + self.speed + self.capability + self.load

    @property
    def total(self) -> float:
        return min(MAX_SCORE, self.weighted_sum + self.bonus)


@dataclass(frozen=True)
class ScoredAgent:
    """An agent paired with its score for one task."""

    agent: Agent
    breakdown: ScoreBreakdown

    @property
    def score(self) -> float:
        return self.breakdown.total

    @property
    def agent_id(self) -> str:
        return self.agent.id


# ═══════════════════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════════════════


def _floor0(value: float) -> float:
    return max(0.0, value)


def calculate_bonus(agent: Agent, task: TaskRequest) -> float:
    """Additive bonuses on top of the weighted factors."""
    bonus = 0.0
    if task.priority == Priority.CRITICAL:
        bonus += CRITICAL_BONUS
    if task.complexity > SPECIALIST_COMPLEXITY_THRESHOLD and agent.kind == AgentKind.SPECIALIST:
        bonus += SPECIALIST_BONUS
    if task.kind == TaskKind.VIDEO and VIDEO_CAPABILITY in agent.capabilities:
        bonus += VIDEO_BONUS
    return bonus


def score_agent(
    agent: Agent, task: TaskRequest, config: DispatchConfig | None = None
) -> ScoreBreakdown:
    """
    Score one agent for one task.

    Args:
        agent: Candidate agent (read, never mutated)
        task: Task being assigned
        config: Weights and normalization ceilings

    Returns:
        ScoreBreakdown whose total is at most 1.0. Availability and load
        go negative for an agent pushed past max_concurrent.
    """
    config = config or DispatchConfig()
    w = config.weights

    availability = 1 - agent.current_load_pct / 100
    cost = _floor0(1 - agent.cost_per_task / config.cost_ceiling)
    speed = _floor0(1 - agent.average_response_time_ms / config.time_ceiling_ms)
    capability = matched_required(agent, task) / max(1, len(task.required_capabilities))
    load = 1 - len(agent.current_tasks) / agent.max_concurrent

    breakdown = ScoreBreakdown(
        quality=agent.quality_score * w.quality,
        availability=availability * w.availability,
        cost=cost * w.cost,
        speed=speed * w.speed,
        capability=capability * w.capability,
        load=load * w.load,
        bonus=calculate_bonus(agent, task),
    )

    logger.debug(
        "Agent %s score for %s: %.3f (Q:%.2f A:%.2f C:%.2f S:%.2f M:%.2f L:%.2f B:%.2f)",
        agent.id,
        task.id,
        breakdown.total,
        breakdown.quality,
        breakdown.availability,
        breakdown.cost,
        breakdown.speed,
        breakdown.capability,
        breakdown.load,
        breakdown.bonus,
    )
    return breakdown


def rank_agents(
    agents: Iterable[Agent], task: TaskRequest, config: DispatchConfig | None = None
) -> list[ScoredAgent]:
    """Score agents and sort descending. Equal scores keep input order."""
    scored = [ScoredAgent(agent, score_agent(agent, task, config)) for agent in agents]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored
