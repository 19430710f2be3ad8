"""Agent scoring."""

from .agent_scorer import (
    ScoreBreakdown,
    ScoredAgent,
    calculate_bonus,
    rank_agents,
    score_agent,
)

__all__ = [
    "score_agent",
    "rank_agents",
    "calculate_bonus",
    "ScoreBreakdown",
    "ScoredAgent",
]
