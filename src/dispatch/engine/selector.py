"""Assignment Selector - picks the winner from ranked candidates."""

from __future__ import annotations

from collections.abc import Sequence

from dispatch.config import DispatchConfig
from dispatch.errors import NoCapableAgentError
from dispatch.scoring.agent_scorer import ScoredAgent


def select(ranked: Sequence[ScoredAgent], config: DispatchConfig | None = None) -> ScoredAgent:
    """
    Select the agent to assign from candidates sorted by descending score.

    A top candidate ahead of the runner-up by more than the clear-winner
    margin wins outright. Otherwise the top few are folded left: a candidate
    within the tie-break margin of the current best with strictly lower load
    takes over, so near-ties spread across agents instead of always landing
    on the single best one.

    Raises:
        NoCapableAgentError: If there are no candidates
    """
    if not ranked:
        raise NoCapableAgentError("No candidates to select from")

    config = config or DispatchConfig()
    top = list(ranked[: config.tie_break_pool])

    if len(top) > 1 and top[0].score - top[1].score > config.clear_winner_margin:
        return top[0]

    best = top[0]
    for current in top[1:]:
        close = abs(best.score - current.score) < config.tie_break_margin
        if close and current.agent.current_load_pct < best.agent.current_load_pct:
            best = current
    return best


def select_top(ranked: Sequence[ScoredAgent]) -> ScoredAgent:
    """Highest score, no load-balance tie-break (critical path)."""
    if not ranked:
        raise NoCapableAgentError("No candidates to select from")
    return ranked[0]
