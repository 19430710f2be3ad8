"""Dispatch configuration - scoring weights, thresholds, and rebalancer timing."""

from __future__ import annotations

import json
import math
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dispatch.errors import InvalidConfiguration

CONFIG_ENV_VAR = "DISPATCH_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".dispatch" / "config.json"


@dataclass(frozen=True)
class ScoringWeights:
    """Weights for the six scoring factors. Must sum to 1.0."""

    quality: float = 0.25
    availability: float = 0.20
    cost: float = 0.15
    speed: float = 0.15
    capability: float = 0.15
    load: float = 0.10

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"weight {f.name} must be in [0.0, 1.0], got {value}")
        total = sum(getattr(self, f.name) for f in fields(self))
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"scoring weights must sum to 1.0, got {total:.4f}")


@dataclass(frozen=True)
class DispatchConfig:
    """Tunable parameters for matching, scoring, selection and rebalancing."""

    weights: ScoringWeights = field(default_factory=ScoringWeights)

    # Normalization ceilings (domain calibration, not algorithmic)
    cost_ceiling: float = 1.0
    time_ceiling_ms: float = 600_000.0

    # Selector
    clear_winner_margin: float = 0.2
    tie_break_margin: float = 0.1
    tie_break_pool: int = 3

    # Ledger
    max_fallbacks: int = 2
    high_load_pct: float = 80.0
    max_confidence: float = 0.99

    # Rebalancer
    rebalance_interval_seconds: float = 30.0
    overload_threshold_pct: float = 85.0
    migration_target_max_pct: float = 70.0

    # Feedback
    learning_history_size: int = 1000

    def __post_init__(self) -> None:
        if self.cost_ceiling <= 0:
            raise ValueError(f"cost_ceiling must be > 0, got {self.cost_ceiling}")
        if self.time_ceiling_ms <= 0:
            raise ValueError(f"time_ceiling_ms must be > 0, got {self.time_ceiling_ms}")
        if self.tie_break_pool < 1:
            raise ValueError(f"tie_break_pool must be >= 1, got {self.tie_break_pool}")
        if self.max_fallbacks < 0:
            raise ValueError(f"max_fallbacks must be >= 0, got {self.max_fallbacks}")
        if self.rebalance_interval_seconds <= 0:
            raise ValueError(
                f"rebalance_interval_seconds must be > 0, got {self.rebalance_interval_seconds}"
            )
        if self.learning_history_size < 1:
            raise ValueError(
                f"learning_history_size must be >= 1, got {self.learning_history_size}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DispatchConfig:
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfiguration(f"Unknown config keys: {', '.join(sorted(unknown))}")

        values = dict(data)
        try:
            if "weights" in values:
                weights = values["weights"]
                if not isinstance(weights, dict):
                    raise InvalidConfiguration("weights must be an object")
                values["weights"] = ScoringWeights(**weights)
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise InvalidConfiguration(str(e)) from e

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_config(path: str | Path | None = None) -> DispatchConfig:
    """
    Load configuration.

    Lookup order: explicit path, $DISPATCH_CONFIG, ~/.dispatch/config.json.
    Missing files fall back to defaults; an explicit path must exist.
    """
    if path is not None:
        config_file = Path(path)
        if not config_file.exists():
            raise InvalidConfiguration(f"Config file not found: {config_file}")
        return _read_config(config_file)

    env_path = os.environ.get(CONFIG_ENV_VAR)
    for candidate in [Path(env_path) if env_path else None, DEFAULT_CONFIG_PATH]:
        if candidate is not None and candidate.exists():
            return _read_config(candidate)

    return DispatchConfig()


def _read_config(config_file: Path) -> DispatchConfig:
    try:
        data = json.loads(config_file.read_text())
    except json.JSONDecodeError as e:
        raise InvalidConfiguration(f"Invalid JSON in {config_file}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Config root must be an object: {config_file}")
    return DispatchConfig.from_dict(data)
