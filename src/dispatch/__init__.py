"""Agent Dispatch - capacity-aware task assignment for AI agent pools."""

__version__ = "0.1.0"

from dispatch.engine.orchestrator import Orchestrator, Prediction  # noqa: E402

__all__ = ["Orchestrator", "Prediction", "__version__"]
