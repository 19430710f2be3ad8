"""Capability Matcher - filters agents by task compatibility and spare capacity."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping

from dispatch.engine.models import Agent, TaskKind, TaskRequest

# Capabilities implied by each task kind
TASK_KIND_CAPABILITIES: Mapping[TaskKind, frozenset[str]] = {
    TaskKind.VIDEO: frozenset({"video-generation"}),
    TaskKind.IMAGE: frozenset({"image-generation"}),
    TaskKind.TEXT: frozenset({"text-generation", "conversation"}),
    TaskKind.REASONING: frozenset({"complex-reasoning", "problem-solving"}),
    TaskKind.VISION: frozenset({"image-analysis", "ocr"}),
    TaskKind.AUDIO: frozenset({"audio-generation", "speech-synthesis"}),
    TaskKind.TRANSCRIPTION: frozenset({"transcription", "audio-generation"}),
    TaskKind.OCR: frozenset({"ocr", "image-analysis"}),
}


def capabilities_for(task: TaskRequest) -> frozenset[str]:
    """Capabilities implied by the task kind (not the explicit requirements)."""
    return TASK_KIND_CAPABILITIES.get(task.kind, frozenset())


def is_capable(agent: Agent, task: TaskRequest) -> bool:
    """True if the agent shares a capability with the kind mapping or the requirements."""
    return bool(agent.capabilities & (capabilities_for(task) | task.required_capabilities))


def matched_required(agent: Agent, task: TaskRequest) -> int:
    """Number of the task's explicit required capabilities the agent has."""
    return len(agent.capabilities & task.required_capabilities)


def is_eligible(agent: Agent, task: TaskRequest) -> bool:
    """Online, has spare capacity, and capable."""
    return agent.is_online and agent.has_capacity and is_capable(agent, task)


def find_capable(
    task: TaskRequest,
    agents: Iterable[Agent],
    exclude: Collection[str] = (),
) -> list[Agent]:
    """
    Agents eligible for a task, in the given order.

    Returns an empty list when nothing qualifies; the caller decides whether
    that is fatal.
    """
    return [a for a in agents if a.id not in exclude and is_eligible(a, task)]
