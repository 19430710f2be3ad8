"""Default agent pool."""

from __future__ import annotations

from dispatch.engine.models import Agent, AgentKind

# id, name, kind, capabilities, max concurrent, cost per task, quality, avg response ms
DEFAULT_AGENT_SPECS: list[tuple[str, str, AgentKind, tuple[str, ...], int, float, float, float]] = [
    (
        "hunyuan-video-specialist",
        "HunyuanVideo Specialist",
        AgentKind.SPECIALIST,
        ("video-generation", "cinematic-quality", "long-duration"),
        2,
        0.42,
        0.95,
        138_000,
    ),
    (
        "mochi-video-specialist",
        "Mochi Video Specialist",
        AgentKind.SPECIALIST,
        ("video-generation", "high-fidelity", "prompt-adherence"),
        3,
        0.35,
        0.90,
        300_000,
    ),
    (
        "image-generation-specialist",
        "Image Generation Specialist",
        AgentKind.SPECIALIST,
        ("image-generation", "artistic-style", "high-resolution"),
        5,
        0.05,
        0.88,
        5_000,
    ),
    (
        "reasoning-specialist",
        "Advanced Reasoning Specialist",
        AgentKind.SPECIALIST,
        ("complex-reasoning", "multi-step-analysis", "problem-solving"),
        8,
        0.08,
        0.92,
        15_000,
    ),
    (
        "text-processing-generalist",
        "Text Processing Generalist",
        AgentKind.GENERALIST,
        ("text-generation", "conversation", "summarization", "translation"),
        10,
        0.02,
        0.85,
        3_000,
    ),
    (
        "vision-specialist",
        "Computer Vision Specialist",
        AgentKind.SPECIALIST,
        ("image-analysis", "ocr", "object-detection", "scene-understanding"),
        6,
        0.04,
        0.89,
        8_000,
    ),
    (
        "audio-specialist",
        "Audio Processing Specialist",
        AgentKind.SPECIALIST,
        ("audio-generation", "speech-synthesis", "music-creation", "transcription"),
        4,
        0.06,
        0.87,
        12_000,
    ),
]


def default_agents() -> list[Agent]:
    """Fresh Agent objects for the built-in pool."""
    return [
        Agent(
            id=agent_id,
            name=name,
            kind=kind,
            capabilities=frozenset(caps),
            max_concurrent=max_concurrent,
            cost_per_task=cost,
            quality_score=quality,
            average_response_time_ms=response_ms,
        )
        for agent_id, name, kind, caps, max_concurrent, cost, quality, response_ms in DEFAULT_AGENT_SPECS
    ]
