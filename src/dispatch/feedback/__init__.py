"""Feedback: performance updates and assignment learning history."""

from dispatch.feedback.performance import LearningEntry, LearningHistory, record_outcome

__all__ = [
    "LearningEntry",
    "LearningHistory",
    "record_outcome",
]
