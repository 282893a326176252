"""Router package exports."""

from . import config, health, problems, quiz, review

__all__ = [
    "config",
    "health",
    "problems",
    "quiz",
    "review",
]
