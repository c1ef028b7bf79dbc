"""Training session and its drivers."""

from .base import DATA_FIELDS, TrainingOptions
from .session import SessionSnapshot, SessionState, TrainingSession
from .trainer import Trainer

__all__ = [
    "DATA_FIELDS",
    "SessionSnapshot",
    "SessionState",
    "Trainer",
    "TrainingOptions",
    "TrainingSession",
]
