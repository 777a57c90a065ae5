"""Spaced-repetition scheduling and study-session logic."""

from .counters import DailyNewCardCounter, InMemoryCounterStore
from .errors import ConcurrentModification, InvalidArgument, NotFound, StoreUnavailable, StudyError
from .models import StudyCard, StudyScope
from .queue import StudyQueueBuilder
from .scheduler import ReviewSchedule, compute_next_review
from .session import SessionState, SessionSummary, StudySession

__all__ = [
    "ConcurrentModification",
    "DailyNewCardCounter",
    "InMemoryCounterStore",
    "InvalidArgument",
    "NotFound",
    "ReviewSchedule",
    "SessionState",
    "SessionSummary",
    "StoreUnavailable",
    "StudyCard",
    "StudyError",
    "StudyQueueBuilder",
    "StudyScope",
    "StudySession",
    "compute_next_review",
]
