"""Plain record types exchanged between the study core and its stores."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from src.study.errors import InvalidArgument


DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3


@dataclass(frozen=True, slots=True)
class StudyScope:
    """Selection boundary for a study session: one deck or all of a user's decks."""

    chat_id: int
    deck_id: Optional[int] = None

    @property
    def key(self) -> str:
        if self.deck_id is None:
            return "all"
        return f"deck-{self.deck_id}"


@dataclass(frozen=True, slots=True)
class StudyCard:
    """Snapshot of a card together with its scheduling state."""

    id: int
    deck_id: int
    front: str
    back: str
    interval: int
    ease_factor: float
    next_review_date: datetime
    review_count: int
    success_rate: float
    created_at: Optional[datetime] = None
    version: Optional[int] = None

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise InvalidArgument(f"Card {self.id} has a negative interval.")
        if self.ease_factor < MIN_EASE_FACTOR:
            raise InvalidArgument(f"Card {self.id} has an ease factor below {MIN_EASE_FACTOR}.")
        if self.review_count < 0:
            raise InvalidArgument(f"Card {self.id} has a negative review count.")
        if not 0.0 <= self.success_rate <= 1.0:
            raise InvalidArgument(f"Card {self.id} has a success rate outside [0, 1].")

    @property
    def is_new(self) -> bool:
        return self.review_count == 0

    def is_due(self, now: datetime) -> bool:
        return self.next_review_date <= now


@dataclass(frozen=True, slots=True)
class ScheduleUpdate:
    """Scheduling fields written back to a card after a review.

    ``expected_version`` is the card version the fields were computed from;
    stores reject the write when the card has changed since.
    """

    interval: int
    ease_factor: float
    next_review_date: datetime
    review_count: int
    success_rate: float
    expected_version: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ReviewRecord:
    """Append-only audit entry describing one rating event."""

    card_id: int
    performance_score: int
    time_taken: int
    success: bool
    reviewed_at: datetime


class CardOrder(enum.Enum):
    """Orderings supported by ``CardStore.find_cards``."""

    NATURAL = "natural"
    NEXT_REVIEW_ASC = "next_review_asc"
    CREATED_DESC = "created_desc"


@dataclass(frozen=True, slots=True)
class CardFilter:
    """Criteria understood by ``CardStore.find_cards``.

    ``reviewed`` selects cards with ``review_count > 0`` when true and new cards
    when false; ``None`` disables the check. ``due_at`` keeps only cards whose
    ``next_review_date`` is at or before the given instant.
    """

    scope: StudyScope
    due_at: Optional[datetime] = None
    reviewed: Optional[bool] = None
    limit: Optional[int] = None
