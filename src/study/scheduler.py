"""Spaced-repetition scheduling for card reviews."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from src.study.errors import InvalidArgument
from src.study.models import MIN_EASE_FACTOR


MIN_SCORE = 0
MAX_SCORE = 5
PASSING_SCORE = 3
INITIAL_INTERVAL = 1
SECOND_INTERVAL = 6


@dataclass(frozen=True, slots=True)
class ReviewSchedule:
    """Calculated review data for a card after receiving a score."""

    next_review_date: datetime
    ease_factor: float
    interval: int


def validate_score(score: int) -> int:
    """Return ``score`` unchanged or raise when it is not an integer in [0, 5]."""
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidArgument(f"Score must be an integer, got {score!r}.")
    if score < MIN_SCORE or score > MAX_SCORE:
        raise InvalidArgument(f"Score must be between {MIN_SCORE} and {MAX_SCORE}, got {score}.")
    return score


def is_successful(score: int) -> bool:
    return score >= PASSING_SCORE


def next_success_rate(success_rate: float, review_count: int, score: int) -> float:
    """Fold one more outcome into a running success rate.

    ``review_count`` is the number of reviews before this one.
    """
    hits = success_rate * review_count + (1 if is_successful(score) else 0)
    return hits / (review_count + 1)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_next_review(
    *,
    score: int,
    interval: int,
    ease_factor: float,
    now: datetime | None = None,
) -> ReviewSchedule:
    """Return the next review schedule using an SM-2 style update.

    The ease factor moves on every review. A failing score restarts the card
    at a one day interval; passing scores step through 1 and 6 days before
    growing by the new ease factor.
    """
    validate_score(score)
    if interval < 0:
        raise InvalidArgument(f"Interval must not be negative, got {interval}.")
    if ease_factor < MIN_EASE_FACTOR:
        raise InvalidArgument(f"Ease factor must be at least {MIN_EASE_FACTOR}, got {ease_factor}.")

    if now is None:
        now = datetime.now(timezone.utc)

    penalty = MAX_SCORE - score
    new_ease = max(MIN_EASE_FACTOR, ease_factor + (0.1 - penalty * (0.08 + penalty * 0.02)))

    if not is_successful(score):
        new_interval = INITIAL_INTERVAL
    elif interval == 0:
        new_interval = INITIAL_INTERVAL
    elif interval == 1:
        new_interval = SECOND_INTERVAL
    else:
        new_interval = _round_half_up(interval * new_ease)

    return ReviewSchedule(
        next_review_date=now + timedelta(days=new_interval),
        ease_factor=new_ease,
        interval=new_interval,
    )
