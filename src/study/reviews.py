"""Apply a rating to a stored card."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from src.study.errors import InvalidArgument
from src.study.models import ReviewRecord, ScheduleUpdate, StudyCard
from src.study.ports import CardStore
from src.study.scheduler import compute_next_review, is_successful, next_success_rate, validate_score


LOGGER = logging.getLogger(__name__)


async def record_review(
    store: CardStore,
    card_id: int,
    score: int,
    *,
    time_taken: int = 0,
    now: Optional[datetime] = None,
) -> StudyCard:
    """Reschedule a card from a rating and append the review to its history.

    Callers wrap this in ``store.transaction()`` so the card update and the
    review record are committed together.
    """
    validate_score(score)
    if time_taken < 0:
        raise InvalidArgument(f"Time taken must not be negative, got {time_taken}.")
    if now is None:
        now = datetime.now(timezone.utc)

    card = await store.get_card(card_id)
    schedule = compute_next_review(
        score=score,
        interval=card.interval,
        ease_factor=card.ease_factor,
        now=now,
    )

    updated = await store.update_card(
        card_id,
        ScheduleUpdate(
            interval=schedule.interval,
            ease_factor=schedule.ease_factor,
            next_review_date=schedule.next_review_date,
            review_count=card.review_count + 1,
            success_rate=next_success_rate(card.success_rate, card.review_count, score),
            expected_version=card.version,
        ),
    )
    await store.append_review(
        ReviewRecord(
            card_id=card_id,
            performance_score=score,
            time_taken=time_taken,
            success=is_successful(score),
            reviewed_at=now,
        )
    )
    LOGGER.debug(
        "Card %s rated %s; next review in %s day(s) with ease %.2f.",
        card_id,
        score,
        schedule.interval,
        schedule.ease_factor,
    )
    return updated
