"""State machine driving a single study session."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

from src.study.counters import DailyNewCardCounter
from src.study.errors import InvalidArgument, StoreUnavailable
from src.study.models import StudyCard, StudyScope
from src.study.ports import CardStore
from src.study.queue import StudyQueueBuilder
from src.study.reviews import record_review
from src.study.scheduler import is_successful, validate_score


LOGGER = logging.getLogger(__name__)

REQUEUE_SCORE = 0


class SessionState(enum.Enum):
    LOADING = "loading"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Aggregate counts shown when a session ends."""

    total: int
    correct: int
    incorrect: int
    completed: bool

    @property
    def success_rate(self) -> float:
        rated = self.correct + self.incorrect
        if not rated:
            return 0.0
        return self.correct / rated


class StudySession:
    """Step through a study queue one rating at a time.

    Cards rated 0 are collected and appended to the queue once the primary
    pass is over. Scores 1 and 2 count as incorrect but are not re-queued.
    A rating that fails to persist leaves the session exactly where it was.
    """

    def __init__(
        self,
        store: CardStore,
        builder: StudyQueueBuilder,
        counter: DailyNewCardCounter,
        scope: StudyScope,
        new_cards_per_day: int,
        *,
        cram_mode: bool = False,
    ) -> None:
        if scope is None:
            raise InvalidArgument("A study scope is required.")
        self._store = store
        self._builder = builder
        self._counter = counter
        self._scope = scope
        self._new_cards_per_day = new_cards_per_day
        self._cram_mode = cram_mode
        self._state = SessionState.LOADING
        self._queue: List[StudyCard] = []
        self._index = 0
        self._failed: List[StudyCard] = []
        self._uncounted_new: Set[int] = set()
        self._reviewing_failed_cards = False
        self._total = 0
        self._correct = 0
        self._incorrect = 0

    @property
    def scope(self) -> StudyScope:
        return self._scope

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def cram_mode(self) -> bool:
        return self._cram_mode

    @property
    def queue(self) -> Tuple[StudyCard, ...]:
        return tuple(self._queue)

    @property
    def index(self) -> int:
        return self._index

    @property
    def failed_cards(self) -> Tuple[StudyCard, ...]:
        return tuple(self._failed)

    @property
    def reviewing_failed_cards(self) -> bool:
        return self._reviewing_failed_cards

    @property
    def is_empty(self) -> bool:
        return self._state is not SessionState.LOADING and not self._queue

    @property
    def current_card(self) -> Optional[StudyCard]:
        if self._state is not SessionState.ACTIVE:
            return None
        return self._queue[self._index]

    @property
    def summary(self) -> SessionSummary:
        return SessionSummary(
            total=self._total,
            correct=self._correct,
            incorrect=self._incorrect,
            completed=self._state is SessionState.COMPLETED,
        )

    async def start(self, now: Optional[datetime] = None) -> None:
        """Build the queue and enter the active state."""
        if now is None:
            now = datetime.now(timezone.utc)
        queue = await self._builder.build(
            self._scope,
            now,
            self._new_cards_per_day,
            cram_mode=self._cram_mode,
        )
        self._load(queue)
        LOGGER.info(
            "Study session for %s started with %s card(s)%s.",
            self._scope,
            len(queue),
            " in cram mode" if self._cram_mode else "",
        )

    async def toggle_cram_mode(self, now: Optional[datetime] = None) -> None:
        """Switch cram mode and rebuild the queue from scratch."""
        if now is None:
            now = datetime.now(timezone.utc)
        cram_mode = not self._cram_mode
        queue = await self._builder.build(
            self._scope,
            now,
            self._new_cards_per_day,
            cram_mode=cram_mode,
        )
        self._cram_mode = cram_mode
        self._load(queue)
        LOGGER.info("Cram mode %s for %s.", "enabled" if cram_mode else "disabled", self._scope)

    def restart(self) -> None:
        """Study the same queue again from the first card."""
        if self._state is not SessionState.COMPLETED:
            raise InvalidArgument("Only a completed session can be restarted.")
        self._index = 0
        self._failed = []
        self._reviewing_failed_cards = False
        self._total = len(self._queue)
        self._correct = 0
        self._incorrect = 0
        self._state = SessionState.ACTIVE if self._queue else SessionState.COMPLETED

    async def rate(
        self,
        card_id: int,
        score: int,
        time_taken: int = 0,
        now: Optional[datetime] = None,
    ) -> StudyCard:
        """Record a rating for the current card and advance the session."""
        validate_score(score)
        if self._state is not SessionState.ACTIVE:
            raise InvalidArgument(f"Cannot rate a card while the session is {self._state.value}.")
        current = self._queue[self._index]
        if current.id != card_id:
            raise InvalidArgument(f"Card {card_id} is not the current card (expected {current.id}).")
        if now is None:
            now = datetime.now(timezone.utc)

        counts_as_new = not self._cram_mode and card_id in self._uncounted_new

        async with self._store.transaction():
            updated = await record_review(self._store, card_id, score, time_taken=time_taken, now=now)

        # The rating is committed at this point; a counter failure must not block advancing.
        if counts_as_new:
            try:
                await self._counter.increment(self._scope, now)
            except StoreUnavailable:
                LOGGER.exception(
                    "Could not count new card %s for %s; it stays uncounted.", card_id, self._scope
                )
            else:
                self._uncounted_new.discard(card_id)

        if is_successful(score):
            self._correct += 1
        else:
            self._incorrect += 1

        self._queue[self._index] = updated
        if score == REQUEUE_SCORE and all(card.id != card_id for card in self._failed):
            self._failed.append(updated)

        self._advance()
        return updated

    def _load(self, queue: List[StudyCard]) -> None:
        self._queue = list(queue)
        self._index = 0
        self._failed = []
        self._reviewing_failed_cards = False
        self._uncounted_new = {card.id for card in self._queue if card.is_new}
        self._total = len(self._queue)
        self._correct = 0
        self._incorrect = 0
        self._state = SessionState.ACTIVE if self._queue else SessionState.COMPLETED

    def _advance(self) -> None:
        if self._index < len(self._queue) - 1:
            self._index += 1
            return

        if self._failed:
            start_of_failed = len(self._queue)
            self._queue.extend(self._failed)
            self._failed = []
            self._reviewing_failed_cards = True
            self._index = start_of_failed
            return

        self._reviewing_failed_cards = False
        self._state = SessionState.COMPLETED
        LOGGER.info(
            "Study session for %s completed: %s correct, %s incorrect.",
            self._scope,
            self._correct,
            self._incorrect,
        )
