"""Assemble the ordered list of cards to study in a session."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from src.study.counters import DailyNewCardCounter
from src.study.errors import InvalidArgument
from src.study.models import CardFilter, CardOrder, StudyCard, StudyScope
from src.study.ports import CardStore


LOGGER = logging.getLogger(__name__)


class StudyQueueBuilder:
    """Mix due review cards with a capped number of new cards.

    The builder only reads the daily counter. Incrementing it when a new
    card is rated belongs to the session that rates the card.
    """

    def __init__(self, store: CardStore, counter: DailyNewCardCounter) -> None:
        self._store = store
        self._counter = counter

    async def build(
        self,
        scope: StudyScope,
        now: datetime,
        new_cards_per_day: int,
        cram_mode: bool = False,
    ) -> List[StudyCard]:
        """Return review cards (most overdue first) followed by today's new cards.

        In cram mode every card in scope is returned and neither due dates nor
        the daily cap are consulted.
        """
        if scope is None:
            raise InvalidArgument("A study scope is required.")
        if new_cards_per_day < 0:
            raise InvalidArgument(f"new_cards_per_day must not be negative, got {new_cards_per_day}.")

        if cram_mode:
            cards = await self._store.find_cards(CardFilter(scope=scope), CardOrder.NATURAL)
            LOGGER.debug("Cram queue for %s holds %s card(s).", scope, len(cards))
            return cards

        review_cards = await self._store.find_cards(
            CardFilter(scope=scope, due_at=now, reviewed=True),
            CardOrder.NEXT_REVIEW_ASC,
        )

        shown_today = await self._counter.get(scope, now)
        remaining = max(0, new_cards_per_day - shown_today)

        new_cards: List[StudyCard] = []
        if remaining > 0:
            new_cards = await self._store.find_cards(
                CardFilter(scope=scope, reviewed=False, limit=remaining),
                CardOrder.CREATED_DESC,
            )

        LOGGER.debug(
            "Queue for %s: %s review card(s), %s new card(s) (%s already shown today).",
            scope,
            len(review_cards),
            len(new_cards),
            shown_today,
        )
        return [*review_cards, *new_cards[:remaining]]
