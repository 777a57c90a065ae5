"""Interfaces the study core expects from its storage collaborators."""

from __future__ import annotations

from typing import AsyncContextManager, List, Protocol

from src.study.models import CardFilter, CardOrder, ReviewRecord, ScheduleUpdate, StudyCard


class CardStore(Protocol):
    """Persistent store of cards and their review history."""

    def transaction(self) -> AsyncContextManager[None]:
        """Group the calls made inside the block into one atomic unit."""

    async def find_cards(self, card_filter: CardFilter, order_by: CardOrder) -> List[StudyCard]:
        """Return cards matching the filter in the requested order."""

    async def get_card(self, card_id: int) -> StudyCard:
        """Return a card or raise ``NotFound``."""

    async def update_card(self, card_id: int, fields: ScheduleUpdate) -> StudyCard:
        """Write scheduling fields to a card and return the stored result."""

    async def append_review(self, record: ReviewRecord) -> None:
        """Append a review record to the audit log."""


class CounterStore(Protocol):
    """Durable integer key-value store."""

    async def get(self, key: str) -> int:
        """Return the stored value, or 0 when the key is absent."""

    async def set(self, key: str, value: int) -> None:
        """Store ``value`` under ``key``."""
