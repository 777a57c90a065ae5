"""Daily bookkeeping of how many new cards a user has already been shown."""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Dict

from src.study.errors import InvalidArgument
from src.study.models import StudyScope
from src.study.ports import CounterStore


KEY_PREFIX = "new_cards"


class InMemoryCounterStore:
    """Process-local counter store."""

    def __init__(self) -> None:
        self._values: Dict[str, int] = {}

    async def get(self, key: str) -> int:
        return self._values.get(key, 0)

    async def set(self, key: str, value: int) -> None:
        self._values[key] = value


class DailyNewCardCounter:
    """Count new cards shown per user, scope and calendar day.

    Keys embed the calendar date in ``tz`` so counts reset at local midnight
    rather than 24 hours after the first card.
    """

    def __init__(self, store: CounterStore, tz: tzinfo = timezone.utc) -> None:
        self._store = store
        self._tz = tz

    def day_of(self, now: datetime) -> date:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self._tz).date()

    def key_for(self, scope: StudyScope, now: datetime) -> str:
        if scope is None:
            raise InvalidArgument("A study scope is required.")
        return f"{KEY_PREFIX}:{scope.chat_id}:{scope.key}:{self.day_of(now).isoformat()}"

    async def get(self, scope: StudyScope, now: datetime) -> int:
        return await self._store.get(self.key_for(scope, now))

    async def increment(self, scope: StudyScope, now: datetime, by: int = 1) -> int:
        key = self.key_for(scope, now)
        value = await self._store.get(key) + by
        await self._store.set(key, value)
        return value
