from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from src.db.counters import SqlCounterStore
from src.study.counters import DailyNewCardCounter, InMemoryCounterStore
from src.study.errors import InvalidArgument
from src.study.models import StudyScope


def test_key_embeds_user_scope_and_calendar_date() -> None:
    counter = DailyNewCardCounter(InMemoryCounterStore())
    now = datetime(2026, 10, 18, 23, 59, tzinfo=timezone.utc)

    assert counter.key_for(StudyScope(chat_id=5), now) == "new_cards:5:all:2026-10-18"
    assert counter.key_for(StudyScope(chat_id=5, deck_id=9), now) == "new_cards:5:deck-9:2026-10-18"


def test_key_requires_scope() -> None:
    counter = DailyNewCardCounter(InMemoryCounterStore())

    with pytest.raises(InvalidArgument):
        counter.key_for(None, datetime.now(timezone.utc))  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_counter_rolls_over_at_calendar_midnight() -> None:
    counter = DailyNewCardCounter(InMemoryCounterStore())
    scope = StudyScope(chat_id=1)
    late_evening = datetime(2026, 10, 18, 23, 30, tzinfo=timezone.utc)

    await counter.increment(scope, late_evening)
    await counter.increment(scope, late_evening)

    assert await counter.get(scope, late_evening) == 2
    # Less than 24 hours later but on the next calendar day.
    assert await counter.get(scope, late_evening + timedelta(minutes=45)) == 0


@pytest.mark.asyncio
async def test_calendar_day_follows_configured_timezone() -> None:
    counter = DailyNewCardCounter(InMemoryCounterStore(), ZoneInfo("America/New_York"))
    scope = StudyScope(chat_id=1)
    # 02:00 UTC is still the previous evening in New York.
    now = datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc)

    assert counter.key_for(scope, now).endswith("2026-10-18")


@pytest.mark.asyncio
async def test_deck_and_global_counters_are_independent() -> None:
    counter = DailyNewCardCounter(InMemoryCounterStore())
    now = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)
    global_scope = StudyScope(chat_id=3)
    deck_scope = StudyScope(chat_id=3, deck_id=12)

    await counter.increment(deck_scope, now, by=4)

    assert await counter.get(deck_scope, now) == 4
    assert await counter.get(global_scope, now) == 0
    assert await counter.get(StudyScope(chat_id=4, deck_id=12), now) == 0


@pytest.mark.asyncio
async def test_sql_counter_store_persists_values(session_factory) -> None:
    store = SqlCounterStore(session_factory)

    assert await store.get("new_cards:1:all:2026-10-18") == 0

    await store.set("new_cards:1:all:2026-10-18", 3)
    await store.set("new_cards:1:all:2026-10-18", 4)

    reopened = SqlCounterStore(session_factory)
    assert await reopened.get("new_cards:1:all:2026-10-18") == 4


@pytest.mark.asyncio
async def test_daily_counter_on_sql_store(session_factory) -> None:
    counter = DailyNewCardCounter(SqlCounterStore(session_factory))
    scope = StudyScope(chat_id=8, deck_id=2)
    now = datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)

    assert await counter.increment(scope, now) == 1
    assert await counter.increment(scope, now) == 2
    assert await counter.get(scope, now) == 2
