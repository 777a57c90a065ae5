from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from src.db import Base, Card, Review, User
from src.db.cards import CardPayload, SqlCardStore, create_card, delete_card, list_cards, update_card_content
from src.db.decks import (
    DeckPayload,
    create_deck,
    delete_deck,
    get_child_decks,
    get_deck,
    list_decks,
    update_deck,
)
from src.study.errors import ConcurrentModification, InvalidArgument, NotFound
from src.study.models import ScheduleUpdate
from src.study.reviews import record_review


CHAT_ID = 901


async def _create_user(session, chat_id: int = CHAT_ID) -> None:
    session.add(User(chat_id=chat_id))
    await session.flush()


@pytest.mark.asyncio
async def test_create_deck_applies_default_labels(session_factory) -> None:
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(
                session,
                CHAT_ID,
                DeckPayload(name="  Anatomy  ", front_label="", back_label="   "),
            )

    assert deck.name == "Anatomy"
    assert deck.front_label == "Question"
    assert deck.back_label == "Answer"


@pytest.mark.asyncio
async def test_update_deck_keeps_custom_labels_and_rejects_self_parent(session_factory) -> None:
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Kanji"))
            updated = await update_deck(
                session,
                CHAT_ID,
                deck.id,
                DeckPayload(name="Kanji N5", front_label="Character", back_label="Reading"),
            )
            with pytest.raises(InvalidArgument):
                await update_deck(session, CHAT_ID, deck.id, DeckPayload(name="Loop", parent_deck_id=deck.id))

    assert updated.name == "Kanji N5"
    assert updated.front_label == "Character"
    assert updated.back_label == "Reading"


@pytest.mark.asyncio
async def test_nested_decks_and_ownership(session_factory) -> None:
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            await _create_user(session, CHAT_ID + 1)
            parent = await create_deck(session, CHAT_ID, DeckPayload(name="Languages"), now=now)
            child = await create_deck(
                session,
                CHAT_ID,
                DeckPayload(name="Greek", parent_deck_id=parent.id),
                now=now + timedelta(seconds=1),
            )

            children = await get_child_decks(session, CHAT_ID, parent.id)
            decks = await list_decks(session, CHAT_ID)

            with pytest.raises(NotFound):
                await get_deck(session, CHAT_ID + 1, parent.id)
            with pytest.raises(NotFound):
                await create_deck(
                    session,
                    CHAT_ID + 1,
                    DeckPayload(name="Intruder", parent_deck_id=parent.id),
                )

    assert [deck.id for deck in children] == [child.id]
    assert [deck.id for deck in decks] == [child.id, parent.id]


@pytest.mark.asyncio
async def test_create_card_resets_scheduling_state(session_factory) -> None:
    now = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Capitals"))
            card = await create_card(session, CHAT_ID, deck.id, CardPayload(front=" France ", back=" Paris "), now=now)

    assert card.front == "France"
    assert card.back == "Paris"
    assert card.interval == 0
    assert card.ease_factor == 2.5
    assert card.review_count == 0
    assert card.success_rate == 0.0
    assert card.next_review_date == now


@pytest.mark.asyncio
async def test_card_content_can_be_edited_and_listed(session_factory) -> None:
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Capitals"))
            older = await create_card(session, CHAT_ID, deck.id, CardPayload(front="Spain", back="Madrid"), now=now)
            newer = await create_card(
                session,
                CHAT_ID,
                deck.id,
                CardPayload(front="Italy", back="Milan"),
                now=now + timedelta(minutes=1),
            )
            await update_card_content(session, CHAT_ID, newer.id, CardPayload(front="Italy", back="Rome"))
            with pytest.raises(InvalidArgument):
                await create_card(session, CHAT_ID, deck.id, CardPayload(front="", back="Nothing"))

            cards = await list_cards(session, CHAT_ID, deck.id)

    assert [card.id for card in cards] == [newer.id, older.id]
    assert cards[0].back == "Rome"


@pytest.mark.asyncio
async def test_delete_deck_removes_cards_and_reviews(session_factory) -> None:
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Old"))
            child = await create_deck(session, CHAT_ID, DeckPayload(name="Child", parent_deck_id=deck.id))
            card = await create_card(session, CHAT_ID, deck.id, CardPayload(front="a", back="b"))
            session.add(Review(card_id=card.id, performance_score=4, time_taken=3, success=True, reviewed_at=now))
            await session.flush()

        async with session.begin():
            removed = await delete_deck(session, CHAT_ID, deck.id)

        async with session.begin():
            card_count = await session.scalar(select(func.count()).select_from(Card))
            review_count = await session.scalar(select(func.count()).select_from(Review))
            await session.refresh(child)

    assert removed == 1
    assert card_count == 0
    assert review_count == 0
    assert child.parent_deck_id is None


@pytest.mark.asyncio
async def test_delete_card_removes_review_history(session_factory) -> None:
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Deck"))
            card = await create_card(session, CHAT_ID, deck.id, CardPayload(front="a", back="b"))
            session.add(Review(card_id=card.id, performance_score=0, time_taken=1, success=False, reviewed_at=now))
            await session.flush()
            await delete_card(session, CHAT_ID, card.id)

            with pytest.raises(NotFound):
                await delete_card(session, CHAT_ID, card.id)

            review_count = await session.scalar(select(func.count()).select_from(Review))

    assert review_count == 0


@pytest.mark.asyncio
async def test_record_review_round_trip_through_sql_store(session_factory) -> None:
    now = datetime(2026, 10, 18, 21, 15, tzinfo=timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Deck"))
            card = await create_card(session, CHAT_ID, deck.id, CardPayload(front="a", back="b"), now=now)
            card_id = card.id

    store = SqlCardStore(session_factory)
    async with store.transaction():
        updated = await record_review(store, card_id, 4, time_taken=12, now=now)

    stored = await store.get_card(card_id)
    assert stored == updated
    assert stored.interval == 1
    assert stored.review_count == 1
    assert stored.success_rate == 1.0
    assert stored.next_review_date.tzinfo is not None
    assert stored.next_review_date.date() == (now + timedelta(days=stored.interval)).date()

    async with session_factory() as session:
        reviews = (await session.execute(select(Review).where(Review.card_id == card_id))).scalars().all()
    assert len(reviews) == 1
    assert reviews[0].performance_score == 4
    assert reviews[0].time_taken == 12
    assert reviews[0].success is True


@pytest.mark.asyncio
async def test_failed_write_inside_transaction_rolls_back(session_factory) -> None:
    now = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Deck"))
            card = await create_card(session, CHAT_ID, deck.id, CardPayload(front="a", back="b"), now=now)
            card_id = card.id

    store = SqlCardStore(session_factory)
    with pytest.raises(NotFound):
        async with store.transaction():
            await store.update_card(
                card_id,
                ScheduleUpdate(
                    interval=1,
                    ease_factor=2.6,
                    next_review_date=now + timedelta(days=1),
                    review_count=1,
                    success_rate=1.0,
                ),
            )
            await store.get_card(card_id + 100)

    stored = await store.get_card(card_id)
    assert stored.review_count == 0
    assert stored.interval == 0




@pytest.mark.asyncio
async def test_get_card_raises_not_found(session_factory) -> None:
    store = SqlCardStore(session_factory)

    with pytest.raises(NotFound):
        await store.get_card(12345)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path) -> async_sessionmaker:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cards.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


async def _seed_card(factory, now: datetime) -> int:
    async with factory() as session:
        async with session.begin():
            await _create_user(session)
            deck = await create_deck(session, CHAT_ID, DeckPayload(name="Deck"))
            card = await create_card(session, CHAT_ID, deck.id, CardPayload(front="a", back="b"), now=now)
            return card.id


@pytest.mark.asyncio
async def test_write_from_another_session_after_read_raises_concurrent_modification(
    file_session_factory,
) -> None:
    now = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
    card_id = await _seed_card(file_session_factory, now)
    store = SqlCardStore(file_session_factory)

    with pytest.raises(ConcurrentModification):
        async with store.transaction():
            card = await store.get_card(card_id)

            async with file_session_factory() as other:
                async with other.begin():
                    row = await other.get(Card, card_id)
                    row.interval = 3

            await store.update_card(
                card_id,
                ScheduleUpdate(
                    interval=1,
                    ease_factor=2.5,
                    next_review_date=now + timedelta(days=1),
                    review_count=card.review_count + 1,
                    success_rate=1.0,
                    expected_version=card.version,
                ),
            )

    stored = await store.get_card(card_id)
    assert stored.interval == 3
    assert stored.review_count == 0
    assert stored.version == card.version + 1


@pytest.mark.asyncio
async def test_update_with_current_version_bumps_version(file_session_factory) -> None:
    now = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
    card_id = await _seed_card(file_session_factory, now)
    store = SqlCardStore(file_session_factory)

    async with store.transaction():
        updated = await record_review(store, card_id, 5, now=now)

    stored = await store.get_card(card_id)
    assert stored == updated
    assert stored.version == 2
    assert stored.review_count == 1


@pytest.mark.asyncio
async def test_create_card_stores_offset_timestamps_as_utc(session_factory) -> None:
    athens_evening = datetime(2026, 10, 18, 23, 30, tzinfo=timezone(timedelta(hours=3)))
    card_id = await _seed_card(session_factory, athens_evening)

    stored = await SqlCardStore(session_factory).get_card(card_id)

    assert stored.next_review_date == athens_evening
    assert stored.next_review_date.utcoffset() == timedelta(0)
    assert stored.next_review_date.hour == 20
    assert stored.created_at == athens_evening
