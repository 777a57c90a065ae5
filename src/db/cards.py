"""Helpers for working with card persistence."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from src.study.errors import ConcurrentModification, InvalidArgument, NotFound, StoreUnavailable
from src.study.models import (
    DEFAULT_EASE_FACTOR,
    CardFilter,
    CardOrder,
    ReviewRecord,
    ScheduleUpdate,
    StudyCard,
)

from . import Card, Deck, Review
from .decks import get_deck


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CardPayload:
    """Front and back content of a card."""

    front: str
    back: str

    def normalized(self) -> "CardPayload":
        """Return a payload with leading/trailing whitespace stripped."""
        front = self.front.strip()
        back = self.back.strip()
        if not front or not back:
            raise InvalidArgument("Both sides of a card must have content.")
        return CardPayload(front=front, back=back)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_study_card(card: Card) -> StudyCard:
    """Convert an ORM row into the record type used by the study core."""
    return StudyCard(
        id=card.id,
        deck_id=card.deck_id,
        front=card.front,
        back=card.back,
        interval=card.interval,
        ease_factor=card.ease_factor,
        next_review_date=_as_utc(card.next_review_date),
        review_count=card.review_count,
        success_rate=card.success_rate,
        created_at=_as_utc(card.created_at) if card.created_at is not None else None,
        version=card.version,
    )


async def get_card(session: AsyncSession, chat_id: int, card_id: int) -> Card:
    """Return a card from one of the user's decks or raise ``NotFound``."""
    stmt = select(Card).join(Deck, Card.deck_id == Deck.id).where(Card.id == card_id, Deck.chat_id == chat_id)
    result = await session.execute(stmt)
    card = result.scalars().first()
    if card is None:
        raise NotFound(f"Card {card_id} was not found.")
    return card


async def create_card(
    session: AsyncSession,
    chat_id: int,
    deck_id: int,
    payload: CardPayload,
    now: Optional[datetime] = None,
) -> Card:
    """Create a card in a deck with fresh scheduling state, due immediately."""
    if now is None:
        now = datetime.now(timezone.utc)
    now = _as_utc(now)

    deck = await get_deck(session, chat_id, deck_id)
    normalized = payload.normalized()
    card = Card(
        deck_id=deck.id,
        front=normalized.front,
        back=normalized.back,
        interval=0,
        ease_factor=DEFAULT_EASE_FACTOR,
        next_review_date=now,
        review_count=0,
        success_rate=0.0,
        created_at=now,
        updated_at=now,
    )
    session.add(card)
    await session.flush()
    return card


async def update_card_content(
    session: AsyncSession,
    chat_id: int,
    card_id: int,
    payload: CardPayload,
    now: Optional[datetime] = None,
) -> Card:
    """Edit the text of a card without touching its schedule."""
    if now is None:
        now = datetime.now(timezone.utc)

    card = await get_card(session, chat_id, card_id)
    normalized = payload.normalized()
    card.front = normalized.front
    card.back = normalized.back
    card.updated_at = now
    await session.flush()
    return card


async def list_cards(
    session: AsyncSession,
    chat_id: int,
    deck_id: Optional[int] = None,
) -> Sequence[Card]:
    """Return cards of one deck, or of every deck when ``deck_id`` is None, newest first."""
    stmt = select(Card).join(Deck, Card.deck_id == Deck.id).where(Deck.chat_id == chat_id)
    if deck_id is not None:
        stmt = stmt.where(Card.deck_id == deck_id)
    stmt = stmt.order_by(Card.created_at.desc(), Card.id.desc())
    result = await session.execute(stmt)
    return result.scalars().all()


async def delete_card(session: AsyncSession, chat_id: int, card_id: int) -> None:
    """Delete a card together with its review history."""
    card = await get_card(session, chat_id, card_id)
    await session.execute(
        delete(Review).where(Review.card_id == card.id).execution_options(synchronize_session=False)
    )
    await session.delete(card)
    await session.flush()


class SqlCardStore:
    """``CardStore`` backed by the application database.

    Calls made inside ``transaction()`` share one session and commit together;
    calls made outside run in a short transaction of their own.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._current: ContextVar[Optional[AsyncSession]] = ContextVar(
            f"sql_card_store_{id(self)}", default=None
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    token = self._current.set(session)
                    try:
                        yield
                    finally:
                        self._current.reset(token)
        except StaleDataError as exc:
            raise ConcurrentModification("The card was modified by another session.") from exc
        except SQLAlchemyError as exc:
            LOGGER.exception("Card store operation failed.")
            raise StoreUnavailable("The card store is unavailable.") from exc

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = self._current.get()
        if session is not None:
            yield session
            return
        async with self.transaction():
            yield self._current.get()

    async def find_cards(self, card_filter: CardFilter, order_by: CardOrder) -> List[StudyCard]:
        scope = card_filter.scope
        if scope is None:
            raise InvalidArgument("A study scope is required.")

        stmt = select(Card).join(Deck, Card.deck_id == Deck.id).where(Deck.chat_id == scope.chat_id)
        if scope.deck_id is not None:
            stmt = stmt.where(Card.deck_id == scope.deck_id)
        if card_filter.due_at is not None:
            stmt = stmt.where(Card.next_review_date <= _as_utc(card_filter.due_at))
        if card_filter.reviewed is True:
            stmt = stmt.where(Card.review_count > 0)
        elif card_filter.reviewed is False:
            stmt = stmt.where(Card.review_count == 0)

        if order_by is CardOrder.NEXT_REVIEW_ASC:
            stmt = stmt.order_by(Card.next_review_date.asc(), Card.id.asc())
        else:
            stmt = stmt.order_by(Card.created_at.desc(), Card.id.desc())

        if card_filter.limit is not None:
            stmt = stmt.limit(card_filter.limit)

        async with self._session() as session:
            result = await session.execute(stmt)
            return [to_study_card(card) for card in result.scalars().all()]

    async def get_card(self, card_id: int) -> StudyCard:
        async with self._session() as session:
            card = await session.get(Card, card_id)
            if card is None:
                raise NotFound(f"Card {card_id} was not found.")
            return to_study_card(card)

    async def update_card(self, card_id: int, fields: ScheduleUpdate) -> StudyCard:
        async with self._session() as session:
            card = await session.get(Card, card_id, populate_existing=True)
            if card is None:
                raise NotFound(f"Card {card_id} was not found.")
            if fields.expected_version is not None and card.version != fields.expected_version:
                raise ConcurrentModification(
                    f"Card {card_id} changed since it was read (version {fields.expected_version}, now {card.version})."
                )
            card.interval = fields.interval
            card.ease_factor = fields.ease_factor
            card.next_review_date = _as_utc(fields.next_review_date)
            card.review_count = fields.review_count
            card.success_rate = fields.success_rate
            card.updated_at = datetime.now(timezone.utc)
            await session.flush()
            return to_study_card(card)

    async def append_review(self, record: ReviewRecord) -> None:
        async with self._session() as session:
            session.add(
                Review(
                    card_id=record.card_id,
                    performance_score=record.performance_score,
                    time_taken=record.time_taken,
                    success=record.success,
                    reviewed_at=_as_utc(record.reviewed_at),
                )
            )
            await session.flush()
