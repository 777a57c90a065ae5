"""Helpers for working with deck persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.study.errors import InvalidArgument, NotFound

from . import Card, Deck, Review


DEFAULT_FRONT_LABEL = "Question"
DEFAULT_BACK_LABEL = "Answer"


@dataclass(slots=True)
class DeckPayload:
    """Definition of a deck supplied by the user."""

    name: str
    description: Optional[str] = None
    parent_deck_id: Optional[int] = None
    front_label: Optional[str] = None
    back_label: Optional[str] = None

    def normalized(self) -> "DeckPayload":
        """Return a payload with whitespace stripped and blank labels defaulted."""
        name = self.name.strip()
        if not name:
            raise InvalidArgument("Deck name must not be empty.")
        description = self.description.strip() if isinstance(self.description, str) else None
        front_label = (self.front_label or "").strip() or DEFAULT_FRONT_LABEL
        back_label = (self.back_label or "").strip() or DEFAULT_BACK_LABEL
        return DeckPayload(
            name=name,
            description=description or None,
            parent_deck_id=self.parent_deck_id,
            front_label=front_label,
            back_label=back_label,
        )


async def get_deck(session: AsyncSession, chat_id: int, deck_id: int) -> Deck:
    """Return a deck owned by the user or raise ``NotFound``."""
    deck = await session.get(Deck, deck_id)
    if deck is None or deck.chat_id != chat_id:
        raise NotFound(f"Deck {deck_id} was not found.")
    return deck


async def create_deck(
    session: AsyncSession,
    chat_id: int,
    payload: DeckPayload,
    now: Optional[datetime] = None,
) -> Deck:
    """Create a deck, checking that the parent deck belongs to the same user."""
    if now is None:
        now = datetime.now(timezone.utc)

    normalized = payload.normalized()
    if normalized.parent_deck_id is not None:
        await get_deck(session, chat_id, normalized.parent_deck_id)

    deck = Deck(
        chat_id=chat_id,
        parent_deck_id=normalized.parent_deck_id,
        name=normalized.name,
        description=normalized.description,
        front_label=normalized.front_label,
        back_label=normalized.back_label,
        created_at=now,
        updated_at=now,
    )
    session.add(deck)
    await session.flush()
    return deck


async def list_decks(session: AsyncSession, chat_id: int) -> Sequence[Deck]:
    """Return every deck of the user, newest first."""
    stmt = (
        select(Deck)
        .where(Deck.chat_id == chat_id)
        .order_by(Deck.created_at.desc(), Deck.id.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_child_decks(session: AsyncSession, chat_id: int, parent_deck_id: int) -> Sequence[Deck]:
    """Return the direct children of a deck, newest first."""
    stmt = (
        select(Deck)
        .where(Deck.chat_id == chat_id, Deck.parent_deck_id == parent_deck_id)
        .order_by(Deck.created_at.desc(), Deck.id.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def update_deck(
    session: AsyncSession,
    chat_id: int,
    deck_id: int,
    payload: DeckPayload,
    now: Optional[datetime] = None,
) -> Deck:
    """Replace a deck's editable fields."""
    if now is None:
        now = datetime.now(timezone.utc)

    deck = await get_deck(session, chat_id, deck_id)
    normalized = payload.normalized()
    if normalized.parent_deck_id is not None:
        if normalized.parent_deck_id == deck_id:
            raise InvalidArgument("A deck cannot be its own parent.")
        await get_deck(session, chat_id, normalized.parent_deck_id)

    deck.name = normalized.name
    deck.description = normalized.description
    deck.parent_deck_id = normalized.parent_deck_id
    deck.front_label = normalized.front_label
    deck.back_label = normalized.back_label
    deck.updated_at = now
    await session.flush()
    return deck


async def delete_deck(session: AsyncSession, chat_id: int, deck_id: int) -> int:
    """Delete a deck with its cards and their reviews; return the number of cards removed.

    Child decks are kept and moved to the top level.
    """
    deck = await get_deck(session, chat_id, deck_id)

    card_ids = select(Card.id).where(Card.deck_id == deck.id)
    await session.execute(
        delete(Review).where(Review.card_id.in_(card_ids)).execution_options(synchronize_session=False)
    )
    result = await session.execute(
        delete(Card).where(Card.deck_id == deck.id).execution_options(synchronize_session=False)
    )
    await session.execute(
        update(Deck)
        .where(Deck.parent_deck_id == deck.id)
        .values(parent_deck_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.delete(deck)
    await session.flush()
    return result.rowcount or 0
