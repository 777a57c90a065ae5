from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.study.errors import InvalidArgument

from . import User


async def upsert_user(
    session: AsyncSession,
    chat_id: int,
    first_name: Optional[str],
    last_name: Optional[str],
) -> User:
    """Create or update a user record based on the latest Telegram payload."""
    user = await session.get(User, chat_id)

    if user is None:
        now = datetime.now(timezone.utc)
        user = User(
            chat_id=chat_id,
            first_name=first_name,
            last_name=last_name,
            created_at=now,
            updated_at=now,
        )
        session.add(user)
        return user

    has_changes = False

    if user.first_name != first_name:
        user.first_name = first_name
        has_changes = True

    if user.last_name != last_name:
        user.last_name = last_name
        has_changes = True

    if has_changes:
        user.updated_at = datetime.now(timezone.utc)
        await session.flush()

    return user


async def get_effective_new_cards_per_day(session: AsyncSession, chat_id: int, default: int) -> int:
    """Return the user's own daily new-card limit, falling back to ``default``."""
    user = await session.get(User, chat_id)
    if user is None or user.new_cards_per_day is None:
        return default
    return user.new_cards_per_day


async def set_new_cards_per_day(session: AsyncSession, chat_id: int, value: Optional[int]) -> User:
    """Store a per-user daily new-card limit; ``None`` restores the default."""
    if value is not None and value < 0:
        raise InvalidArgument("The daily new-card limit must not be negative.")

    user = await session.get(User, chat_id)
    now = datetime.now(timezone.utc)
    if user is None:
        user = User(chat_id=chat_id, created_at=now, updated_at=now)
        session.add(user)

    user.new_cards_per_day = value
    user.updated_at = now
    await session.flush()
    return user
