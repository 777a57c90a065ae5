"""Database-backed key-value store for daily counters."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.study.errors import StoreUnavailable

from . import DailyCounter


class SqlCounterStore:
    """``CounterStore`` persisting values in the ``daily_counters`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> int:
        try:
            async with self._session_factory() as session:
                counter = await session.get(DailyCounter, key)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not read counter {key}.") from exc
        if counter is None:
            return 0
        return counter.value

    async def set(self, key: str, value: int) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    counter = await session.get(DailyCounter, key)
                    now = datetime.now(timezone.utc)
                    if counter is None:
                        session.add(DailyCounter(key=key, value=value, updated_at=now))
                    else:
                        counter.value = value
                        counter.updated_at = now
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not write counter {key}.") from exc
