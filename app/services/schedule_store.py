"""Persistence of periodic job due times."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import ScheduledJobRecord


class ScheduleStore:
    """Stores when each named job is next due, so restarts do not reset it."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load_next_run(self, name: str) -> datetime | None:
        async with self._session_factory() as session:
            record = await session.get(ScheduledJobRecord, name)
            return record.next_run_at if record is not None else None

    async def save(
        self,
        name: str,
        *,
        next_run_at: datetime,
        last_run_at: datetime | None = None,
    ) -> None:
        async with self._session_factory() as session:
            record = await session.get(ScheduledJobRecord, name)
            if record is None:
                record = ScheduledJobRecord(name=name, next_run_at=next_run_at)
                session.add(record)
            record.next_run_at = next_run_at
            if last_run_at is not None:
                record.last_run_at = last_run_at
            await session.commit()
