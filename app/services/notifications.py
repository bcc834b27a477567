"""Persistence of new-season notifications."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import NotificationRecord
from ..exceptions import NotFound
from ..models import Notification

logger = logging.getLogger(__name__)


def build_new_seasons_message(series_title: str, new_seasons_count: int) -> str:
    suffix = "s" if new_seasons_count > 1 else ""
    return f"New season{suffix} available for {series_title}"


class NotificationService:
    """Creates, lists and dismisses new-season notifications."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def notify_new_seasons(
        self, series_id: str, series_title: str, new_seasons_count: int
    ) -> Notification:
        """Record an alert that ``series_title`` gained ``new_seasons_count`` seasons."""

        logger.info(
            "Creating notification for series %s with %s new seasons",
            series_title,
            new_seasons_count,
        )
        notification = Notification(
            series_id=series_id,
            series_title=series_title,
            message=build_new_seasons_message(series_title, new_seasons_count),
            new_seasons_count=new_seasons_count,
        )
        async with self._session_factory() as session:
            session.add(
                NotificationRecord(
                    id=notification.id,
                    series_id=notification.series_id,
                    series_title=notification.series_title,
                    message=notification.message,
                    new_seasons_count=notification.new_seasons_count,
                    created_at=notification.created_at,
                    dismissed=False,
                )
            )
            await session.commit()
        logger.info("Notification created with id: %s", notification.id)
        return notification

    async def list_active(self) -> list[Notification]:
        async with self._session_factory() as session:
            stmt = (
                select(NotificationRecord)
                .where(NotificationRecord.dismissed.is_(False))
                .order_by(NotificationRecord.created_at.desc())
            )
            result = await session.execute(stmt)
            return [self._from_record(record) for record in result.scalars()]

    async def dismiss(self, notification_id: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                update(NotificationRecord)
                .where(NotificationRecord.id == notification_id)
                .values(dismissed=True)
            )
            await session.commit()
        if not result.rowcount:
            raise NotFound("notification", notification_id)
        logger.info("Notification dismissed: %s", notification_id)

    @staticmethod
    def _from_record(record: NotificationRecord) -> Notification:
        return Notification(
            id=record.id,
            series_id=record.series_id,
            series_title=record.series_title,
            message=record.message,
            new_seasons_count=record.new_seasons_count,
            created_at=record.created_at,
            dismissed=record.dismissed,
        )
