"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .utils import utcnow


class SeriesRecord(Base):
    """A tracked series; seasons are embedded as a JSON list."""

    __tablename__ = "series"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), index=True)
    external_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    external_link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    seasons: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    overall_watch_status: Mapped[str] = mapped_column(
        String(16), default="UNWATCHED", index=True
    )
    total_available_seasons: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    has_new_seasons: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    series_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    last_reconciled_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=0)
    added_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    date_added: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )


class MovieRecord(Base):
    """A catalog movie."""

    __tablename__ = "movies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), index=True)
    link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    length: Mapped[int | None] = mapped_column(Integer, nullable=True)
    watch_status: Mapped[str] = mapped_column(
        String(16), default="UNWATCHED", index=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=0)
    added_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    date_added: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )


class NotificationRecord(Base):
    """A new-season alert awaiting dismissal."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    series_id: Mapped[str] = mapped_column(String(64), index=True)
    series_title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    new_seasons_count: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    dismissed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )


class ScheduledJobRecord(Base):
    """Next due time of a periodic job, kept across restarts."""

    __tablename__ = "scheduled_jobs"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    next_run_at: Mapped[datetime] = mapped_column(DateTime)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
