"""Persistence of movies and series on top of the async SQLAlchemy session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import MovieRecord, SeriesRecord
from ..exceptions import NotFound
from ..models import Movie, Season, Series, SeriesStatus, WatchStatus

logger = logging.getLogger(__name__)


class CatalogStore:
    """Key-addressed store of movie and series snapshots.

    Each save replaces one document. Callers that read, modify and write a
    series must hold :meth:`series_lock` for that id so concurrent writers do
    not overwrite each other's season changes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._series_locks: dict[str, asyncio.Lock] = {}

    def series_lock(self, series_id: str) -> asyncio.Lock:
        # Entries are dropped on delete and on lookups of unknown ids, so the
        # registry never holds more than one lock per stored series.
        return self._series_locks.setdefault(series_id, asyncio.Lock())

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    async def get_series(self, series_id: str) -> Series:
        async with self._session_factory() as session:
            record = await session.get(SeriesRecord, series_id)
            if record is None:
                self._series_locks.pop(series_id, None)
                raise NotFound("series", series_id)
            return self._series_from_record(record)

    async def all_series(self) -> list[Series]:
        async with self._session_factory() as session:
            stmt = select(SeriesRecord).order_by(
                SeriesRecord.date_added, SeriesRecord.id
            )
            result = await session.execute(stmt)
            return [self._series_from_record(row) for row in result.scalars()]

    async def unwatched_series(self) -> list[Series]:
        async with self._session_factory() as session:
            stmt = (
                select(SeriesRecord)
                .where(
                    SeriesRecord.overall_watch_status == WatchStatus.UNWATCHED.value
                )
                .order_by(SeriesRecord.date_added, SeriesRecord.id)
            )
            result = await session.execute(stmt)
            return [self._series_from_record(row) for row in result.scalars()]

    async def find_series_by_title(self, title: str) -> list[Series]:
        needle = title.strip().casefold()
        return [
            series
            for series in await self.all_series()
            if series.title.strip().casefold() == needle
        ]

    async def save_series(self, series: Series) -> Series:
        async with self._session_factory() as session:
            await session.merge(self._series_to_record(series))
            await session.commit()
        return series

    async def series_exists(self, series_id: str) -> bool:
        async with self._session_factory() as session:
            stmt = select(SeriesRecord.id).where(SeriesRecord.id == series_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def delete_series(self, series_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(SeriesRecord).where(SeriesRecord.id == series_id)
            )
            await session.commit()
        self._series_locks.pop(series_id, None)

    # ------------------------------------------------------------------
    # Movies
    # ------------------------------------------------------------------

    async def get_movie(self, movie_id: str) -> Movie:
        async with self._session_factory() as session:
            record = await session.get(MovieRecord, movie_id)
            if record is None:
                raise NotFound("movie", movie_id)
            return self._movie_from_record(record)

    async def all_movies(self) -> list[Movie]:
        async with self._session_factory() as session:
            stmt = select(MovieRecord).order_by(MovieRecord.date_added, MovieRecord.id)
            result = await session.execute(stmt)
            return [self._movie_from_record(row) for row in result.scalars()]

    async def unwatched_movies(self) -> list[Movie]:
        async with self._session_factory() as session:
            stmt = (
                select(MovieRecord)
                .where(MovieRecord.watch_status == WatchStatus.UNWATCHED.value)
                .order_by(MovieRecord.date_added, MovieRecord.id)
            )
            result = await session.execute(stmt)
            return [self._movie_from_record(row) for row in result.scalars()]

    async def save_movie(self, movie: Movie) -> Movie:
        async with self._session_factory() as session:
            await session.merge(self._movie_to_record(movie))
            await session.commit()
        return movie

    async def movie_exists(self, movie_id: str) -> bool:
        async with self._session_factory() as session:
            stmt = select(MovieRecord.id).where(MovieRecord.id == movie_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def delete_movie(self, movie_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(MovieRecord).where(MovieRecord.id == movie_id)
            )
            await session.commit()

    # ------------------------------------------------------------------
    # Record conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _series_from_record(record: SeriesRecord) -> Series:
        raw_seasons: list[dict[str, Any]] = list(record.seasons or [])
        if not raw_seasons:
            logger.warning(
                "Series %s has no stored seasons; restoring default season 1",
                record.id,
            )
            raw_seasons = [{"season_number": 1}]
        return Series(
            id=record.id,
            title=record.title,
            external_id=record.external_id,
            external_link=record.external_link,
            comment=record.comment,
            genres=tuple(record.genres or ()),
            seasons=tuple(Season.model_validate(entry) for entry in raw_seasons),
            total_available_seasons=record.total_available_seasons,
            has_new_seasons=bool(record.has_new_seasons),
            series_status=(
                SeriesStatus(record.series_status) if record.series_status else None
            ),
            last_reconciled_at=record.last_reconciled_at,
            priority=record.priority or 0,
            added_by=record.added_by,
            date_added=record.date_added,
        )

    @staticmethod
    def _series_to_record(series: Series) -> SeriesRecord:
        return SeriesRecord(
            id=series.id,
            title=series.title,
            external_id=series.external_id,
            external_link=series.external_link,
            comment=series.comment,
            genres=list(series.genres),
            seasons=[season.model_dump(mode="json") for season in series.seasons],
            overall_watch_status=series.overall_watch_status.value,
            total_available_seasons=series.total_available_seasons,
            has_new_seasons=series.has_new_seasons,
            series_status=series.series_status.value if series.series_status else None,
            last_reconciled_at=series.last_reconciled_at,
            priority=series.priority,
            added_by=series.added_by,
            date_added=series.date_added,
        )

    @staticmethod
    def _movie_from_record(record: MovieRecord) -> Movie:
        return Movie(
            id=record.id,
            title=record.title,
            link=record.link,
            comment=record.comment,
            genres=tuple(record.genres or ()),
            length=record.length,
            watch_status=WatchStatus(record.watch_status),
            priority=record.priority or 0,
            added_by=record.added_by,
            date_added=record.date_added,
        )

    @staticmethod
    def _movie_to_record(movie: Movie) -> MovieRecord:
        return MovieRecord(
            id=movie.id,
            title=movie.title,
            link=movie.link,
            comment=movie.comment,
            genres=list(movie.genres),
            length=movie.length,
            watch_status=movie.watch_status.value,
            priority=movie.priority,
            added_by=movie.added_by,
            date_added=movie.date_added,
        )
