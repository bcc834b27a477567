"""Catalog edit operations and the combined movie and series view."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from ..exceptions import InvalidSeasonOperation, NotFound
from ..models import (
    ContentType,
    Movie,
    MovieCreate,
    Season,
    Series,
    SeriesCreate,
    SeriesStatus,
    WatchStatus,
)
from ..utils import build_tmdb_link, parse_tmdb_movie_id, parse_tmdb_tv_id
from .catalog_store import CatalogStore

logger = logging.getLogger(__name__)


def ensure_unique_season_numbers(seasons: Iterable[Season]) -> None:
    """Reject season lists that repeat a season number."""

    seen: set[int] = set()
    duplicates: set[int] = set()
    for season in seasons:
        if season.season_number in seen:
            duplicates.add(season.season_number)
        seen.add(season.season_number)
    if duplicates:
        listed = ", ".join(str(number) for number in sorted(duplicates))
        raise InvalidSeasonOperation(f"Duplicate season numbers: {listed}")


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """One row of the combined catalog, wrapping a movie or a series."""

    kind: ContentType
    item: Movie | Series

    @property
    def is_movie(self) -> bool:
        return self.kind is ContentType.MOVIE

    @property
    def watch_status(self) -> WatchStatus:
        if isinstance(self.item, Movie):
            return self.item.watch_status
        return self.item.overall_watch_status

    @property
    def tmdb_id(self) -> int | None:
        if isinstance(self.item, Movie):
            return parse_tmdb_movie_id(self.item.link)
        return self.item.external_id or parse_tmdb_tv_id(self.item.external_link)

    @property
    def length(self) -> int | None:
        return self.item.length if isinstance(self.item, Movie) else None

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match on title, comment or any genre."""

        item = self.item
        if needle in item.title.casefold():
            return True
        if item.comment and needle in item.comment.casefold():
            return True
        return any(needle in genre.casefold() for genre in item.genres)

    def to_payload(self) -> dict[str, Any]:
        item = self.item
        raw_link = item.link if isinstance(item, Movie) else item.external_link
        payload: dict[str, Any] = {
            "id": item.id,
            "contentType": self.kind.value,
            "title": item.title,
            "link": build_tmdb_link(self.tmdb_id, is_movie=self.is_movie) or raw_link,
            "tmdbId": self.tmdb_id,
            "comment": item.comment,
            "genres": list(item.genres),
            "watchStatus": self.watch_status.value,
            "addedBy": item.added_by,
            "dateAdded": item.date_added.isoformat(),
            "priority": item.priority,
        }
        if isinstance(item, Movie):
            payload["length"] = item.length
        else:
            payload["seasons"] = [
                {
                    "seasonNumber": season.season_number,
                    "watchStatus": season.watch_status.value,
                }
                for season in item.seasons
            ]
            payload["hasNewSeasons"] = item.has_new_seasons
            payload["seriesStatus"] = (
                item.series_status.value if item.series_status else None
            )
            payload["totalAvailableSeasons"] = item.total_available_seasons
        return payload


def sort_catalog(
    entries: list[CatalogEntry], sort_by: str | None = None
) -> list[CatalogEntry]:
    """Order entries unwatched first, then by ``sort_by``.

    Without ``sort_by`` the secondary order is priority (highest first) and
    then date added (oldest first). Each pass below is a stable sort, so the
    last pass applied is the primary key.
    """

    ordered = list(entries)
    field = (sort_by or "").strip().lower()
    if not field:
        ordered.sort(key=lambda entry: entry.item.date_added)
        ordered.sort(key=lambda entry: entry.item.priority, reverse=True)
    elif field == "title":
        ordered.sort(key=lambda entry: entry.item.title.casefold())
    elif field == "length":
        ordered.sort(key=lambda entry: entry.length or 0, reverse=True)
    else:
        if field != "dateadded":
            logger.warning("Unknown sort field: %s", sort_by)
        ordered.sort(key=lambda entry: entry.item.date_added, reverse=True)
    ordered.sort(key=lambda entry: entry.watch_status is WatchStatus.WATCHED)
    return ordered


class CatalogService:
    """Applies user edits to catalog entries and serves the combined view.

    Every series edit runs under the store's per-series lock so it cannot
    interleave with a season reconciliation of the same series.
    """

    def __init__(self, store: CatalogStore):
        self._store = store

    # ------------------------------------------------------------------
    # Combined catalog
    # ------------------------------------------------------------------

    async def get_catalog(
        self,
        *,
        content_type: ContentType | None = None,
        genre: str | None = None,
        watch_status: WatchStatus | None = None,
        added_by: str | None = None,
        has_new_seasons: bool | None = None,
        series_status: SeriesStatus | None = None,
        sort_by: str | None = None,
    ) -> list[CatalogEntry]:
        """Return movies and series matching every given filter.

        ``has_new_seasons`` and ``series_status`` only describe series, so
        setting either one leaves movies out of the result.
        """

        logger.info(
            "Getting catalog with filters - contentType: %s, genre: %s, "
            "watchStatus: %s, addedBy: %s, hasNewSeasons: %s, seriesStatus: %s, "
            "sortBy: %s",
            content_type,
            genre,
            watch_status,
            added_by,
            has_new_seasons,
            series_status,
            sort_by,
        )
        series_only = has_new_seasons is not None or series_status is not None
        entries: list[CatalogEntry] = []
        if content_type in (None, ContentType.MOVIE) and not series_only:
            entries.extend(
                CatalogEntry(ContentType.MOVIE, movie)
                for movie in await self._store.all_movies()
            )
        if content_type in (None, ContentType.SERIES):
            entries.extend(
                CatalogEntry(ContentType.SERIES, series)
                for series in await self._store.all_series()
                if (has_new_seasons is None or series.has_new_seasons is has_new_seasons)
                and (series_status is None or series.series_status is series_status)
            )

        if genre:
            wanted_genre = genre.strip().casefold()
            entries = [
                entry
                for entry in entries
                if any(g.casefold() == wanted_genre for g in entry.item.genres)
            ]
        if watch_status is not None:
            entries = [entry for entry in entries if entry.watch_status is watch_status]
        if added_by:
            wanted_by = added_by.strip().casefold()
            entries = [
                entry
                for entry in entries
                if (entry.item.added_by or "").strip().casefold() == wanted_by
            ]

        entries = sort_catalog(entries, sort_by)
        logger.info("Returning %s catalog items", len(entries))
        return entries

    async def search_catalog(self, query: str) -> list[CatalogEntry]:
        """Find movies and series whose title, comment or genres contain ``query``."""

        logger.info("Searching catalog with query: %s", query)
        needle = query.strip().casefold()
        entries = [
            CatalogEntry(ContentType.MOVIE, movie)
            for movie in await self._store.all_movies()
        ]
        entries.extend(
            CatalogEntry(ContentType.SERIES, series)
            for series in await self._store.all_series()
        )
        results = sort_catalog([entry for entry in entries if entry.matches(needle)])
        logger.info("Found %s matching items", len(results))
        return results

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    async def list_series(self) -> list[Series]:
        return await self._store.all_series()

    async def get_series(self, series_id: str) -> Series:
        return await self._store.get_series(series_id)

    async def add_series(self, request: SeriesCreate) -> Series:
        logger.info("Adding new series: %s", request.title)
        seasons = list(request.seasons or [])
        ensure_unique_season_numbers(seasons)
        if await self._store.find_series_by_title(request.title):
            logger.warning(
                "Series with title '%s' already exists in the catalog", request.title
            )

        if not seasons:
            logger.info(
                "No seasons provided for series '%s', creating default season 1",
                request.title,
            )
            seasons = [Season(season_number=1)]

        series = Series(
            title=request.title,
            external_id=request.external_id or parse_tmdb_tv_id(request.link),
            external_link=request.link,
            comment=request.comment,
            genres=tuple(request.genres),
            seasons=seasons,
            priority=request.priority or 0,
            added_by=request.added_by,
        )
        await self._store.save_series(series)
        logger.info("Series added successfully with id: %s", series.id)
        return series

    async def update_series(self, series_id: str, request: SeriesCreate) -> Series:
        if request.seasons is not None:
            if not request.seasons:
                raise InvalidSeasonOperation(
                    "Cannot update series with empty seasons list. "
                    "Series must have at least one season."
                )
            ensure_unique_season_numbers(request.seasons)
        async with self._store.series_lock(series_id):
            series = await self._store.get_series(series_id)
            changes: dict[str, object] = {
                "title": request.title,
                "external_link": request.link,
                "comment": request.comment,
                "genres": tuple(request.genres),
                "added_by": request.added_by,
            }
            if request.external_id is not None:
                changes["external_id"] = request.external_id
            elif request.link != series.external_link:
                changes["external_id"] = parse_tmdb_tv_id(request.link)
            if request.priority is not None:
                changes["priority"] = request.priority
            if request.seasons is not None:
                changes["seasons"] = request.seasons
            updated = series.evolve(**changes)
            await self._store.save_series(updated)
        logger.info("Series updated successfully: %s", series_id)
        return updated

    async def delete_series(self, series_id: str) -> None:
        logger.info("Deleting series: %s", series_id)
        if not await self._store.series_exists(series_id):
            raise NotFound("series", series_id)
        await self._store.delete_series(series_id)
        logger.info("Series deleted successfully: %s", series_id)

    async def set_season_watch_status(
        self, series_id: str, season_number: int, watch_status: WatchStatus
    ) -> Series:
        """Mark one season, creating it when the series does not have it yet."""

        if season_number < 1:
            raise InvalidSeasonOperation("Season numbers start at 1")
        async with self._store.series_lock(series_id):
            series = await self._store.get_series(series_id)
            seasons = series.season_map()
            seasons[season_number] = Season(
                season_number=season_number, watch_status=watch_status
            )
            updated = series.evolve(seasons=list(seasons.values()))
            await self._store.save_series(updated)
        logger.info(
            "Season %s of series %s marked %s", season_number, series_id, watch_status.value
        )
        return updated

    async def set_series_watch_status(
        self, series_id: str, watch_status: WatchStatus
    ) -> Series:
        async with self._store.series_lock(series_id):
            series = await self._store.get_series(series_id)
            updated = series.evolve(
                seasons=[
                    season.model_copy(update={"watch_status": watch_status})
                    for season in series.seasons
                ]
            )
            await self._store.save_series(updated)
        logger.info("Series %s marked %s", series_id, watch_status.value)
        return updated

    async def set_series_priority(self, series_id: str, priority: int) -> Series:
        async with self._store.series_lock(series_id):
            series = await self._store.get_series(series_id)
            updated = series.evolve(priority=priority)
            await self._store.save_series(updated)
        logger.info("Priority for series %s set to %s", series_id, priority)
        return updated

    async def add_season(self, series_id: str) -> Series:
        """Append the next season number as unwatched."""

        async with self._store.series_lock(series_id):
            series = await self._store.get_series(series_id)
            next_number = series.max_season_number + 1
            updated = series.evolve(
                seasons=[*series.seasons, Season(season_number=next_number)]
            )
            await self._store.save_series(updated)
        logger.info("Added season %s for series %s", next_number, series_id)
        return updated

    async def remove_last_season(self, series_id: str) -> Series:
        async with self._store.series_lock(series_id):
            series = await self._store.get_series(series_id)
            if len(series.seasons) == 1:
                raise InvalidSeasonOperation("Series must contain at least one season")
            last_number = series.max_season_number
            updated = series.evolve(
                seasons=[
                    season
                    for season in series.seasons
                    if season.season_number != last_number
                ]
            )
            await self._store.save_series(updated)
        logger.info("Removed season %s for series %s", last_number, series_id)
        return updated

    # ------------------------------------------------------------------
    # Movies
    # ------------------------------------------------------------------

    async def list_movies(self) -> list[Movie]:
        return await self._store.all_movies()

    async def add_movie(self, request: MovieCreate) -> Movie:
        logger.info("Adding new movie: %s", request.title)
        movie = Movie(
            title=request.title,
            link=request.link,
            comment=request.comment,
            genres=tuple(request.genres),
            length=request.length,
            priority=request.priority or 0,
            added_by=request.added_by,
        )
        await self._store.save_movie(movie)
        logger.info("Movie added successfully with id: %s", movie.id)
        return movie

    async def set_movie_watch_status(
        self, movie_id: str, watch_status: WatchStatus
    ) -> Movie:
        movie = await self._store.get_movie(movie_id)
        updated = movie.model_copy(update={"watch_status": watch_status})
        await self._store.save_movie(updated)
        logger.info("Movie %s marked %s", movie_id, watch_status.value)
        return updated

    async def set_movie_priority(self, movie_id: str, priority: int) -> Movie:
        movie = await self._store.get_movie(movie_id)
        updated = movie.model_copy(update={"priority": priority})
        await self._store.save_movie(updated)
        logger.info("Priority for movie %s set to %s", movie_id, priority)
        return updated

    async def delete_movie(self, movie_id: str) -> None:
        logger.info("Deleting movie: %s", movie_id)
        if not await self._store.movie_exists(movie_id):
            raise NotFound("movie", movie_id)
        await self._store.delete_movie(movie_id)
        logger.info("Movie deleted successfully: %s", movie_id)
