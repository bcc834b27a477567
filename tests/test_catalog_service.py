from __future__ import annotations

from datetime import datetime

import pytest

from app.exceptions import InvalidSeasonOperation, NotFound
from app.models import (
    ContentType,
    Movie,
    MovieCreate,
    Season,
    Series,
    SeriesCreate,
    SeriesStatus,
    WatchStatus,
)
from app.services.catalog import CatalogEntry, CatalogService, sort_catalog
from app.services.catalog_store import CatalogStore


@pytest.mark.anyio("asyncio")
async def test_add_series_defaults_to_first_season(store: CatalogStore) -> None:
    service = CatalogService(store)

    series = await service.add_series(
        SeriesCreate(title="Andor", link="https://www.themoviedb.org/tv/83867-andor")
    )

    assert [season.season_number for season in series.seasons] == [1]
    assert series.external_id == 83867
    assert series.overall_watch_status is WatchStatus.UNWATCHED
    assert await store.get_series(series.id) == series


@pytest.mark.anyio("asyncio")
async def test_season_watch_status_creates_missing_season(store: CatalogStore) -> None:
    service = CatalogService(store)
    series = await service.add_series(SeriesCreate(title="Andor"))

    updated = await service.set_season_watch_status(series.id, 3, WatchStatus.WATCHED)

    assert [(s.season_number, s.watch_status) for s in updated.seasons] == [
        (1, WatchStatus.UNWATCHED),
        (3, WatchStatus.WATCHED),
    ]
    assert updated.overall_watch_status is WatchStatus.UNWATCHED


@pytest.mark.anyio("asyncio")
async def test_marking_series_watched_clears_new_season_flag(store: CatalogStore) -> None:
    service = CatalogService(store)
    series = await service.add_series(
        SeriesCreate(title="Andor", seasons=[Season(season_number=1), Season(season_number=2)])
    )
    await store.save_series(series.evolve(has_new_seasons=True))

    updated = await service.set_series_watch_status(series.id, WatchStatus.WATCHED)

    assert updated.overall_watch_status is WatchStatus.WATCHED
    assert updated.has_new_seasons is False
    assert all(season.watch_status is WatchStatus.WATCHED for season in updated.seasons)


@pytest.mark.anyio("asyncio")
async def test_add_and_remove_seasons(store: CatalogStore) -> None:
    service = CatalogService(store)
    series = await service.add_series(SeriesCreate(title="Andor"))

    grown = await service.add_season(series.id)
    assert [season.season_number for season in grown.seasons] == [1, 2]

    shrunk = await service.remove_last_season(series.id)
    assert [season.season_number for season in shrunk.seasons] == [1]

    with pytest.raises(InvalidSeasonOperation):
        await service.remove_last_season(series.id)


@pytest.mark.anyio("asyncio")
async def test_update_series_rejects_empty_seasons(store: CatalogStore) -> None:
    service = CatalogService(store)
    series = await service.add_series(SeriesCreate(title="Andor"))

    with pytest.raises(InvalidSeasonOperation):
        await service.update_series(series.id, SeriesCreate(title="Andor", seasons=[]))

    renamed = await service.update_series(
        series.id,
        SeriesCreate(title="Andor (2022)", link="https://www.themoviedb.org/tv/83867", priority=2),
    )
    assert renamed.title == "Andor (2022)"
    assert renamed.external_id == 83867
    assert renamed.priority == 2


@pytest.mark.anyio("asyncio")
async def test_unknown_ids_raise_not_found(store: CatalogStore) -> None:
    service = CatalogService(store)

    with pytest.raises(NotFound):
        await service.set_series_priority("missing", 3)
    with pytest.raises(NotFound):
        await service.delete_series("missing")
    with pytest.raises(NotFound):
        await service.set_movie_priority("missing", 1)


@pytest.mark.anyio("asyncio")
async def test_movie_lifecycle(store: CatalogStore) -> None:
    service = CatalogService(store)

    movie = await service.add_movie(MovieCreate(title="Heat", length=170, addedBy="Ana"))
    assert movie.added_by == "Ana"

    watched = await service.set_movie_watch_status(movie.id, WatchStatus.WATCHED)
    assert watched.watch_status is WatchStatus.WATCHED
    assert await store.unwatched_movies() == []

    boosted = await service.set_movie_priority(movie.id, 4)
    assert (await store.get_movie(movie.id)).priority == boosted.priority == 4

    await service.delete_movie(movie.id)
    assert await store.movie_exists(movie.id) is False


@pytest.mark.anyio("asyncio")
async def test_duplicate_season_numbers_are_rejected(store: CatalogStore) -> None:
    service = CatalogService(store)
    repeated = [Season(season_number=1), Season(season_number=1)]

    with pytest.raises(InvalidSeasonOperation, match="Duplicate season numbers: 1"):
        await service.add_series(SeriesCreate(title="Andor", seasons=repeated))
    assert await store.all_series() == []

    series = await service.add_series(SeriesCreate(title="Andor"))
    with pytest.raises(InvalidSeasonOperation):
        await service.update_series(series.id, SeriesCreate(title="Andor", seasons=repeated))
    assert await store.get_series(series.id) == series


@pytest.mark.anyio("asyncio")
async def test_delete_checks_existence_first(store: CatalogStore) -> None:
    service = CatalogService(store)
    series = await service.add_series(SeriesCreate(title="Andor"))

    await service.delete_series(series.id)

    assert await store.series_exists(series.id) is False
    with pytest.raises(NotFound, match="Series not found"):
        await service.delete_series(series.id)


@pytest.mark.anyio("asyncio")
async def test_unknown_ids_do_not_leave_locks_behind(store: CatalogStore) -> None:
    service = CatalogService(store)
    series = await service.add_series(SeriesCreate(title="Andor"))
    await service.add_season(series.id)

    with pytest.raises(NotFound):
        await service.set_series_priority("missing", 1)

    assert "missing" not in store._series_locks
    assert series.id in store._series_locks

    await service.delete_series(series.id)
    assert series.id not in store._series_locks


async def _seed_catalog(store: CatalogStore) -> dict[str, Series | Movie]:
    items: dict[str, Series | Movie] = {
        "heat": Movie(
            title="Heat",
            link="https://www.themoviedb.org/movie/949-heat",
            genres=("Crime",),
            length=170,
            added_by="Ana",
            date_added=datetime(2024, 1, 1),
        ),
        "ran": Movie(
            title="Ran",
            genres=("Drama",),
            length=162,
            watch_status=WatchStatus.WATCHED,
            added_by="Ben",
            date_added=datetime(2024, 2, 1),
        ),
        "dark": Series(
            title="Dark",
            external_id=70523,
            genres=("Drama", "Mystery"),
            seasons=[
                Season(season_number=1, watch_status=WatchStatus.WATCHED),
                Season(season_number=2),
            ],
            has_new_seasons=True,
            series_status=SeriesStatus.COMPLETE,
            priority=2,
            added_by="ana",
            date_added=datetime(2024, 3, 1),
        ),
        "andor": Series(
            title="Andor",
            comment="crime heist in space",
            seasons=[Season(season_number=1)],
            series_status=SeriesStatus.ONGOING,
            added_by="Ben",
            date_added=datetime(2023, 12, 1),
        ),
    }
    for item in items.values():
        if isinstance(item, Movie):
            await store.save_movie(item)
        else:
            await store.save_series(item)
    return items


def _titles(entries: list[CatalogEntry]) -> list[str]:
    return [entry.item.title for entry in entries]


@pytest.mark.anyio("asyncio")
async def test_catalog_default_order(store: CatalogStore) -> None:
    await _seed_catalog(store)
    service = CatalogService(store)

    entries = await service.get_catalog()

    # Unwatched first, then higher priority, then oldest first; watched last.
    assert _titles(entries) == ["Dark", "Andor", "Heat", "Ran"]


@pytest.mark.anyio("asyncio")
async def test_catalog_filters(store: CatalogStore) -> None:
    await _seed_catalog(store)
    service = CatalogService(store)

    assert _titles(await service.get_catalog(content_type=ContentType.MOVIE)) == ["Heat", "Ran"]
    assert _titles(await service.get_catalog(genre="drama")) == ["Dark", "Ran"]
    assert _titles(await service.get_catalog(watch_status=WatchStatus.WATCHED)) == ["Ran"]
    assert _titles(await service.get_catalog(added_by="ANA")) == ["Dark", "Heat"]
    assert _titles(await service.get_catalog(has_new_seasons=True)) == ["Dark"]
    assert _titles(await service.get_catalog(has_new_seasons=False)) == ["Andor"]
    assert _titles(await service.get_catalog(series_status=SeriesStatus.ONGOING)) == ["Andor"]
    assert (
        await service.get_catalog(content_type=ContentType.MOVIE, has_new_seasons=True)
        == []
    )


@pytest.mark.anyio("asyncio")
async def test_catalog_sorting(store: CatalogStore) -> None:
    await _seed_catalog(store)
    service = CatalogService(store)

    assert _titles(await service.get_catalog(sort_by="title")) == ["Andor", "Dark", "Heat", "Ran"]
    assert _titles(await service.get_catalog(sort_by="dateAdded")) == ["Dark", "Heat", "Andor", "Ran"]
    # Series have no length; ties keep the stored order.
    assert _titles(await service.get_catalog(sort_by="length")) == ["Heat", "Andor", "Dark", "Ran"]
    # Unknown fields fall back to newest first.
    assert _titles(await service.get_catalog(sort_by="rating")) == ["Dark", "Heat", "Andor", "Ran"]


@pytest.mark.anyio("asyncio")
async def test_search_matches_title_comment_and_genre(store: CatalogStore) -> None:
    await _seed_catalog(store)
    service = CatalogService(store)

    assert _titles(await service.search_catalog("CRIME")) == ["Andor", "Heat"]
    assert _titles(await service.search_catalog("myst")) == ["Dark"]
    assert await service.search_catalog("nothing like this") == []


@pytest.mark.anyio("asyncio")
async def test_catalog_payload_carries_tmdb_links_and_season_state(store: CatalogStore) -> None:
    items = await _seed_catalog(store)
    entries = {entry.item.id: entry.to_payload() for entry in await CatalogService(store).get_catalog()}

    heat = entries[items["heat"].id]
    assert heat["contentType"] == "MOVIE"
    assert heat["tmdbId"] == 949
    assert heat["link"] == "https://www.themoviedb.org/movie/949"
    assert heat["length"] == 170

    dark = entries[items["dark"].id]
    assert dark["link"] == "https://www.themoviedb.org/tv/70523"
    assert dark["hasNewSeasons"] is True
    assert dark["seriesStatus"] == "COMPLETE"
    assert dark["watchStatus"] == "UNWATCHED"
    assert dark["seasons"] == [
        {"seasonNumber": 1, "watchStatus": "WATCHED"},
        {"seasonNumber": 2, "watchStatus": "UNWATCHED"},
    ]

    andor = entries[items["andor"].id]
    assert andor["tmdbId"] is None
    assert andor["link"] is None


def test_sort_catalog_keeps_watched_items_last() -> None:
    watched = CatalogEntry(
        ContentType.MOVIE, Movie(title="A", watch_status=WatchStatus.WATCHED, priority=9)
    )
    unwatched = CatalogEntry(ContentType.MOVIE, Movie(title="B"))

    assert sort_catalog([watched, unwatched]) == [unwatched, watched]
