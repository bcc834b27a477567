"""Weighted recommendation selection tests."""

from __future__ import annotations

import math
import random
from datetime import datetime, timedelta

import pytest

from app.exceptions import NoUnwatchedContent
from app.models import ContentType, Movie, Season, Series, WatchStatus
from app.services.catalog_store import CatalogStore
from app.services.recommendation import (
    Candidate,
    RecommendationService,
    WeightedRecommendationSelector,
    compute_weight,
    days_since,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)


class FixedRandom(random.Random):
    """Random source that always returns the same draw."""

    def __init__(self, value: float):
        super().__init__()
        self.value = value

    def random(self) -> float:
        return self.value


def movie_candidate(title: str = "Heat", *, days_old: int = 0, priority: int = 0) -> Candidate:
    return Candidate.from_movie(
        Movie(title=title, priority=priority, date_added=NOW - timedelta(days=days_old))
    )


def series_candidate(
    title: str = "Dark", *, days_old: int = 0, priority: int = 0, has_new_seasons: bool = False
) -> Candidate:
    return Candidate.from_series(
        Series(
            title=title,
            priority=priority,
            has_new_seasons=has_new_seasons,
            seasons=[Season(season_number=1)],
            date_added=NOW - timedelta(days=days_old),
        )
    )


def test_fresh_item_weight_exceeds_one() -> None:
    weight = compute_weight(0, 0, False)

    assert weight > 1
    assert weight == pytest.approx(math.log(2) + 1)


def test_weight_grows_with_age() -> None:
    assert compute_weight(30, 0, False) > compute_weight(1, 0, False)


@pytest.mark.parametrize("priority", [0, -1, -10])
def test_non_positive_priority_leaves_weight_unchanged(priority: int) -> None:
    assert compute_weight(5, priority, False) == compute_weight(5, 0, False)


def test_priority_boost_is_multiplicative_and_monotonic() -> None:
    base = compute_weight(5, 0, False)

    assert compute_weight(5, 1, False) == pytest.approx(base * 2)
    assert compute_weight(5, 3, False) == pytest.approx(base * 4)
    assert compute_weight(5, 6, False) > compute_weight(5, 3, False)


def test_new_seasons_multiply_weight_by_ten() -> None:
    assert compute_weight(12, 2, True) == pytest.approx(10 * compute_weight(12, 2, False))


def test_days_since_counts_whole_days_and_clamps_future() -> None:
    assert days_since(NOW - timedelta(days=3, hours=23), NOW) == 3
    assert days_since(NOW + timedelta(days=2), NOW) == 0


def test_select_one_without_candidates_fails() -> None:
    selector = WeightedRecommendationSelector(random.Random(0), clock=lambda: NOW)

    with pytest.raises(NoUnwatchedContent):
        selector.select_one([])


def test_select_one_walks_cumulative_weights_in_order() -> None:
    candidates = [movie_candidate("A"), movie_candidate("B"), movie_candidate("C")]

    first = WeightedRecommendationSelector(FixedRandom(0.0), clock=lambda: NOW)
    middle = WeightedRecommendationSelector(FixedRandom(0.5), clock=lambda: NOW)
    last = WeightedRecommendationSelector(FixedRandom(0.999999), clock=lambda: NOW)

    assert first.select_one(candidates).title == "A"
    assert middle.select_one(candidates).title == "B"
    assert last.select_one(candidates).title == "C"


def test_seeded_selection_is_reproducible() -> None:
    candidates = [
        movie_candidate("A", days_old=3),
        series_candidate("B", priority=2),
        movie_candidate("C", days_old=400),
    ]

    def draws(seed: int) -> list[str]:
        selector = WeightedRecommendationSelector(random.Random(seed), clock=lambda: NOW)
        return [selector.select_one(candidates).title for _ in range(25)]

    assert draws(7) == draws(7)


def test_new_season_series_is_picked_about_ten_times_as_often() -> None:
    movie = movie_candidate("Movie A")
    series = series_candidate("Series B", has_new_seasons=True)
    selector = WeightedRecommendationSelector(random.Random(1234), clock=lambda: NOW)

    assert selector.weight_of(series) == pytest.approx(10 * selector.weight_of(movie))

    trials = 20_000
    series_picks = sum(
        1 for _ in range(trials) if selector.select_one([movie, series]) is series
    )

    assert series_picks / trials == pytest.approx(10 / 11, abs=0.02)


def test_candidate_payload_describes_item() -> None:
    candidate = series_candidate("Dark", has_new_seasons=True)

    payload = candidate.to_payload()

    assert candidate.kind is ContentType.SERIES
    assert payload["contentType"] == "SERIES"
    assert payload["hasNewSeasons"] is True
    assert "length" not in payload


# ---------------------------------------------------------------------------
# Recommendation service against the store
# ---------------------------------------------------------------------------


async def _seed_catalog(store: CatalogStore) -> None:
    await store.save_movie(Movie(title="Unwatched Movie", added_by="Ana", date_added=NOW))
    await store.save_movie(
        Movie(title="Watched Movie", watch_status=WatchStatus.WATCHED, date_added=NOW)
    )
    await store.save_series(
        Series(
            title="Unwatched Series",
            added_by="Ben",
            seasons=[
                Season(season_number=1, watch_status=WatchStatus.WATCHED),
                Season(season_number=2),
            ],
            date_added=NOW,
        )
    )
    await store.save_series(
        Series(
            title="Finished Series",
            seasons=[Season(season_number=1, watch_status=WatchStatus.WATCHED)],
            date_added=NOW,
        )
    )


@pytest.mark.anyio("asyncio")
async def test_candidates_exclude_watched_content(store: CatalogStore) -> None:
    await _seed_catalog(store)
    service = RecommendationService(
        store, WeightedRecommendationSelector(random.Random(3), clock=lambda: NOW)
    )

    candidates = await service.gather_candidates()

    assert [candidate.title for candidate in candidates] == [
        "Unwatched Movie",
        "Unwatched Series",
    ]
    only_ben = await service.gather_candidates(added_by="ben")
    assert [candidate.title for candidate in only_ben] == ["Unwatched Series"]


@pytest.mark.anyio("asyncio")
async def test_recommend_returns_distinct_items(store: CatalogStore) -> None:
    await _seed_catalog(store)
    service = RecommendationService(
        store, WeightedRecommendationSelector(random.Random(3), clock=lambda: NOW)
    )

    picks = await service.recommend(count=5)

    assert sorted(candidate.title for candidate in picks) == [
        "Unwatched Movie",
        "Unwatched Series",
    ]
    single = await service.recommend_one()
    assert single.title in {"Unwatched Movie", "Unwatched Series"}


@pytest.mark.anyio("asyncio")
async def test_recommend_with_nothing_left_fails(store: CatalogStore) -> None:
    await store.save_movie(Movie(title="Seen", watch_status=WatchStatus.WATCHED))
    service = RecommendationService(store, WeightedRecommendationSelector())

    with pytest.raises(NoUnwatchedContent):
        await service.recommend()
    with pytest.raises(NoUnwatchedContent):
        await service.recommend_one(added_by="nobody")
