"""Weighted random "what to watch next" selection."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Sequence

from ..exceptions import NoUnwatchedContent
from ..models import ContentType, Movie, Series, WatchStatus
from ..utils import utcnow
from .catalog_store import CatalogStore

logger = logging.getLogger(__name__)

NEW_SEASONS_BOOST = 10.0


@dataclass(frozen=True, slots=True)
class Candidate:
    """An unwatched movie or series eligible for recommendation."""

    kind: ContentType
    item: Movie | Series
    date_added: datetime
    priority: int
    has_new_seasons: bool = False

    @classmethod
    def from_movie(cls, movie: Movie) -> "Candidate":
        return cls(
            kind=ContentType.MOVIE,
            item=movie,
            date_added=movie.date_added,
            priority=movie.priority,
        )

    @classmethod
    def from_series(cls, series: Series) -> "Candidate":
        return cls(
            kind=ContentType.SERIES,
            item=series,
            date_added=series.date_added,
            priority=series.priority,
            has_new_seasons=series.has_new_seasons,
        )

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def title(self) -> str:
        return self.item.title

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.item.id,
            "contentType": self.kind.value,
            "title": self.item.title,
            "comment": self.item.comment,
            "priority": self.priority,
            "addedBy": self.item.added_by,
        }
        if isinstance(self.item, Movie):
            payload["link"] = self.item.link
            payload["length"] = self.item.length
        else:
            payload["link"] = self.item.external_link
            payload["hasNewSeasons"] = self.has_new_seasons
            payload["totalAvailableSeasons"] = self.item.total_available_seasons
        return payload


def days_since(date_added: datetime, now: datetime) -> int:
    """Whole days between ``date_added`` and ``now``; future dates count as zero."""

    return max(0, (now - date_added).days)


def compute_weight(days_old: int, priority: int, has_new_seasons: bool) -> float:
    """Weight grows with backlog age and is boosted by priority and new seasons."""

    # +2 keeps the logarithm positive on the day an item is added.
    weight = math.log(days_old + 2) + 1
    if priority > 0:
        weight *= 1 + priority
    if has_new_seasons:
        weight *= NEW_SEASONS_BOOST
    return weight


class WeightedRecommendationSelector:
    """Draws one candidate with probability proportional to its weight."""

    def __init__(
        self,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._rng = rng or random.Random()
        self._clock = clock

    def weight_of(self, candidate: Candidate, *, now: datetime | None = None) -> float:
        now = now or self._clock()
        return compute_weight(
            days_since(candidate.date_added, now),
            candidate.priority,
            candidate.has_new_seasons,
        )

    def select_one(self, candidates: Sequence[Candidate]) -> Candidate:
        if not candidates:
            raise NoUnwatchedContent()

        now = self._clock()
        weights = [self.weight_of(candidate, now=now) for candidate in candidates]
        total_weight = sum(weights)
        target = self._rng.random() * total_weight

        cumulative = 0.0
        for candidate, weight in zip(candidates, weights):
            cumulative += weight
            if cumulative >= target:
                return candidate
        # Floating point rounding can leave the target a hair above the sum.
        return candidates[-1]


class RecommendationService:
    """Builds the candidate pool from the catalog and picks recommendations."""

    def __init__(
        self,
        store: CatalogStore,
        selector: WeightedRecommendationSelector,
        *,
        max_count: int = 10,
    ):
        self._store = store
        self._selector = selector
        self._max_count = max_count

    async def gather_candidates(self, added_by: str | None = None) -> list[Candidate]:
        """Return unwatched movies followed by unwatched series."""

        movies = await self._store.unwatched_movies()
        series_list = await self._store.unwatched_series()
        candidates = [Candidate.from_movie(movie) for movie in movies]
        candidates.extend(
            Candidate.from_series(series)
            for series in series_list
            if series.overall_watch_status is WatchStatus.UNWATCHED
        )
        if added_by:
            wanted = added_by.strip().casefold()
            candidates = [
                candidate
                for candidate in candidates
                if (candidate.item.added_by or "").strip().casefold() == wanted
            ]
        return candidates

    async def recommend_one(self, added_by: str | None = None) -> Candidate:
        candidates = await self.gather_candidates(added_by)
        selected = self._selector.select_one(candidates)
        logger.info(
            "Recommendation selected: %s (weight: %.3f)",
            selected.title,
            self._selector.weight_of(selected),
        )
        return selected

    async def recommend(
        self, count: int = 1, added_by: str | None = None
    ) -> list[Candidate]:
        """Return up to ``count`` distinct picks, drawn without replacement."""

        count = max(1, min(count, self._max_count))
        pool = await self.gather_candidates(added_by)
        if not pool:
            raise NoUnwatchedContent()

        picks: list[Candidate] = []
        while pool and len(picks) < count:
            selected = self._selector.select_one(pool)
            picks.append(selected)
            pool = [candidate for candidate in pool if candidate is not selected]
        logger.info(
            "Recommended %s item(s): %s",
            len(picks),
            ", ".join(candidate.title for candidate in picks),
        )
        return picks
