"""Pydantic models describing catalog entities and API payloads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from .utils import new_entity_id, utcnow


class WatchStatus(str, Enum):
    WATCHED = "WATCHED"
    UNWATCHED = "UNWATCHED"


class SeriesStatus(str, Enum):
    COMPLETE = "COMPLETE"
    ONGOING = "ONGOING"


class ContentType(str, Enum):
    MOVIE = "MOVIE"
    SERIES = "SERIES"


def derive_watch_status(seasons: Iterable["Season"]) -> WatchStatus:
    """A series counts as watched only when every season is watched."""

    seasons = list(seasons)
    if not seasons:
        return WatchStatus.UNWATCHED
    if all(season.watch_status is WatchStatus.WATCHED for season in seasons):
        return WatchStatus.WATCHED
    return WatchStatus.UNWATCHED


class Season(BaseModel):
    """A single season and whether it has been watched."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    season_number: int = Field(
        ge=1, validation_alias=AliasChoices("season_number", "seasonNumber")
    )
    watch_status: WatchStatus = Field(
        default=WatchStatus.UNWATCHED,
        validation_alias=AliasChoices("watch_status", "watchStatus"),
    )


class Series(BaseModel):
    """Immutable snapshot of a tracked series.

    The overall watch status is always derived from the seasons and the
    new-season flag is cleared whenever the series is fully watched, so every
    constructed snapshot satisfies those invariants. Use :meth:`evolve` to
    produce a modified copy; it re-runs validation, unlike ``model_copy``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_entity_id)
    title: str
    external_id: int | None = None
    external_link: str | None = None
    comment: str | None = None
    genres: tuple[str, ...] = ()
    seasons: tuple[Season, ...]
    overall_watch_status: WatchStatus = WatchStatus.UNWATCHED
    total_available_seasons: int | None = None
    has_new_seasons: bool = False
    series_status: SeriesStatus | None = None
    last_reconciled_at: datetime | None = None
    priority: int = 0
    added_by: str | None = None
    date_added: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _derive_watch_state(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("seasons") is None:
            return data

        seasons = sorted(
            (Season.model_validate(season) for season in data["seasons"]),
            key=lambda season: season.season_number,
        )
        if not seasons:
            raise ValueError("A series must contain at least one season")
        numbers = [season.season_number for season in seasons]
        if len(set(numbers)) != len(numbers):
            raise ValueError("Season numbers must be unique within a series")

        overall = derive_watch_status(seasons)
        data = {**data, "seasons": tuple(seasons), "overall_watch_status": overall}
        if overall is WatchStatus.WATCHED:
            data["has_new_seasons"] = False
        return data

    @property
    def max_season_number(self) -> int:
        return max((season.season_number for season in self.seasons), default=0)

    def season_map(self) -> dict[int, Season]:
        return {season.season_number: season for season in self.seasons}

    def evolve(self, **changes: Any) -> "Series":
        """Return a validated copy with ``changes`` applied."""

        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


class Movie(BaseModel):
    """Immutable snapshot of a catalog movie."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_entity_id)
    title: str
    link: str | None = None
    comment: str | None = None
    genres: tuple[str, ...] = ()
    length: int | None = None
    watch_status: WatchStatus = WatchStatus.UNWATCHED
    priority: int = 0
    added_by: str | None = None
    date_added: datetime = Field(default_factory=utcnow)


class Notification(BaseModel):
    """Alert raised when a reconciliation finds new seasons."""

    id: str = Field(default_factory=new_entity_id)
    series_id: str
    series_title: str
    message: str
    new_seasons_count: int
    created_at: datetime = Field(default_factory=utcnow)
    dismissed: bool = False


@dataclass(slots=True)
class BulkReconciliationResult:
    """Counters collected over one bulk reconciliation pass."""

    total_processed: int = 0
    success_count: int = 0
    failure_count: int = 0
    updated_count: int = 0

    def to_payload(self) -> dict[str, int]:
        return {
            "totalProcessed": self.total_processed,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "updatedCount": self.updated_count,
        }


class SeriesCreate(BaseModel):
    """Payload accepted when adding or replacing a series."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    link: str | None = None
    external_id: int | None = Field(
        default=None,
        validation_alias=AliasChoices("external_id", "externalId", "tmdbId"),
    )
    comment: str | None = None
    genres: list[str] = Field(default_factory=list)
    seasons: list[Season] | None = None
    priority: int | None = None
    added_by: str | None = Field(
        default=None, validation_alias=AliasChoices("added_by", "addedBy")
    )


class MovieCreate(BaseModel):
    """Payload accepted when adding a movie."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    link: str | None = None
    comment: str | None = None
    genres: list[str] = Field(default_factory=list)
    length: int | None = Field(default=None, ge=0)
    priority: int | None = None
    added_by: str | None = Field(
        default=None, validation_alias=AliasChoices("added_by", "addedBy")
    )


class WatchStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    watch_status: WatchStatus = Field(
        validation_alias=AliasChoices("watch_status", "watchStatus")
    )


class PriorityUpdate(BaseModel):
    priority: int
