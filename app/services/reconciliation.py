"""Season reconciliation against the external metadata source.

A reconciliation compares the seasons we know about for a series with the
season count TMDB currently reports, drops seasons that no longer exist,
appends missing ones as unwatched and flags the series when the count grew.
The season diff itself is the pure :func:`reconcile_seasons`; the classes in
this module add lookup, persistence, notification and scheduling around it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Protocol

from ..exceptions import ExternalProviderError, MissingExternalReference
from ..models import (
    BulkReconciliationResult,
    Season,
    Series,
    SeriesStatus,
    WatchStatus,
)
from ..utils import parse_tmdb_tv_id, utcnow
from .catalog_store import CatalogStore
from .tmdb import SeriesSeasonInfo

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]

_STATUS_VOCABULARY: dict[str, SeriesStatus] = {
    "ended": SeriesStatus.COMPLETE,
    "canceled": SeriesStatus.COMPLETE,
    "cancelled": SeriesStatus.COMPLETE,
    "returning series": SeriesStatus.ONGOING,
    "in production": SeriesStatus.ONGOING,
    "planned": SeriesStatus.ONGOING,
}

# Fields compared to decide whether a reconciliation changed a series.
_TRACKED_FIELDS = (
    "seasons",
    "has_new_seasons",
    "total_available_seasons",
    "series_status",
    "overall_watch_status",
    "external_id",
)


class SeasonInfoProvider(Protocol):
    async def get_series_season_info(self, tmdb_id: int) -> SeriesSeasonInfo: ...


class NewSeasonNotifier(Protocol):
    async def notify_new_seasons(
        self, series_id: str, series_title: str, new_seasons_count: int
    ) -> object: ...


def map_series_status(status: str | None) -> SeriesStatus | None:
    """Map TMDB lifecycle text onto our two states; unknown text maps to ``None``."""

    if not status:
        return None
    return _STATUS_VOCABULARY.get(status.strip().lower())


def normalize_season_count(available_seasons: int | None) -> int:
    if available_seasons is None or available_seasons < 1:
        return 1
    return available_seasons


def resolve_external_id(series: Series) -> int:
    """Return the stored TMDB id, falling back to the id embedded in the link."""

    if series.external_id is not None:
        return series.external_id
    parsed = parse_tmdb_tv_id(series.external_link)
    if parsed is None:
        raise MissingExternalReference(series.id, series.external_link)
    return parsed


def reconcile_seasons(
    series: Series,
    info: SeriesSeasonInfo,
    *,
    external_id: int,
    now: datetime,
) -> Series:
    """Return ``series`` with its seasons and flags matched to ``info``.

    Existing seasons keep their watch status. Seasons numbered above the
    reported count are removed and every missing number up to it is added as
    unwatched. ``has_new_seasons`` is overwritten on every call: it is true
    only when the reported count exceeds the highest season we held before.
    """

    available = normalize_season_count(info.available_seasons)
    previous_max = series.max_season_number

    seasons = {
        number: season
        for number, season in series.season_map().items()
        if number <= available
    }
    for number in range(1, available + 1):
        if number not in seasons:
            seasons[number] = Season(season_number=number)

    return series.evolve(
        seasons=[seasons[number] for number in sorted(seasons)],
        has_new_seasons=available > previous_max,
        total_available_seasons=available,
        series_status=map_series_status(info.status),
        last_reconciled_at=now,
        external_id=(
            series.external_id if series.external_id is not None else external_id
        ),
    )


def series_changed(before: Series, after: Series) -> bool:
    """True when a reconciliation altered more than the check timestamp."""

    return any(
        getattr(before, field) != getattr(after, field) for field in _TRACKED_FIELDS
    )


class SeasonReconciler:
    """Reconciles one series with TMDB and persists the result."""

    def __init__(
        self,
        store: CatalogStore,
        provider: SeasonInfoProvider,
        notifier: NewSeasonNotifier | None = None,
        *,
        notify_unstarted_series: bool = False,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._provider = provider
        self._notifier = notifier
        self._notify_unstarted_series = notify_unstarted_series
        self._clock = clock

    async def reconcile_by_id(self, series_id: str) -> Series:
        series = await self._store.get_series(series_id)
        return await self.reconcile(series)

    async def reconcile(self, series: Series) -> Series:
        """Reconcile ``series`` and return the stored result.

        Raises :class:`MissingExternalReference` or :class:`ExternalProviderError`
        without writing anything when the lookup cannot be completed.
        """

        async with self._store.series_lock(series.id):
            current = await self._store.get_series(series.id)
            external_id = resolve_external_id(current)
            logger.info(
                "Reconciling seasons for series %s (%s) with TMDB id %s",
                current.id,
                current.title,
                external_id,
            )
            try:
                info = await self._provider.get_series_season_info(external_id)
            except ExternalProviderError as exc:
                if exc.series_id is None:
                    exc.series_id = current.id
                raise

            updated = reconcile_seasons(
                current, info, external_id=external_id, now=self._clock()
            )
            await self._store.save_series(updated)

        previous_max = current.max_season_number
        logger.info(
            "Season refresh completed for series %s: %s -> %s seasons, new seasons: %s",
            updated.id,
            previous_max,
            updated.total_available_seasons,
            updated.has_new_seasons,
        )
        if (
            updated.has_new_seasons
            and self._notifier is not None
            and self._should_notify(current)
        ):
            await self._notifier.notify_new_seasons(
                updated.id,
                updated.title,
                (updated.total_available_seasons or 0) - previous_max,
            )
        return updated

    def _should_notify(self, before: Series) -> bool:
        # Only series the user has started watching get an alert by default.
        if self._notify_unstarted_series:
            return True
        return any(
            season.watch_status is WatchStatus.WATCHED for season in before.seasons
        )


class BulkReconciliationRunner:
    """Reconciles every stored series, counting failures instead of raising."""

    def __init__(
        self,
        store: CatalogStore,
        reconciler: SeasonReconciler,
        *,
        concurrency: int = 1,
    ):
        self._store = store
        self._reconciler = reconciler
        self._concurrency = max(1, concurrency)
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    async def run_all(self) -> BulkReconciliationResult:
        """Reconcile all series; overlapping calls wait for the active pass."""

        async with self._run_lock:
            result = BulkReconciliationResult()
            try:
                series_list = await self._store.all_series()
            except Exception:
                logger.exception("Could not load series for reconciliation")
                return result

            logger.info("Starting season reconciliation for %s series", len(series_list))
            semaphore = asyncio.Semaphore(self._concurrency)

            async def _process(series: Series) -> None:
                async with semaphore:
                    await self._reconcile_one(series, result)

            await asyncio.gather(*(_process(series) for series in series_list))
            logger.info(
                "Season reconciliation finished. Total: %s, Success: %s, Failed: %s, Updated: %s",
                result.total_processed,
                result.success_count,
                result.failure_count,
                result.updated_count,
            )
            return result

    async def _reconcile_one(
        self, series: Series, result: BulkReconciliationResult
    ) -> None:
        try:
            updated = await self._reconciler.reconcile(series)
        except MissingExternalReference as exc:
            result.failure_count += 1
            logger.info("Skipping series %s: %s", series.id, exc)
        except ExternalProviderError as exc:
            result.failure_count += 1
            logger.warning("Season refresh failed for series %s: %s", series.id, exc)
        except Exception:
            result.failure_count += 1
            logger.exception("Unexpected error reconciling series %s", series.id)
        else:
            result.success_count += 1
            if series_changed(series, updated):
                result.updated_count += 1
        finally:
            result.total_processed += 1


class ScheduleState(Protocol):
    async def load_next_run(self, name: str) -> datetime | None: ...

    async def save(
        self,
        name: str,
        *,
        next_run_at: datetime,
        last_run_at: datetime | None = None,
    ) -> None: ...


class ReconciliationScheduler:
    """Fires a bulk reconciliation on a fixed interval.

    The clock and sleep function are injectable so the due check in
    :meth:`tick` can be driven synchronously from tests. With a ``state``
    store the next due time survives restarts: :meth:`restore` picks it up,
    and a run that was due while the process was down fires on the first
    tick.
    """

    job_name = "season-reconciliation"

    def __init__(
        self,
        runner: BulkReconciliationRunner,
        reconciler: SeasonReconciler,
        *,
        interval_seconds: int,
        clock: Clock = utcnow,
        sleep: Sleeper = asyncio.sleep,
        first_run_at: datetime | None = None,
        state: ScheduleState | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._runner = runner
        self._reconciler = reconciler
        self._interval = timedelta(seconds=interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._state = state
        self._next_run_at = first_run_at or (clock() + self._interval)
        self._task: asyncio.Task[None] | None = None

    @property
    def next_run_at(self) -> datetime:
        return self._next_run_at

    async def restore(self) -> datetime:
        """Load the persisted due time, or persist the current one if there is none."""

        if self._state is None:
            return self._next_run_at
        persisted = await self._state.load_next_run(self.job_name)
        if persisted is None:
            await self._state.save(self.job_name, next_run_at=self._next_run_at)
        else:
            # A shortened interval must not leave the next run further out.
            self._next_run_at = min(persisted, self._clock() + self._interval)
        return self._next_run_at

    async def start(self) -> None:
        """Launch the background timer loop."""

        if self._task is None:
            await self.restore()
            logger.info("Season check scheduled; next run at %s", self._next_run_at)
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the background timer loop."""

        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def tick(self) -> BulkReconciliationResult | None:
        """Run the scheduled pass if it is due and advance the next run time."""

        now = self._clock()
        if now < self._next_run_at:
            return None
        next_run = self._next_run_at + self._interval
        while next_run <= now:
            next_run += self._interval
        self._next_run_at = next_run
        if self._state is not None:
            await self._state.save(
                self.job_name, next_run_at=next_run, last_run_at=now
            )
        return await self.on_schedule_fire()

    async def on_schedule_fire(self) -> BulkReconciliationResult:
        logger.info("Starting scheduled series season refresh")
        return await self._runner.run_all()

    async def on_manual_trigger(
        self, series_id: str | None = None
    ) -> BulkReconciliationResult | Series:
        """Reconcile one series (errors propagate) or run a full pass."""

        if series_id is None:
            if self._runner.is_running:
                logger.info(
                    "A season refresh is already running; the manual pass will follow it"
                )
            else:
                logger.info("Starting manual series season refresh")
            return await self._runner.run_all()
        return await self._reconciler.reconcile_by_id(series_id)

    async def _loop(self) -> None:
        while True:
            delay = (self._next_run_at - self._clock()).total_seconds()
            await self._sleep(max(delay, 0.0))
            try:
                await self.tick()
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Scheduled season refresh failed: %s", exc)
