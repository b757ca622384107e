from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime

import structlog
from backend_common.logging import log_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..domain import PerformedSet
from ..exceptions import FatalReadFailure
from ..metrics import VOLUME_EVENTS_FAILED_TOTAL, VOLUME_RECOMPUTES_TOTAL, VOLUME_WEEKS_CLEARED_TOTAL
from ..repositories.aggregates_repository import AggregatesRepository
from ..repositories.sets_repository import SetsRepository
from ..week_calendar import iso_week_start, week_bounds
from .event_publisher import EventPublisher, NullEventPublisher, VolumeThresholdReached
from .muscle_mapper import MuscleMapper, ReferenceCache
from .upsert_writer import VOLUME_TARGET, UpsertWriter, WriteReport
from .weekly_aggregator import WeeklyAggregates, WeeklyAggregator

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


@dataclass
class AggregationResult:
    user_id: str
    weeks_written: list[str]
    weeks_cleared: list[str]
    sets_read: int = 0
    sets_skipped: int = 0
    failed_batches: int = 0


class AggregationService:
    """Entry points that recompute a user's weekly aggregates.

    Each run reads raw sets and reference data up front; a read failure
    aborts the run before anything is written. Weeks are then replaced one
    at a time, so an interrupted run leaves older weeks stale but never
    half-written.
    """

    def __init__(
        self,
        db: AsyncSession,
        mapper: MuscleMapper | None = None,
        writer: UpsertWriter | None = None,
        publisher: EventPublisher | None = None,
        volume_threshold: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        settings = get_settings()
        self.db = db
        self.mapper = mapper or MuscleMapper(db)
        self.writer = writer or UpsertWriter(db)
        self.publisher = publisher or NullEventPublisher()
        self.volume_threshold = volume_threshold if volume_threshold is not None else settings.VOLUME_THRESHOLD_KG
        self.clock = clock

    async def _read_sets(
        self, user_id: str, start: datetime | None = None, end: datetime | None = None
    ) -> list[PerformedSet]:
        try:
            return await SetsRepository.list_sets(self.db, user_id, start, end)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("raw_sets_read_failed", user_id=user_id, error=str(exc))
            raise FatalReadFailure(user_id, "raw sets", exc) from exc

    async def _read_reference(self, user_id: str, sets: list[PerformedSet]) -> ReferenceCache:
        try:
            return await self.mapper.build_reference(sets)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("reference_read_failed", user_id=user_id, error=str(exc))
            raise FatalReadFailure(user_id, "reference data", exc) from exc

    async def _aggregate(self, user_id: str, sets: list[PerformedSet]) -> WeeklyAggregates:
        reference = await self._read_reference(user_id, sets)
        return WeeklyAggregator(reference).aggregate(sets)

    def _publish_threshold(self, user_id: str, week_start: str, total_volume: float) -> None:
        if self.volume_threshold is None or total_volume < self.volume_threshold:
            return
        event = VolumeThresholdReached(
            user_id=user_id,
            week_start=week_start,
            total_volume=total_volume,
            threshold=self.volume_threshold,
        )
        try:
            self.publisher.publish(event)
        except Exception as exc:
            VOLUME_EVENTS_FAILED_TOTAL.inc()
            logger.warning("volume_threshold_event_failed", user_id=user_id, week_start=week_start, error=str(exc))

    async def _persist_week(
        self, user_id: str, week_start: str, aggregates: WeeklyAggregates, result: AggregationResult
    ) -> None:
        rows = aggregates.rows_for_week(user_id, week_start, self.clock())
        if rows is None:
            cleared = await self.writer.clear_week(user_id, week_start)
            result.failed_batches += cleared.failed_batches
            if cleared.ok:
                VOLUME_WEEKS_CLEARED_TOTAL.inc()
                result.weeks_cleared.append(week_start)
            return

        report: WriteReport = await self.writer.write_week(user_id, week_start, rows)
        result.failed_batches += report.failed_batches
        if report.rows_written:
            result.weeks_written.append(week_start)
        if report.rows_written and VOLUME_TARGET.table_name not in report.failed_tables:
            self._publish_threshold(user_id, week_start, rows.volume["total_volume"])

    async def recompute_week(self, user_id: str, moment: datetime | date | str) -> AggregationResult:
        week_start = iso_week_start(moment)
        with log_context(user_id=user_id, week_start=week_start):
            VOLUME_RECOMPUTES_TOTAL.labels(mode="week").inc()
            start, end = week_bounds(week_start)
            sets = await self._read_sets(user_id, start, end)
            aggregates = await self._aggregate(user_id, sets)

            result = AggregationResult(
                user_id=user_id,
                weeks_written=[],
                weeks_cleared=[],
                sets_read=aggregates.sets_read,
                sets_skipped=aggregates.sets_skipped,
            )
            await self._persist_week(user_id, week_start, aggregates, result)
            logger.info(
                "week_recomputed",
                sets_read=result.sets_read,
                sets_skipped=result.sets_skipped,
                cleared=bool(result.weeks_cleared),
                failed_batches=result.failed_batches,
            )
            return result

    async def recompute_full_history(self, user_id: str) -> AggregationResult:
        with log_context(user_id=user_id):
            VOLUME_RECOMPUTES_TOTAL.labels(mode="full_history").inc()
            sets = await self._read_sets(user_id)
            aggregates = await self._aggregate(user_id, sets)
            try:
                stored_weeks = await AggregatesRepository.list_stored_weeks(self.db, user_id)
            except SQLAlchemyError as exc:
                await self.db.rollback()
                raise FatalReadFailure(user_id, "stored weeks", exc) from exc

            result = AggregationResult(
                user_id=user_id,
                weeks_written=[],
                weeks_cleared=[],
                sets_read=aggregates.sets_read,
                sets_skipped=aggregates.sets_skipped,
            )
            for week_start in sorted(set(aggregates.week_starts()) | stored_weeks):
                await self._persist_week(user_id, week_start, aggregates, result)

            logger.info(
                "full_history_recomputed",
                weeks_written=len(result.weeks_written),
                weeks_cleared=len(result.weeks_cleared),
                sets_read=result.sets_read,
                sets_skipped=result.sets_skipped,
                failed_batches=result.failed_batches,
            )
            return result

    async def on_set_mutated(
        self,
        user_id: str,
        performed_at: datetime | date | str,
        previous_performed_at: datetime | date | str | None = None,
    ) -> AggregationResult:
        """Recompute the week a created, edited or deleted set belongs to.

        When an edit moved the set into another week, the week it left is
        recomputed as well.
        """
        result = await self.recompute_week(user_id, performed_at)
        if previous_performed_at is None:
            return result
        if iso_week_start(previous_performed_at) == iso_week_start(performed_at):
            return result

        previous = await self.recompute_week(user_id, previous_performed_at)
        result.weeks_written.extend(previous.weeks_written)
        result.weeks_cleared.extend(previous.weeks_cleared)
        result.sets_read += previous.sets_read
        result.sets_skipped += previous.sets_skipped
        result.failed_batches += previous.failed_batches
        return result

    async def clear_user_stats(self, user_id: str) -> int:
        report = await self.writer.clear_user(user_id)
        return report.rows_deleted

    async def clear_and_recompute(self, user_id: str) -> AggregationResult:
        VOLUME_RECOMPUTES_TOTAL.labels(mode="rebuild").inc()
        await self.clear_user_stats(user_id)
        return await self.recompute_full_history(user_id)
