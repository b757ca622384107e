from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..batching import chunked
from ..config import get_settings
from ..exceptions import BatchWriteFailed
from ..metrics import VOLUME_UPSERT_BATCHES_FAILED_TOTAL
from ..models import WeeklyUserMetric, WeeklyUserMuscleVolume, WeeklyUserVolume
from ..repositories.aggregates_repository import AggregatesRepository
from .weekly_aggregator import WeekRows

logger = structlog.get_logger(__name__)

WEEKLY_TABLES = (WeeklyUserVolume, WeeklyUserMuscleVolume, WeeklyUserMetric)
# Label for failures of the delete statements that span all weekly tables.
WEEKLY_ROWS = "weekly_rows"


@dataclass(frozen=True)
class UpsertTarget:
    model: Any
    key_columns: tuple[str, ...]
    update_columns: tuple[str, ...]

    @property
    def table_name(self) -> str:
        return self.model.__tablename__


VOLUME_TARGET = UpsertTarget(
    WeeklyUserVolume,
    ("user_id", "week_start"),
    ("total_volume", "avg_set_volume", "set_count", "e1rm_avg", "updated_at"),
)
MUSCLE_TARGET = UpsertTarget(
    WeeklyUserMuscleVolume,
    ("user_id", "week_start", "muscle_id"),
    ("volume", "set_count", "e1rm_sum", "e1rm_count", "updated_at"),
)
METRIC_TARGET = UpsertTarget(
    WeeklyUserMetric,
    ("user_id", "week_start", "metric_key"),
    ("metric_value", "metric_unit", "updated_at"),
)


@dataclass
class WriteReport:
    rows_written: int = 0
    rows_deleted: int = 0
    batches: int = 0
    failed_batches: int = 0
    failed_tables: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed_batches == 0

    def merge(self, other: WriteReport) -> None:
        self.rows_written += other.rows_written
        self.rows_deleted += other.rows_deleted
        self.batches += other.batches
        self.failed_batches += other.failed_batches
        self.failed_tables.extend(other.failed_tables)


class UpsertWriter:
    """Persists one user-week at a time as a full replacement of its stored rows.

    Rows go out in batches of ``batch_size`` so that each statement stays
    below the engine's bound-parameter ceiling. Every batch commits on its
    own: a failing batch is rolled back, logged with its payload and skipped,
    and the remaining batches still run. The stale-row cleanup before the
    upserts and the zero-data clear are treated the same way, so a write
    failure never escapes a week. The next recompute of the week repairs
    whatever was skipped.
    """

    def __init__(self, db: AsyncSession, batch_size: int | None = None, chunk_size: int | None = None):
        settings = get_settings()
        self.db = db
        self.batch_size = settings.UPSERT_BATCH_SIZE if batch_size is None else batch_size
        self.chunk_size = settings.REFERENCE_CHUNK_SIZE if chunk_size is None else chunk_size

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise ValueError(f"Upsert is not supported for dialect '{dialect}'")

    async def _record_failure(
        self, table: str, payload: Sequence[dict[str, Any]], exc: SQLAlchemyError, report: WriteReport, event: str
    ) -> None:
        await self.db.rollback()
        failure = BatchWriteFailed(table, list(payload), exc)
        report.failed_batches += 1
        report.failed_tables.append(table)
        VOLUME_UPSERT_BATCHES_FAILED_TOTAL.labels(table=table).inc()
        logger.error(
            event,
            table=table,
            rows=len(failure.payload),
            payload=[{k: str(v) for k, v in row.items()} for row in failure.payload],
            error=str(failure),
        )

    async def _execute_batch(self, target: UpsertTarget, batch: Sequence[dict[str, Any]]) -> None:
        stmt = self._insert(target.model).values(list(batch))
        stmt = stmt.on_conflict_do_update(
            index_elements=list(target.key_columns),
            set_={column: stmt.excluded[column] for column in target.update_columns},
        )
        await self.db.execute(stmt)

    async def _upsert(self, target: UpsertTarget, rows: Sequence[dict[str, Any]], report: WriteReport) -> None:
        for batch in chunked(rows, self.batch_size):
            report.batches += 1
            try:
                await self._execute_batch(target, batch)
                await self.db.commit()
            except SQLAlchemyError as exc:
                await self._record_failure(target.table_name, batch, exc, report, "upsert_batch_failed")
                continue
            report.rows_written += len(batch)

    async def _delete_stale(self, user_id: str, week_start: str, rows: WeekRows, report: WriteReport) -> None:
        stored_muscles = await AggregatesRepository.list_muscle_ids(self.db, user_id, week_start)
        stale_muscles = sorted(stored_muscles - {row["muscle_id"] for row in rows.muscles})
        stored_metrics = await AggregatesRepository.list_metric_keys(self.db, user_id, week_start)
        stale_metrics = sorted(stored_metrics - {row["metric_key"] for row in rows.metrics})

        deleted = 0
        for chunk in chunked(stale_muscles, self.chunk_size):
            result = await self.db.execute(
                delete(WeeklyUserMuscleVolume).where(
                    WeeklyUserMuscleVolume.user_id == user_id,
                    WeeklyUserMuscleVolume.week_start == week_start,
                    WeeklyUserMuscleVolume.muscle_id.in_(list(chunk)),
                )
            )
            deleted += result.rowcount or 0
        for chunk in chunked(stale_metrics, self.chunk_size):
            result = await self.db.execute(
                delete(WeeklyUserMetric).where(
                    WeeklyUserMetric.user_id == user_id,
                    WeeklyUserMetric.week_start == week_start,
                    WeeklyUserMetric.metric_key.in_(list(chunk)),
                )
            )
            deleted += result.rowcount or 0
        await self.db.commit()
        report.rows_deleted += deleted
        if stale_muscles or stale_metrics:
            logger.info(
                "stale_weekly_rows_deleted",
                user_id=user_id,
                week_start=week_start,
                muscles=len(stale_muscles),
                metrics=len(stale_metrics),
            )

    async def write_week(self, user_id: str, week_start: str, rows: WeekRows) -> WriteReport:
        """Replace the stored rows of one week.

        When the stale-row cleanup fails the week is left untouched: upserting
        on top of rows that should be gone would mix two recomputes.
        """
        report = WriteReport()
        try:
            await self._delete_stale(user_id, week_start, rows, report)
        except SQLAlchemyError as exc:
            await self._record_failure(
                WEEKLY_ROWS, [{"user_id": user_id, "week_start": week_start}], exc, report, "stale_rows_delete_failed"
            )
            return report

        await self._upsert(VOLUME_TARGET, [rows.volume], report)
        await self._upsert(MUSCLE_TARGET, rows.muscles, report)
        await self._upsert(METRIC_TARGET, rows.metrics, report)

        logger.info(
            "weekly_rows_written",
            user_id=user_id,
            week_start=week_start,
            rows_written=report.rows_written,
            failed_batches=report.failed_batches,
        )
        return report

    async def clear_week(self, user_id: str, week_start: str) -> WriteReport:
        report = WriteReport()
        deleted = 0
        try:
            for model in WEEKLY_TABLES:
                result = await self.db.execute(
                    delete(model).where(model.user_id == user_id, model.week_start == week_start)
                )
                deleted += result.rowcount or 0
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self._record_failure(
                WEEKLY_ROWS, [{"user_id": user_id, "week_start": week_start}], exc, report, "weekly_rows_clear_failed"
            )
            return report
        report.rows_deleted = deleted
        logger.info("weekly_rows_cleared", user_id=user_id, week_start=week_start, rows_deleted=deleted)
        return report

    async def clear_user(self, user_id: str) -> WriteReport:
        report = WriteReport()
        try:
            for model in WEEKLY_TABLES:
                result = await self.db.execute(delete(model).where(model.user_id == user_id))
                report.rows_deleted += result.rowcount or 0
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        logger.info("user_weekly_rows_cleared", user_id=user_id, rows_deleted=report.rows_deleted)
        return report
