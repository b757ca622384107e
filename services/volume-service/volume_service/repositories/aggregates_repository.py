from collections.abc import Sequence
from typing import Any

from sqlalchemy import and_, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    Muscle,
    MuscleGroup,
    MuscleGroupTranslation,
    WeeklyUserMetric,
    WeeklyUserMuscleVolume,
    WeeklyUserVolume,
)


class AggregatesRepository:
    @staticmethod
    async def list_stored_weeks(db: AsyncSession, user_id: str) -> set[str]:
        query = union(
            select(WeeklyUserVolume.week_start).where(WeeklyUserVolume.user_id == user_id),
            select(WeeklyUserMuscleVolume.week_start).where(WeeklyUserMuscleVolume.user_id == user_id),
            select(WeeklyUserMetric.week_start).where(WeeklyUserMetric.user_id == user_id),
        )
        result = await db.execute(query)
        return {row[0] for row in result.all()}

    @staticmethod
    async def list_muscle_ids(db: AsyncSession, user_id: str, week_start: str) -> set[int]:
        result = await db.execute(
            select(WeeklyUserMuscleVolume.muscle_id).where(
                WeeklyUserMuscleVolume.user_id == user_id,
                WeeklyUserMuscleVolume.week_start == week_start,
            )
        )
        return set(result.scalars().all())

    @staticmethod
    async def list_metric_keys(db: AsyncSession, user_id: str, week_start: str) -> set[str]:
        result = await db.execute(
            select(WeeklyUserMetric.metric_key).where(
                WeeklyUserMetric.user_id == user_id,
                WeeklyUserMetric.week_start == week_start,
            )
        )
        return set(result.scalars().all())

    @staticmethod
    async def list_volume_rows(
        db: AsyncSession, user_id: str, first_week: str, last_week: str
    ) -> list[WeeklyUserVolume]:
        result = await db.execute(
            select(WeeklyUserVolume)
            .where(
                WeeklyUserVolume.user_id == user_id,
                WeeklyUserVolume.week_start >= first_week,
                WeeklyUserVolume.week_start <= last_week,
            )
            .order_by(WeeklyUserVolume.week_start.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_muscle_rows_with_groups(
        db: AsyncSession, user_id: str, first_week: str, last_week: str, locale: str | None = None
    ) -> list[dict[str, Any]]:
        """Per-muscle weekly rows joined with the muscle's group.

        ``group_name`` is the base name, ``group_label`` its translation into
        ``locale`` or None.
        """
        query = (
            select(
                WeeklyUserMuscleVolume.week_start,
                WeeklyUserMuscleVolume.muscle_id,
                WeeklyUserMuscleVolume.volume,
                WeeklyUserMuscleVolume.set_count,
                WeeklyUserMuscleVolume.e1rm_sum,
                WeeklyUserMuscleVolume.e1rm_count,
                MuscleGroup.id.label("group_id"),
                MuscleGroup.name.label("group_name"),
                MuscleGroupTranslation.name.label("group_label"),
            )
            .join(Muscle, Muscle.id == WeeklyUserMuscleVolume.muscle_id)
            .join(MuscleGroup, MuscleGroup.id == Muscle.muscle_group_id)
            .outerjoin(
                MuscleGroupTranslation,
                and_(
                    MuscleGroupTranslation.muscle_group_id == MuscleGroup.id,
                    MuscleGroupTranslation.locale == (locale or ""),
                ),
            )
            .where(
                WeeklyUserMuscleVolume.user_id == user_id,
                WeeklyUserMuscleVolume.week_start >= first_week,
                WeeklyUserMuscleVolume.week_start <= last_week,
            )
            .order_by(WeeklyUserMuscleVolume.week_start.asc(), WeeklyUserMuscleVolume.muscle_id.asc())
        )
        result = await db.execute(query)
        return [dict(row._mapping) for row in result.all()]

    @staticmethod
    async def list_metric_rows(
        db: AsyncSession,
        user_id: str,
        first_week: str,
        last_week: str,
        metric_keys: Sequence[str] | None = None,
    ) -> list[WeeklyUserMetric]:
        query = select(WeeklyUserMetric).where(
            WeeklyUserMetric.user_id == user_id,
            WeeklyUserMetric.week_start >= first_week,
            WeeklyUserMetric.week_start <= last_week,
        )
        if metric_keys:
            query = query.where(WeeklyUserMetric.metric_key.in_(list(metric_keys)))
        result = await db.execute(
            query.order_by(WeeklyUserMetric.metric_key.asc(), WeeklyUserMetric.week_start.asc())
        )
        return list(result.scalars().all())
