from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import PerformedSet
from ..models import WorkoutSet


def _to_domain(row: WorkoutSet) -> PerformedSet:
    return PerformedSet(
        id=row.id,
        user_id=row.user_id,
        exercise_id=row.exercise_id,
        weight=row.weight,
        reps=row.reps,
        rpe=row.rpe,
        performed_at=row.performed_at,
    )


class SetsRepository:
    @staticmethod
    async def list_sets(
        db: AsyncSession,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[PerformedSet]:
        """Sets of a user ordered by ``performed_at``; ``[start, end)`` when bounds are given.

        Without bounds, sets lacking ``performed_at`` are returned too so the
        aggregator can account for them as skipped.
        """
        query = select(WorkoutSet).where(WorkoutSet.user_id == user_id)
        if start is not None:
            query = query.where(WorkoutSet.performed_at >= start)
        if end is not None:
            query = query.where(WorkoutSet.performed_at < end)
        query = query.order_by(WorkoutSet.performed_at.asc(), WorkoutSet.id.asc())
        result = await db.execute(query)
        return [_to_domain(row) for row in result.scalars().all()]
