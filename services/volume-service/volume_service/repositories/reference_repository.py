from collections.abc import Sequence

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import GroupRef, ModifierMapping, MuscleMapping
from ..models import ExerciseMuscle, Muscle, MuscleGroup, MuscleGroupTranslation, SetModifier


class ReferenceRepository:
    @staticmethod
    async def fetch_muscle_mappings(db: AsyncSession, exercise_ids: Sequence[int]) -> list[MuscleMapping]:
        if not exercise_ids:
            return []
        query = (
            select(
                ExerciseMuscle.exercise_id,
                ExerciseMuscle.muscle_id,
                ExerciseMuscle.relative_share,
                Muscle.tension_factor,
            )
            .join(Muscle, Muscle.id == ExerciseMuscle.muscle_id)
            .where(ExerciseMuscle.exercise_id.in_(list(exercise_ids)))
        )
        result = await db.execute(query)
        mappings: list[MuscleMapping] = []
        for exercise_id, muscle_id, relative_share, tension_factor in result.all():
            if relative_share is None or tension_factor is None:
                continue
            mappings.append(
                MuscleMapping(
                    exercise_id=exercise_id,
                    muscle_id=muscle_id,
                    relative_share=relative_share,
                    tension_factor=tension_factor,
                )
            )
        return mappings

    @staticmethod
    async def fetch_modifiers(db: AsyncSession, set_ids: Sequence[int]) -> list[ModifierMapping]:
        if not set_ids:
            return []
        query = select(SetModifier.set_id, SetModifier.relative_share_multiplier).where(
            SetModifier.set_id.in_(list(set_ids))
        )
        result = await db.execute(query)
        return [
            ModifierMapping(set_id=set_id, relative_share_multiplier=multiplier)
            for set_id, multiplier in result.all()
            if multiplier is not None
        ]

    @staticmethod
    async def list_muscle_groups(db: AsyncSession, locale: str | None = None) -> list[GroupRef]:
        """All groups with their name in ``locale``, ``label`` is None when untranslated."""
        query = (
            select(MuscleGroup.id, MuscleGroup.name, MuscleGroupTranslation.name.label("label"))
            .outerjoin(
                MuscleGroupTranslation,
                and_(
                    MuscleGroupTranslation.muscle_group_id == MuscleGroup.id,
                    MuscleGroupTranslation.locale == (locale or ""),
                ),
            )
            .order_by(MuscleGroup.id.asc())
        )
        result = await db.execute(query)
        return [GroupRef(id=group_id, name=name, label=label) for group_id, name, label in result.all()]
