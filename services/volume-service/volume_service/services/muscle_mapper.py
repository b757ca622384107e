from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..batching import chunked, unique_in_order
from ..config import get_settings
from ..domain import ModifierMapping, MuscleMapping, PerformedSet
from ..repositories.reference_repository import ReferenceRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ModifierPolicy:
    clamp: bool = False
    minimum: float = 0.0
    maximum: float = 2.0

    def apply(self, multiplier: float) -> float:
        if not self.clamp:
            return multiplier
        return min(max(multiplier, self.minimum), self.maximum)


@dataclass
class ReferenceCache:
    """Lookups prefetched for a single aggregation pass.

    Built by ``MuscleMapper.build_reference`` and dropped when the pass ends;
    nothing here is shared between runs.
    """

    mappings_by_exercise: dict[int, list[MuscleMapping]] = field(default_factory=dict)
    multipliers_by_set: dict[int, float] = field(default_factory=dict)
    modifier_policy: ModifierPolicy = field(default_factory=ModifierPolicy)

    @classmethod
    def from_rows(
        cls,
        mappings: Iterable[MuscleMapping],
        modifiers: Iterable[ModifierMapping] = (),
        modifier_policy: ModifierPolicy | None = None,
    ) -> ReferenceCache:
        by_exercise: dict[int, list[MuscleMapping]] = defaultdict(list)
        for mapping in mappings:
            by_exercise[mapping.exercise_id].append(mapping)
        return cls(
            mappings_by_exercise=dict(by_exercise),
            multipliers_by_set={m.set_id: m.relative_share_multiplier for m in modifiers},
            modifier_policy=modifier_policy or ModifierPolicy(),
        )

    def muscles_for(self, exercise_id: int) -> list[MuscleMapping]:
        return self.mappings_by_exercise.get(exercise_id, [])

    def modifier_for(self, set_id: int) -> float:
        multiplier = self.multipliers_by_set.get(set_id)
        if multiplier is None:
            return 1.0
        return self.modifier_policy.apply(multiplier)


class MuscleMapper:
    def __init__(
        self,
        db: AsyncSession,
        chunk_size: int | None = None,
        modifier_policy: ModifierPolicy | None = None,
    ):
        settings = get_settings()
        self.db = db
        self.chunk_size = settings.REFERENCE_CHUNK_SIZE if chunk_size is None else chunk_size
        self.modifier_policy = modifier_policy or ModifierPolicy(
            clamp=settings.CLAMP_MODIFIER_MULTIPLIER,
            minimum=settings.MODIFIER_MULTIPLIER_MIN,
            maximum=settings.MODIFIER_MULTIPLIER_MAX,
        )

    async def map_muscles(self, exercise_ids: Iterable[int]) -> list[MuscleMapping]:
        ids = unique_in_order(i for i in exercise_ids if i is not None)
        mappings: list[MuscleMapping] = []
        chunks = 0
        for chunk in chunked(ids, self.chunk_size):
            mappings.extend(await ReferenceRepository.fetch_muscle_mappings(self.db, chunk))
            chunks += 1
        logger.debug("muscle_mappings_loaded", exercises=len(ids), mappings=len(mappings), chunks=chunks)
        return mappings

    async def map_modifiers(self, set_ids: Iterable[int]) -> list[ModifierMapping]:
        ids = unique_in_order(i for i in set_ids if i is not None)
        modifiers: list[ModifierMapping] = []
        for chunk in chunked(ids, self.chunk_size):
            modifiers.extend(await ReferenceRepository.fetch_modifiers(self.db, chunk))
        return modifiers

    async def build_reference(self, sets: Sequence[PerformedSet]) -> ReferenceCache:
        mappings = await self.map_muscles(s.exercise_id for s in sets)
        modifiers = await self.map_modifiers(s.id for s in sets)
        return ReferenceCache.from_rows(mappings, modifiers, self.modifier_policy)
