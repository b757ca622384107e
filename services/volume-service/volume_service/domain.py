from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PerformedSet:
    id: int
    user_id: str
    exercise_id: int | None
    weight: float | None
    reps: int | None
    performed_at: datetime | None
    rpe: float | None = None

    @property
    def volume(self) -> float | None:
        if self.weight is None or self.reps is None:
            return None
        return self.weight * self.reps


@dataclass(frozen=True)
class MuscleMapping:
    exercise_id: int
    muscle_id: int
    relative_share: int
    tension_factor: float


@dataclass(frozen=True)
class ModifierMapping:
    set_id: int
    relative_share_multiplier: float


@dataclass(frozen=True)
class GroupRef:
    id: int
    name: str
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.name
