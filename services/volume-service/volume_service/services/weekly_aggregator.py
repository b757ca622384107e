from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from ..calculations import effective_volume, epley_1rm, is_e1rm_eligible, raw_volume
from ..domain import PerformedSet
from ..metrics import VOLUME_SETS_SKIPPED_TOTAL
from ..week_calendar import iso_week_start, utc_day
from .muscle_mapper import ReferenceCache

logger = structlog.get_logger(__name__)

ACTIVE_DAYS_METRIC = "active_days"
ACTIVE_DAYS_UNIT = "days"
E1RM_UNIT = "kg"


def exercise_e1rm_metric_key(exercise_id: int) -> str:
    return f"exercise_{exercise_id}_1rm_epley"


@dataclass
class MuscleWeekTotals:
    volume: float = 0.0
    set_count: int = 0
    e1rm_sum: float = 0.0
    e1rm_count: int = 0


@dataclass
class UserWeekTotals:
    total_volume: float = 0.0
    set_count: int = 0
    e1rm_sum: float = 0.0
    e1rm_count: int = 0

    @property
    def avg_set_volume(self) -> float:
        if self.set_count == 0:
            return 0.0
        return self.total_volume / self.set_count

    @property
    def e1rm_avg(self) -> float | None:
        if self.e1rm_count == 0:
            return None
        return self.e1rm_sum / self.e1rm_count


@dataclass
class ExerciseStrength:
    e1rm_sum: float = 0.0
    e1rm_count: int = 0


@dataclass
class WeekRows:
    volume: dict[str, Any]
    muscles: list[dict[str, Any]]
    metrics: list[dict[str, Any]]


@dataclass
class WeeklyAggregates:
    weeks: dict[str, UserWeekTotals] = field(default_factory=dict)
    muscles: dict[tuple[str, int], MuscleWeekTotals] = field(default_factory=dict)
    active_dates: dict[str, set[str]] = field(default_factory=dict)
    exercise_strength: dict[tuple[str, int], ExerciseStrength] = field(default_factory=dict)
    skipped: Counter[str] = field(default_factory=Counter)
    sets_read: int = 0

    @property
    def sets_skipped(self) -> int:
        return sum(self.skipped.values())

    def week_starts(self) -> list[str]:
        return sorted(self.weeks)

    def rows_for_week(self, user_id: str, week_start: str, now: datetime) -> WeekRows | None:
        """Row dicts for the three weekly tables, or ``None`` if the week had no valid sets."""
        totals = self.weeks.get(week_start)
        if totals is None:
            return None

        volume_row = {
            "user_id": user_id,
            "week_start": week_start,
            "total_volume": totals.total_volume,
            "avg_set_volume": totals.avg_set_volume,
            "set_count": totals.set_count,
            "e1rm_avg": totals.e1rm_avg,
            "updated_at": now,
        }

        muscle_rows = [
            {
                "user_id": user_id,
                "week_start": week_start,
                "muscle_id": muscle_id,
                "volume": bucket.volume,
                "set_count": bucket.set_count,
                "e1rm_sum": bucket.e1rm_sum,
                "e1rm_count": bucket.e1rm_count,
                "updated_at": now,
            }
            for (week, muscle_id), bucket in sorted(self.muscles.items())
            if week == week_start
        ]

        metric_rows = []
        for (week, exercise_id), strength in sorted(self.exercise_strength.items()):
            if week != week_start or strength.e1rm_count == 0:
                continue
            metric_rows.append(
                {
                    "user_id": user_id,
                    "week_start": week_start,
                    "metric_key": exercise_e1rm_metric_key(exercise_id),
                    "metric_value": round(strength.e1rm_sum / strength.e1rm_count, 2),
                    "metric_unit": E1RM_UNIT,
                    "updated_at": now,
                }
            )
        metric_rows.append(
            {
                "user_id": user_id,
                "week_start": week_start,
                "metric_key": ACTIVE_DAYS_METRIC,
                "metric_value": float(len(self.active_dates.get(week_start, ()))),
                "metric_unit": ACTIVE_DAYS_UNIT,
                "updated_at": now,
            }
        )

        return WeekRows(volume=volume_row, muscles=muscle_rows, metrics=metric_rows)


def skip_reason(performed_set: PerformedSet) -> str | None:
    if performed_set.performed_at is None:
        return "missing_performed_at"
    if performed_set.exercise_id is None:
        return "missing_exercise"
    if performed_set.weight is None:
        return "missing_weight"
    if performed_set.reps is None:
        return "missing_reps"
    if not (math.isfinite(performed_set.weight) and math.isfinite(performed_set.reps)):
        return "non_finite"
    return None


class WeeklyAggregator:
    """Single-pass reducer from performed sets to weekly per-user, per-muscle and metric totals.

    Every bucket is a commutative sum, so the input order does not matter.
    Malformed sets are counted in ``WeeklyAggregates.skipped`` and never abort
    the pass.
    """

    def __init__(self, reference: ReferenceCache):
        self.reference = reference

    def aggregate(self, sets: Iterable[PerformedSet]) -> WeeklyAggregates:
        result = WeeklyAggregates()

        for performed_set in sets:
            result.sets_read += 1
            reason = skip_reason(performed_set)
            if reason is not None:
                result.skipped[reason] += 1
                VOLUME_SETS_SKIPPED_TOTAL.labels(reason=reason).inc()
                continue
            self._accumulate(result, performed_set)

        if result.skipped:
            logger.warning(
                "malformed_sets_skipped",
                skipped=dict(result.skipped),
                sets_read=result.sets_read,
            )
        return result

    def _accumulate(self, result: WeeklyAggregates, performed_set: PerformedSet) -> None:
        week_start = iso_week_start(performed_set.performed_at)
        volume = raw_volume(performed_set.weight, performed_set.reps)
        eligible = is_e1rm_eligible(performed_set.weight, performed_set.reps)
        e1rm = epley_1rm(performed_set.weight, performed_set.reps) if eligible else 0.0

        week = result.weeks.setdefault(week_start, UserWeekTotals())
        week.total_volume += volume
        week.set_count += 1
        if eligible:
            week.e1rm_sum += e1rm
            week.e1rm_count += 1

        modifier = self.reference.modifier_for(performed_set.id)
        for mapping in self.reference.muscles_for(performed_set.exercise_id):
            bucket = result.muscles.setdefault((week_start, mapping.muscle_id), MuscleWeekTotals())
            bucket.volume += effective_volume(volume, mapping.relative_share, mapping.tension_factor, modifier)
            bucket.set_count += 1
            if eligible:
                bucket.e1rm_sum += e1rm
                bucket.e1rm_count += 1

        if eligible:
            strength = result.exercise_strength.setdefault(
                (week_start, performed_set.exercise_id), ExerciseStrength()
            )
            strength.e1rm_sum += e1rm
            strength.e1rm_count += 1

        result.active_dates.setdefault(week_start, set()).add(utc_day(performed_set.performed_at))
