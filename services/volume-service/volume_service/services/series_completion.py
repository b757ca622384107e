"""Dense weekly series from sparse stored rows.

Every function here returns exactly one point per requested week, in the
order of ``week_starts``; weeks with no stored row become zero points and
rows for weeks outside the span are ignored.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from ..schemas.dashboard import MetricPoint, MetricSeries, MuscleGroupSeries, WeekPoint
from .muscle_group_rollup import GroupRef, MuscleGroupWeek


def volume_point(row: Any) -> WeekPoint:
    e1rm_avg = getattr(row, "e1rm_avg", None)
    return WeekPoint(
        week_start=row.week_start,
        total_volume=row.total_volume or 0.0,
        set_count=row.set_count or 0,
        avg_set_volume=row.avg_set_volume or 0.0,
        avg_e1rm=round(e1rm_avg, 2) if e1rm_avg is not None else None,
    )


def complete_volume_series(rows: Iterable[Any], week_starts: Sequence[str]) -> list[WeekPoint]:
    by_week = {row.week_start: row for row in rows}
    return [volume_point(by_week[w]) if w in by_week else WeekPoint.zero(w) for w in week_starts]


def _group_point(week: MuscleGroupWeek) -> WeekPoint:
    return WeekPoint(
        week_start=week.week_start,
        total_volume=week.volume,
        set_count=week.set_count,
        avg_set_volume=week.volume / week.set_count if week.set_count else 0.0,
        avg_e1rm=week.avg_e1rm,
    )


def complete_muscle_group_series(
    group_rows: Iterable[MuscleGroupWeek],
    week_starts: Sequence[str],
    groups: Sequence[GroupRef] = (),
) -> list[MuscleGroupSeries]:
    """One series per visible reference group plus any group only seen in data."""
    span = set(week_starts)
    names: dict[int, str] = {g.id: g.name for g in groups}
    order: list[int] = [g.id for g in groups]
    by_group: dict[int, dict[str, MuscleGroupWeek]] = {}

    for row in group_rows:
        if row.week_start not in span:
            continue
        if row.group_id not in by_group and row.group_id not in names:
            order.append(row.group_id)
        if row.group_name:
            names[row.group_id] = row.group_name
        by_group.setdefault(row.group_id, {})[row.week_start] = row

    series = []
    for group_id in order:
        weeks = by_group.get(group_id, {})
        series.append(
            MuscleGroupSeries(
                group_id=group_id,
                group_name=names.get(group_id, ""),
                points=[_group_point(weeks[w]) if w in weeks else WeekPoint.zero(w) for w in week_starts],
            )
        )
    return series


def complete_metric_series(rows: Iterable[Any], week_starts: Sequence[str]) -> list[MetricSeries]:
    span = set(week_starts)
    values: dict[str, dict[str, float]] = {}
    units: dict[str, str] = {}

    for row in rows:
        if row.week_start not in span:
            continue
        values.setdefault(row.metric_key, {})[row.week_start] = row.metric_value or 0.0
        if row.metric_unit and not units.get(row.metric_key):
            units[row.metric_key] = row.metric_unit

    return [
        MetricSeries(
            metric_key=key,
            unit=units.get(key, ""),
            points=[MetricPoint(week_start=w, value=values[key].get(w, 0.0)) for w in week_starts],
        )
        for key in sorted(values)
    ]
