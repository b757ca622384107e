from __future__ import annotations

from pydantic import BaseModel, Field


class WeekPoint(BaseModel):
    week_start: str
    total_volume: float = 0.0
    set_count: int = 0
    avg_set_volume: float = 0.0
    avg_e1rm: float | None = None

    @classmethod
    def zero(cls, week_start: str) -> WeekPoint:
        return cls(week_start=week_start)


class MuscleGroupSeries(BaseModel):
    group_id: int
    group_name: str
    points: list[WeekPoint]


class MetricPoint(BaseModel):
    week_start: str
    value: float = 0.0


class MetricSeries(BaseModel):
    metric_key: str
    unit: str = ""
    points: list[MetricPoint]


class DashboardResponse(BaseModel):
    user_id: str
    span: str
    week_starts: list[str] = Field(default_factory=list)
    this_week: WeekPoint
    last_week: WeekPoint
    trend: list[WeekPoint]
    muscle_groups: list[MuscleGroupSeries]
    metrics: list[MetricSeries]
