from .aggregation import AggregationResponse, ClearStatsResponse, RecomputeWeekRequest
from .dashboard import DashboardResponse, MetricPoint, MetricSeries, MuscleGroupSeries, WeekPoint

__all__ = [
    "AggregationResponse",
    "ClearStatsResponse",
    "DashboardResponse",
    "MetricPoint",
    "MetricSeries",
    "MuscleGroupSeries",
    "RecomputeWeekRequest",
    "WeekPoint",
]
