from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class RecomputeWeekRequest(BaseModel):
    week_of: date | None = None


class AggregationResponse(BaseModel):
    user_id: str
    weeks_written: list[str]
    weeks_cleared: list[str]
    sets_read: int
    sets_skipped: int
    failed_batches: int


class ClearStatsResponse(BaseModel):
    user_id: str
    rows_deleted: int
