from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ..batching import chunked, unique_in_order
from ..config import get_settings
from ..repositories.aggregates_repository import AggregatesRepository
from ..repositories.reference_repository import ReferenceRepository
from ..schemas.dashboard import DashboardResponse, WeekPoint
from ..week_calendar import parse_span, shift_week, week_starts_for_span
from .muscle_group_rollup import primary_language, rollup_muscle_groups, visible_muscle_groups
from .series_completion import (
    complete_metric_series,
    complete_muscle_group_series,
    complete_volume_series,
    volume_point,
)

logger = structlog.get_logger(__name__)


class DashboardService:
    """Read model over the stored weekly aggregates.

    Only reads committed rows, so it never waits on a running recompute and
    may observe a week that is halfway through being replaced.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def _metric_rows(
        self, user_id: str, first_week: str, last_week: str, metric_keys: Sequence[str] | None
    ) -> list:
        if not metric_keys:
            return await AggregatesRepository.list_metric_rows(self.db, user_id, first_week, last_week)
        rows = []
        for chunk in chunked(unique_in_order(metric_keys), self.settings.REFERENCE_CHUNK_SIZE):
            rows.extend(
                await AggregatesRepository.list_metric_rows(self.db, user_id, first_week, last_week, metric_keys=chunk)
            )
        return rows

    async def get_dashboard(
        self,
        user_id: str,
        span: str | None = None,
        metric_keys: Sequence[str] | None = None,
        today: datetime | date | None = None,
        language: str | None = None,
    ) -> DashboardResponse:
        span = span or self.settings.DEFAULT_DASHBOARD_SPAN
        span_weeks = parse_span(span, max_weeks=self.settings.MAX_SPAN_WEEKS)
        locale = primary_language(language)
        week_starts = week_starts_for_span(span_weeks, today)
        this_week = week_starts[-1]
        last_week = shift_week(this_week, -1)
        first_week = min(week_starts[0], last_week)

        volume_rows = await AggregatesRepository.list_volume_rows(self.db, user_id, first_week, this_week)
        muscle_rows = await AggregatesRepository.list_muscle_rows_with_groups(
            self.db, user_id, first_week, this_week, locale=locale
        )
        metric_rows = await self._metric_rows(user_id, first_week, this_week, metric_keys)
        groups = await ReferenceRepository.list_muscle_groups(self.db, locale=locale)

        by_week = {row.week_start: row for row in volume_rows}
        group_weeks = rollup_muscle_groups(muscle_rows, groups, locale=locale)

        response = DashboardResponse(
            user_id=user_id,
            span=span,
            week_starts=week_starts,
            this_week=volume_point(by_week[this_week]) if this_week in by_week else WeekPoint.zero(this_week),
            last_week=volume_point(by_week[last_week]) if last_week in by_week else WeekPoint.zero(last_week),
            trend=complete_volume_series(volume_rows, week_starts),
            muscle_groups=complete_muscle_group_series(
                group_weeks, week_starts, visible_muscle_groups(groups, locale=locale)
            ),
            metrics=complete_metric_series(metric_rows, week_starts),
        )
        logger.debug(
            "dashboard_built",
            user_id=user_id,
            span=span,
            locale=locale,
            stored_weeks=len(volume_rows),
            metric_series=len(response.metrics),
        )
        return response
