from datetime import UTC, datetime

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_current_user_id
from ..schemas.aggregation import AggregationResponse, ClearStatsResponse, RecomputeWeekRequest
from ..services.aggregation_service import AggregationResult, AggregationService
from ..services.event_publisher import build_event_publisher

router = APIRouter(prefix="/aggregation")


def _service(db: AsyncSession) -> AggregationService:
    return AggregationService(db, publisher=build_event_publisher())


def _to_response(result: AggregationResult) -> AggregationResponse:
    return AggregationResponse(
        user_id=result.user_id,
        weeks_written=result.weeks_written,
        weeks_cleared=result.weeks_cleared,
        sets_read=result.sets_read,
        sets_skipped=result.sets_skipped,
        failed_batches=result.failed_batches,
    )


@router.post("/week", response_model=AggregationResponse)
async def recompute_week(
    payload: RecomputeWeekRequest | None = Body(default=None),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    week_of = payload.week_of if payload and payload.week_of else datetime.now(UTC).date()
    result = await _service(db).recompute_week(user_id, week_of)
    return _to_response(result)


@router.post("/full-history", response_model=AggregationResponse)
async def recompute_full_history(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    result = await _service(db).recompute_full_history(user_id)
    return _to_response(result)


@router.post("/rebuild", response_model=AggregationResponse)
async def rebuild(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    result = await _service(db).clear_and_recompute(user_id)
    return _to_response(result)


@router.delete("", response_model=ClearStatsResponse)
async def clear_stats(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    rows_deleted = await _service(db).clear_user_stats(user_id)
    return ClearStatsResponse(user_id=user_id, rows_deleted=rows_deleted)
