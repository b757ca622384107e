from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_current_user_id
from ..schemas.dashboard import DashboardResponse
from ..services.dashboard_service import DashboardService

router = APIRouter(prefix="/dashboard")


def _split_keys(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    keys = [key.strip() for key in raw.split(",") if key.strip()]
    return keys or None


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    span: str | None = Query(default=None, description="Number of weeks ending with the current one, e.g. 4w"),
    metric_keys: str | None = Query(default=None, description="Comma separated metric keys"),
    language: str | None = Query(default=None, description="Locale for muscle group names; overrides Accept-Language"),
    accept_language: str | None = Header(default=None, alias="Accept-Language"),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    service = DashboardService(db)
    return await service.get_dashboard(
        user_id,
        span=span,
        metric_keys=_split_keys(metric_keys),
        language=language or accept_language,
    )
