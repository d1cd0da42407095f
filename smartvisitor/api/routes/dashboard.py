# =======================================================================================
# smartvisitor/api/routes/dashboard.py - Activity & Stats Endpoints
# =======================================================================================
from typing import List
from fastapi import APIRouter, Depends, Query

from ...models.schemas import RecentBinding, StatsResponse
from ...services.container import Services
from ...utils.exceptions import SmartVisitorError
from ..dependencies import get_services, http_error

router = APIRouter()


@router.get("/scans/recent", response_model=List[RecentBinding])
def get_recent_scans(
    limit: int = Query(50, ge=1, le=500),
    services: Services = Depends(get_services),
):
    try:
        rows = services.guests.recent_bindings(limit)
    except SmartVisitorError as e:
        raise http_error(e)
    return [RecentBinding(**r) for r in rows]


@router.get("/stats", response_model=StatsResponse)
def get_stats(services: Services = Depends(get_services)):
    try:
        return StatsResponse(**services.stats.get_summary())
    except SmartVisitorError as e:
        raise http_error(e)
