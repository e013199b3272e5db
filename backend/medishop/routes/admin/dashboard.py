from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...models.admin import Admin
from ...schemas.base import envelope
from ...services.dashboard_service import DashboardService
from ...utils.security import get_current_admin

router = APIRouter(prefix="/admin/dashboard", tags=["Admin Dashboard"])


@router.get("/stats")
async def get_dashboard_stats(
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Totals, revenue breakdowns, recent orders and best sellers"""
    return envelope(DashboardService.get_overview_stats(db))
