from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.rbac import check_permission
from sponsorship_admin.core.academic_years import AcademicYearAuthority, get_academic_year_authority
from sponsorship_admin.db.session import get_db

from .schemas import DashboardResponse
from . import service

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse, dependencies=[Depends(check_permission("dashboard", "read"))])
async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> DashboardResponse:
    """Counts, recent sponsorships, latest activity and current-year exam performance."""
    return await service.get_dashboard(db, authority)
