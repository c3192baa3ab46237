from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from sponsorship_admin.auth.dependencies import get_current_user
from sponsorship_admin.auth.rbac import check_permission
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.academic_years import AcademicYearAuthority, get_academic_year_authority
from sponsorship_admin.core.audit import log_create, log_system, log_update
from sponsorship_admin.core.exceptions import ServiceError

from .schemas import (
    AcademicYearCreate,
    AcademicYearResponse,
    AcademicYearStatistics,
    AcademicYearUpdate,
    CopyYearRequest,
    CopyYearResponse,
    CurrentAcademicYearResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/academic-years", tags=["academic-years"])


@router.get(
    "",
    response_model=List[AcademicYearResponse],
    dependencies=[Depends(check_permission("academic_years", "read"))],
)
async def list_academic_years(
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[AcademicYearResponse]:
    """All academic years, newest year_name first."""
    return await service.list_academic_years(authority)


@router.post(
    "",
    response_model=AcademicYearResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("academic_years", "create"))],
)
async def create_academic_year(
    payload: AcademicYearCreate,
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    try:
        created = await service.create_academic_year(authority, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_create(authority.db, "academic_year", created.id, f"Created academic year {created.year_name}", user=current_user)
    return created


@router.get(
    "/current",
    response_model=CurrentAcademicYearResponse,
    dependencies=[Depends(check_permission("academic_years", "read"))],
)
async def get_current_academic_year(
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> CurrentAcademicYearResponse:
    """The current academic year; the most recent year when none is flagged."""
    return await service.get_current_academic_year(authority)


@router.get(
    "/statistics",
    response_model=List[AcademicYearStatistics],
    dependencies=[Depends(check_permission("academic_years", "read"))],
)
async def get_year_statistics(
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[AcademicYearStatistics]:
    return await service.get_year_statistics(authority)


@router.post(
    "/copy",
    response_model=CopyYearResponse,
    dependencies=[Depends(check_permission("academic_years", "create"))],
)
async def copy_year_data(
    payload: CopyYearRequest,
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> CopyYearResponse:
    """Copy student records and exam definitions into another (possibly new) academic year."""
    try:
        result = await service.copy_year_data(authority, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_system(
        authority.db,
        "academic_year",
        result.destination.id,
        f"Copied {result.students_copied} students and {result.exams_copied} exams into {result.destination.year_name}",
        user=current_user,
    )
    return result


@router.get(
    "/{year_id}",
    response_model=AcademicYearResponse,
    dependencies=[Depends(check_permission("academic_years", "read"))],
)
async def get_academic_year(
    year_id: UUID,
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> AcademicYearResponse:
    try:
        return await service.get_academic_year(authority, year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{year_id}",
    response_model=AcademicYearResponse,
    dependencies=[Depends(check_permission("academic_years", "update"))],
)
async def update_academic_year(
    year_id: UUID,
    payload: AcademicYearUpdate,
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    try:
        updated = await service.update_academic_year(authority, year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(authority.db, "academic_year", year_id, f"Updated academic year {updated.year_name}", user=current_user)
    return updated


@router.post(
    "/{year_id}/set-current",
    response_model=AcademicYearResponse,
    dependencies=[Depends(check_permission("academic_years", "update"))],
)
async def set_current_academic_year(
    year_id: UUID,
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    """Make this the only current academic year."""
    try:
        updated = await service.set_current_academic_year(authority, year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(
        authority.db, "academic_year", year_id, f"Set {updated.year_name} as current academic year", user=current_user
    )
    return updated
