from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.rbac import require_admin, require_superuser
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.academic_years import AcademicYearAuthority, get_academic_year_authority
from sponsorship_admin.core.audit import log_restore, log_system
from sponsorship_admin.core.exceptions import ServiceError
from sponsorship_admin.db.session import get_db

from .schemas import (
    BackupDocument,
    FactoryResetRequest,
    MaintenanceResult,
    RestoreRequest,
    WipeAcademicDataRequest,
    WipeResult,
    WipeTablesRequest,
)
from . import service

router = APIRouter(prefix="/api/v1/maintenance", tags=["maintenance"])

RESET_CONFIRMATION = "RESET"
WIPE_CONFIRMATION = "WIPE"


@router.get("/backup", response_model=BackupDocument)
async def backup_all_data(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> BackupDocument:
    """All data as one JSON document keyed by table name."""
    backup = await service.backup_all_data(db)
    await log_system(db, "system", "backup", "Created full data backup", user=current_user)
    return backup


@router.post("/factory-reset", response_model=MaintenanceResult)
async def factory_reset(
    payload: FactoryResetRequest,
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(require_superuser),
) -> MaintenanceResult:
    """Delete all data and users except the caller; start over with a default academic year."""
    if payload.confirm != RESET_CONFIRMATION:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f'Type "{RESET_CONFIRMATION}" to confirm')
    try:
        return await service.factory_reset_all_data(authority, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/wipe-academic-data", response_model=WipeResult)
async def wipe_academic_data(
    payload: WipeAcademicDataRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_superuser),
) -> WipeResult:
    """Delete exams, scores, timeline events, letters and photos of every academic year."""
    if payload.confirm != WIPE_CONFIRMATION:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f'Type "{WIPE_CONFIRMATION}" to confirm')
    try:
        result = await service.wipe_academic_data(db)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_system(db, "system", "academic_data_wipe", "All academic year data wiped", user=current_user)
    return result


@router.post("/wipe-tables", response_model=WipeResult)
async def wipe_tables(
    payload: WipeTablesRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_superuser),
) -> WipeResult:
    try:
        result = await service.wipe_tables(db, payload.tables)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_system(
        db, "system", "selective_wipe", f"Selective data wipe performed on: {', '.join(result.tables)}", user=current_user
    )
    return result


@router.post("/restore", response_model=MaintenanceResult)
async def restore_all_data(
    payload: RestoreRequest,
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(require_superuser),
) -> MaintenanceResult:
    """Replace all data with a backup made by GET /backup."""
    try:
        result = await service.restore_all_data(authority, payload.model_dump(), current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_restore(authority.db, "system", "all", result.message, user=current_user)
    return result
