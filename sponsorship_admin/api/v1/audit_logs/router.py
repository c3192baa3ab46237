from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.rbac import require_admin
from sponsorship_admin.db.session import get_db

from .schemas import AuditLogPage
from . import service

router = APIRouter(prefix="/api/v1/audit-logs", tags=["audit-logs"])


@router.get("", response_model=AuditLogPage, dependencies=[Depends(require_admin)])
async def list_audit_logs(
    action: Optional[str] = Query(None, description="create, update, delete, system, login, logout, restore, factory_reset"),
    entity: Optional[str] = Query(None, description="e.g. student, sponsor, exam"),
    user_id: Optional[UUID] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> AuditLogPage:
    return await service.list_audit_logs(
        db,
        action=action,
        entity=entity,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
