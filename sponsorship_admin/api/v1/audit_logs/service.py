from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.models import AuditLog

from .schemas import AuditLogPage, AuditLogResponse


async def list_audit_logs(
    db: AsyncSession,
    *,
    action: Optional[str] = None,
    entity: Optional[str] = None,
    user_id: Optional[UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 50,
) -> AuditLogPage:
    """Newest first."""
    filters = []
    if action:
        filters.append(AuditLog.action == action)
    if entity:
        filters.append(AuditLog.entity == entity)
    if user_id:
        filters.append(AuditLog.user_id == user_id)
    if date_from:
        filters.append(AuditLog.created_at >= date_from)
    if date_to:
        filters.append(AuditLog.created_at <= date_to)

    total = await db.scalar(select(func.count()).select_from(AuditLog).where(*filters))
    result = await db.execute(
        select(AuditLog)
        .where(*filters)
        .order_by(AuditLog.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return AuditLogPage(
        items=[AuditLogResponse.model_validate(r) for r in result.scalars().all()],
        total=total or 0,
        page=page,
        page_size=page_size,
    )
