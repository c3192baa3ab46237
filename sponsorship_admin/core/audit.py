"""
Best-effort audit trail. Call after the audited change has been committed:
the entry is committed on its own and a failure is logged, never raised.
"""

from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.app_logger import get_logger
from sponsorship_admin.core.enums import AuditAction
from sponsorship_admin.core.models import AuditLog

logger = get_logger("audit")

SYSTEM_USERNAME = "System"


async def record_audit_log(
    db: AsyncSession,
    action: str,
    entity: str,
    entity_id: Any,
    details: Optional[str] = None,
    *,
    user: Optional[CurrentUser] = None,
    ip_address: Optional[str] = None,
) -> Optional[AuditLog]:
    """Append one audit log entry. Returns None when the write failed."""
    entry = AuditLog(
        user_id=user.id if user else None,
        username=user.email if user else SYSTEM_USERNAME,
        action=action,
        entity=entity,
        entity_id=str(entity_id),
        details=details,
        ip_address=ip_address,
    )
    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Audit log write failed (%s %s %s): %s", action, entity, entity_id, e)
        return None
    return entry


async def log_create(db: AsyncSession, entity: str, entity_id: Any, details: Optional[str] = None, **kwargs) -> None:
    await record_audit_log(db, AuditAction.CREATE.value, entity, entity_id, details, **kwargs)


async def log_update(db: AsyncSession, entity: str, entity_id: Any, details: Optional[str] = None, **kwargs) -> None:
    await record_audit_log(db, AuditAction.UPDATE.value, entity, entity_id, details, **kwargs)


async def log_delete(db: AsyncSession, entity: str, entity_id: Any, details: Optional[str] = None, **kwargs) -> None:
    await record_audit_log(db, AuditAction.DELETE.value, entity, entity_id, details, **kwargs)


async def log_system(db: AsyncSession, entity: str, entity_id: Any, details: Optional[str] = None, **kwargs) -> None:
    await record_audit_log(db, AuditAction.SYSTEM.value, entity, entity_id, details, **kwargs)


async def log_login(db: AsyncSession, user: CurrentUser, ip_address: Optional[str] = None) -> None:
    await record_audit_log(db, AuditAction.LOGIN.value, "user", user.id, "User logged in", user=user, ip_address=ip_address)


async def log_logout(db: AsyncSession, user: CurrentUser, ip_address: Optional[str] = None) -> None:
    await record_audit_log(db, AuditAction.LOGOUT.value, "user", user.id, "User logged out", user=user, ip_address=ip_address)


async def log_restore(db: AsyncSession, entity: str, entity_id: Any, details: Optional[str] = None, **kwargs) -> None:
    await record_audit_log(db, AuditAction.RESTORE.value, entity, entity_id, details, **kwargs)
