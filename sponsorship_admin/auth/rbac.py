from typing import Dict

from fastapi import Depends, HTTPException, status

from sponsorship_admin.auth.dependencies import get_current_user
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.enums import ADMIN_ROLES, UserRole
from sponsorship_admin.core.exceptions import PermissionDeniedError


def has_permission(current_user: CurrentUser, module: str, action: str) -> bool:
    if current_user.role in ADMIN_ROLES:
        return True
    permissions: Dict[str, Dict[str, bool]] = current_user.permissions or {}
    return bool(permissions.get(module, {}).get(action, False))


def check_permission(module: str, action: str):
    """
    Dependency factory to enforce a specific permission.

    Example:
        Depends(check_permission("students", "update"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not has_permission(current_user, module, action):
            e = PermissionDeniedError()
            raise HTTPException(status_code=e.status_code, detail=e.message)

    return _checker


async def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """superuser or admin only (settings, users, audit log)."""
    if current_user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only administrators can perform this action")
    return current_user


async def require_superuser(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Destructive maintenance operations."""
    if current_user.role != UserRole.SUPERUSER.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the superuser can perform this action")
    return current_user
