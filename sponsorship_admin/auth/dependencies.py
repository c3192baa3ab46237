from typing import Dict
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.models import Role, User
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.auth.security import decode_access_token
from sponsorship_admin.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")


async def load_permissions(db: AsyncSession, role_name: str) -> Dict[str, Dict[str, bool]]:
    result = await db.execute(select(Role).where(Role.name == role_name))
    role = result.scalar_one_or_none()
    return dict(role.permissions or {}) if role else {}


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user and their permissions from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if not payload:
        raise credentials_exception
    user_id_str = payload.get("sub")
    if not user_id_str:
        raise credentials_exception
    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise credentials_exception

    # Role comes from the stored user so role changes apply without re-login
    user = await db.get(User, user_id)
    if not user or user.status != "active":
        raise credentials_exception

    return CurrentUser(
        id=user.id,
        email=user.email,
        role=user.role,
        permissions=await load_permissions(db, user.role),
    )


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""
