from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.models import RefreshToken, User
from sponsorship_admin.auth.schemas import (
    CurrentUser,
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    TokenResponse,
    UserInfo,
)
from sponsorship_admin.auth.security import (
    create_access_token,
    hash_password,
    new_refresh_token,
    verify_password,
)
from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.exceptions import NotFoundError, ServiceError, TransientIOError


def _user_info(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        name=user.full_name,
        email=user.email,
        role=user.role,
        avatar_url=user.avatar_url,
    )


def _still_valid(expires_at: datetime, now: datetime) -> bool:
    # SQLite hands back naive datetimes; stored values are UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at > now


async def _issue_refresh_token(db: AsyncSession, user: User, issued_at: datetime) -> str:
    token, expires_at = new_refresh_token(issued_at=issued_at)
    db.add(RefreshToken(user_id=user.id, token=token, expires_at=expires_at))
    return token


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    # Find user by email (case-insensitive)
    result = await db.execute(select(User).where(func.lower(User.email) == payload.email.lower()))
    user: Optional[User] = result.scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)
    if user.status != "active":
        raise ServiceError("User is inactive", status.HTTP_403_FORBIDDEN)

    issued_at = datetime.now(timezone.utc)
    access_token = create_access_token(user_id=user.id, role=user.role, issued_at=issued_at)
    refresh_token = await _issue_refresh_token(db, user, issued_at)
    user.last_login_at = issued_at
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise TransientIOError("Failed to persist authentication state") from e

    academic_year = await AcademicYearAuthority(db).current_year_name()
    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=_user_info(user),
        academic_year=academic_year,
        issued_at=issued_at,
    )


async def refresh_access_token(db: AsyncSession, refresh_token: str) -> TokenResponse:
    """Exchange a stored refresh token for a new pair. The old refresh token is revoked."""
    result = await db.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))
    stored = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)
    if stored is None or not _still_valid(stored.expires_at, now):
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)
    user = await db.get(User, stored.user_id)
    if not user or user.status != "active":
        raise ServiceError("User is inactive", status.HTTP_401_UNAUTHORIZED)

    await db.delete(stored)
    new_refresh = await _issue_refresh_token(db, user, now)
    access_token = create_access_token(user_id=user.id, role=user.role, issued_at=now)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise TransientIOError("Failed to persist authentication state") from e
    return TokenResponse(access_token=access_token, refresh_token=new_refresh)


async def logout_user(db: AsyncSession, current_user: CurrentUser) -> None:
    """Revoke every refresh token of the user."""
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == current_user.id))
    await db.commit()


async def get_profile(db: AsyncSession, current_user: CurrentUser) -> UserInfo:
    user = await db.get(User, current_user.id)
    if not user:
        raise NotFoundError("User not found")
    return _user_info(user)


async def update_profile(db: AsyncSession, current_user: CurrentUser, payload: ProfileUpdate) -> UserInfo:
    user = await db.get(User, current_user.id)
    if not user:
        raise NotFoundError("User not found")
    if payload.full_name is not None:
        user.full_name = payload.full_name
    if payload.avatar_url is not None:
        user.avatar_url = payload.avatar_url
    if payload.password:
        user.password_hash = hash_password(payload.password)
    await db.commit()
    await db.refresh(user)
    return _user_info(user)
