from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.models import RefreshToken, Role, User
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.auth.security import hash_password
from sponsorship_admin.core.enums import UserRole
from sponsorship_admin.core.exceptions import ConflictError, NotFoundError, ValidationFailedError

from .schemas import UserCreate, UserResponse, UserUpdate


def _to_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


async def _ensure_role_exists(db: AsyncSession, role_name: str) -> None:
    if role_name in {r.value for r in UserRole}:
        return
    found = await db.scalar(select(func.count()).select_from(Role).where(Role.name == role_name))
    if not found:
        raise ValidationFailedError(f"Unknown role '{role_name}'")


async def _get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def list_users(db: AsyncSession, search: Optional[str] = None) -> List[UserResponse]:
    stmt = select(User).order_by(User.created_at.desc())
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(func.lower(User.email).like(pattern) | func.lower(User.full_name).like(pattern))
    result = await db.execute(stmt)
    return [_to_response(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: UUID) -> UserResponse:
    return _to_response(await _get_user(db, user_id))


async def create_user(db: AsyncSession, payload: UserCreate, current_user: CurrentUser) -> UserResponse:
    await _ensure_role_exists(db, payload.role)
    if payload.role == UserRole.SUPERUSER.value and current_user.role != UserRole.SUPERUSER.value:
        raise ValidationFailedError("Only the superuser can create another superuser")
    user = User(
        email=payload.email.lower(),
        full_name=payload.full_name,
        password_hash=hash_password(payload.password),
        role=payload.role,
        status=payload.status,
    )
    db.add(user)
    try:
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Email is already in use")
    return _to_response(user)


async def update_user(db: AsyncSession, user_id: UUID, payload: UserUpdate, current_user: CurrentUser) -> UserResponse:
    user = await _get_user(db, user_id)
    if payload.role is not None and payload.role != user.role:
        await _ensure_role_exists(db, payload.role)
        if UserRole.SUPERUSER.value in (payload.role, user.role) and current_user.role != UserRole.SUPERUSER.value:
            raise ValidationFailedError("Only the superuser can grant or revoke the superuser role")
        user.role = payload.role
    if payload.status is not None:
        if user.id == current_user.id and payload.status != "active":
            raise ValidationFailedError("You cannot deactivate your own account")
        user.status = payload.status
    if payload.full_name is not None:
        user.full_name = payload.full_name
    if payload.avatar_url is not None:
        user.avatar_url = payload.avatar_url
    if payload.password:
        user.password_hash = hash_password(payload.password)
    await db.commit()
    await db.refresh(user)
    return _to_response(user)


async def delete_user(db: AsyncSession, user_id: UUID, current_user: CurrentUser) -> str:
    """Returns the deleted user's email."""
    user = await _get_user(db, user_id)
    if user.id == current_user.id:
        raise ValidationFailedError("You cannot delete your own account")
    if user.role == UserRole.SUPERUSER.value and current_user.role != UserRole.SUPERUSER.value:
        raise ValidationFailedError("Only the superuser can delete a superuser")
    email = user.email
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    await db.delete(user)
    await db.commit()
    return email
