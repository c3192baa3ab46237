from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.dependencies import get_current_user
from sponsorship_admin.auth.models import Role, User
from sponsorship_admin.auth.rbac import require_admin
from sponsorship_admin.auth.schemas import CurrentUser, RoleCreate, RoleResponse, RoleUpdate
from sponsorship_admin.core.audit import log_create, log_delete, log_update
from sponsorship_admin.db.session import get_db

router = APIRouter(prefix="/api/v1/auth/roles", tags=["roles"])


async def _get_role_or_404(db: AsyncSession, role_id: UUID) -> Role:
    role = await db.get(Role, role_id)
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


@router.post(
    "",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_role(
    payload: RoleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RoleResponse:
    role = Role(
        name=payload.name.strip(),
        description=payload.description,
        permissions=payload.permissions,
        is_system=False,
    )
    db.add(role)
    try:
        await db.commit()
        await db.refresh(role)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A role with this name already exists.")
    response = RoleResponse.model_validate(role)
    await log_create(db, "role", role.id, f"Created role {response.name}", user=current_user)
    return response


@router.get(
    "",
    response_model=List[RoleResponse],
    dependencies=[Depends(require_admin)],
)
async def list_roles(db: AsyncSession = Depends(get_db)) -> List[RoleResponse]:
    result = await db.execute(select(Role).order_by(Role.is_system.desc(), Role.name))
    return [RoleResponse.model_validate(r) for r in result.scalars().all()]


@router.get(
    "/{role_id}",
    response_model=RoleResponse,
    dependencies=[Depends(require_admin)],
)
async def get_role(role_id: UUID, db: AsyncSession = Depends(get_db)) -> RoleResponse:
    return RoleResponse.model_validate(await _get_role_or_404(db, role_id))


@router.put(
    "/{role_id}",
    response_model=RoleResponse,
    dependencies=[Depends(require_admin)],
)
async def update_role(
    role_id: UUID,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RoleResponse:
    role = await _get_role_or_404(db, role_id)
    if payload.name is not None and payload.name.strip() != role.name:
        # Users reference roles by name
        if role.is_system:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="System roles cannot be renamed")
        in_use = await db.scalar(select(func.count()).select_from(User).where(User.role == role.name))
        if in_use:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role is assigned to users and cannot be renamed")
        role.name = payload.name.strip()
    if payload.description is not None:
        role.description = payload.description
    if payload.permissions is not None:
        role.permissions = payload.permissions

    try:
        await db.commit()
        await db.refresh(role)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A role with this name already exists.")
    response = RoleResponse.model_validate(role)
    await log_update(db, "role", role_id, f"Updated role {response.name}", user=current_user)
    return response


@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_role(
    role_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    role = await _get_role_or_404(db, role_id)
    if role.is_system:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="System roles cannot be deleted")
    in_use = await db.scalar(select(func.count()).select_from(User).where(User.role == role.name))
    if in_use:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role is assigned to users and cannot be deleted")
    name = role.name
    await db.delete(role)
    await db.commit()
    await log_delete(db, "role", role_id, f"Deleted role {name}", user=current_user)
