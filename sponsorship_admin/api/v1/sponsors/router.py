from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.api.v1.students.schemas import RelativeCreate, RelativeResponse, RelativeUpdate, StudentResponse
from sponsorship_admin.auth.dependencies import get_current_user
from sponsorship_admin.auth.rbac import check_permission
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.academic_years import AcademicYearAuthority, get_academic_year_authority
from sponsorship_admin.core.audit import log_create, log_delete, log_update
from sponsorship_admin.core.exceptions import ServiceError
from sponsorship_admin.db.session import get_db

from .schemas import (
    AssignStudentsRequest,
    AssignStudentsResponse,
    BulkResult,
    BulkSponsorIds,
    BulkStatusUpdate,
    RemoveStudentRequest,
    SponsorCreate,
    SponsorDetailResponse,
    SponsorResponse,
    SponsorTimelineEventCreate,
    SponsorTimelineEventResponse,
    SponsorUpdate,
    UpdateEmailRequest,
    UpdateEmailResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/sponsors", tags=["sponsors"])


@router.get(
    "",
    response_model=List[SponsorResponse],
    dependencies=[Depends(check_permission("sponsors", "read"))],
)
async def list_sponsors(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|inactive)$"),
    search: Optional[str] = Query(None, description="First name, last name or email"),
    db: AsyncSession = Depends(get_db),
) -> List[SponsorResponse]:
    return await service.list_sponsors(db, status=status_filter, search=search)


@router.post(
    "",
    response_model=SponsorResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("sponsors", "create"))],
)
async def create_sponsor(
    payload: SponsorCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SponsorResponse:
    try:
        sponsor = await service.create_sponsor(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_create(db, "sponsor", sponsor.id, f"Created sponsor {sponsor.first_name} {sponsor.last_name}", user=current_user)
    return sponsor


@router.post(
    "/bulk-delete",
    response_model=BulkResult,
    dependencies=[Depends(check_permission("sponsors", "delete"))],
)
async def bulk_delete_sponsors(
    payload: BulkSponsorIds,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkResult:
    try:
        deleted = await service.bulk_delete_sponsors(db, payload.sponsor_ids)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "sponsor", "bulk", f"Deleted {deleted} sponsors", user=current_user)
    return BulkResult(affected=deleted)


@router.post(
    "/bulk-status",
    response_model=BulkResult,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def bulk_update_status(
    payload: BulkStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkResult:
    try:
        updated = await service.bulk_update_status(db, payload.sponsor_ids, payload.status)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(db, "sponsor", "bulk", f"Set {updated} sponsors to {payload.status}", user=current_user)
    return BulkResult(affected=updated)


@router.get(
    "/available-students",
    response_model=List[StudentResponse],
    dependencies=[Depends(check_permission("sponsors", "read"))],
)
async def list_available_students(
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[StudentResponse]:
    """Active students that have no sponsor."""
    return await service.list_available_students(db, authority)


@router.get(
    "/{sponsor_id}",
    response_model=SponsorDetailResponse,
    dependencies=[Depends(check_permission("sponsors", "read"))],
)
async def get_sponsor(sponsor_id: str, db: AsyncSession = Depends(get_db)) -> SponsorDetailResponse:
    """By id or slug, with the students currently assigned."""
    try:
        return await service.get_sponsor(db, sponsor_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{sponsor_id}",
    response_model=SponsorResponse,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def update_sponsor(
    sponsor_id: UUID,
    payload: SponsorUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SponsorResponse:
    try:
        sponsor = await service.update_sponsor(db, sponsor_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(db, "sponsor", sponsor_id, f"Updated sponsor {sponsor.first_name} {sponsor.last_name}", user=current_user)
    return sponsor


@router.delete(
    "/{sponsor_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("sponsors", "delete"))],
)
async def delete_sponsor(
    sponsor_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    """Students of the sponsor are kept and become unassigned."""
    try:
        name = await service.delete_sponsor(db, sponsor_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "sponsor", sponsor_id, f"Deleted sponsor {name}", user=current_user)


@router.post(
    "/{sponsor_id}/students",
    response_model=AssignStudentsResponse,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def assign_students(
    sponsor_id: UUID,
    payload: AssignStudentsRequest,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> AssignStudentsResponse:
    try:
        result = await service.assign_students(db, authority, sponsor_id, payload.student_ids, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if result.assigned:
        names = ", ".join(s.name for s in result.assigned)
        await log_update(db, "sponsor", sponsor_id, f"Assigned students: {names}", user=current_user)
    return result


@router.post(
    "/{sponsor_id}/students/{student_id}/remove",
    response_model=StudentResponse,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def remove_student(
    sponsor_id: UUID,
    student_id: UUID,
    payload: RemoveStudentRequest,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentResponse:
    try:
        student = await service.remove_student(db, authority, sponsor_id, student_id, payload, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(
        db, "sponsor", sponsor_id, f"Removed student {student.name} ({payload.reason.value})", user=current_user
    )
    return student


@router.get(
    "/{sponsor_id}/update-email",
    response_model=UpdateEmailResponse,
    dependencies=[Depends(check_permission("sponsors", "read"))],
)
async def get_update_email(sponsor_id: UUID, db: AsyncSession = Depends(get_db)) -> UpdateEmailResponse:
    """Address that receives student updates."""
    try:
        return await service.get_update_email(db, sponsor_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{sponsor_id}/update-email",
    response_model=UpdateEmailResponse,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def set_update_email(
    sponsor_id: UUID,
    payload: UpdateEmailRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UpdateEmailResponse:
    try:
        result = await service.set_update_email(db, sponsor_id, payload.primary_email_for_updates)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(db, "sponsor", sponsor_id, f"Student updates now go to {result.email}", user=current_user)
    return result


# Relatives


@router.get(
    "/{sponsor_id}/relatives",
    response_model=List[RelativeResponse],
    dependencies=[Depends(check_permission("sponsors", "read"))],
)
async def list_relatives(sponsor_id: UUID, db: AsyncSession = Depends(get_db)) -> List[RelativeResponse]:
    try:
        return await service.list_relatives(db, sponsor_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{sponsor_id}/relatives",
    response_model=RelativeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def add_relative(
    sponsor_id: UUID,
    payload: RelativeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RelativeResponse:
    try:
        relative = await service.add_relative(db, sponsor_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_create(db, "sponsor_relative", relative.id, f"Added relative {relative.name} to sponsor {sponsor_id}", user=current_user)
    return relative


@router.put(
    "/{sponsor_id}/relatives/{relative_id}",
    response_model=RelativeResponse,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def update_relative(
    sponsor_id: UUID,
    relative_id: UUID,
    payload: RelativeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RelativeResponse:
    try:
        relative = await service.update_relative(db, sponsor_id, relative_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(db, "sponsor_relative", relative_id, f"Updated relative {relative.name}", user=current_user)
    return relative


@router.delete(
    "/{sponsor_id}/relatives/{relative_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def delete_relative(
    sponsor_id: UUID,
    relative_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    try:
        await service.delete_relative(db, sponsor_id, relative_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "sponsor_relative", relative_id, f"Removed relative from sponsor {sponsor_id}", user=current_user)


# Timeline


@router.get(
    "/{sponsor_id}/timeline",
    response_model=List[SponsorTimelineEventResponse],
    dependencies=[Depends(check_permission("sponsors", "read"))],
)
async def list_timeline(sponsor_id: UUID, db: AsyncSession = Depends(get_db)) -> List[SponsorTimelineEventResponse]:
    try:
        return await service.list_timeline(db, sponsor_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{sponsor_id}/timeline",
    response_model=SponsorTimelineEventResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def add_timeline_event(
    sponsor_id: UUID,
    payload: SponsorTimelineEventCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SponsorTimelineEventResponse:
    try:
        event = await service.add_timeline_event(db, sponsor_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_create(db, "sponsor_timeline_event", event.id, f"Added timeline event '{event.title}'", user=current_user)
    return event


@router.delete(
    "/{sponsor_id}/timeline/{event_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("sponsors", "update"))],
)
async def delete_timeline_event(
    sponsor_id: UUID,
    event_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    try:
        await service.delete_timeline_event(db, sponsor_id, event_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "sponsor_timeline_event", event_id, f"Deleted timeline event of sponsor {sponsor_id}", user=current_user)
