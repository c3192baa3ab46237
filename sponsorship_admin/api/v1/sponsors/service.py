from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.api.v1.students.schemas import RelativeCreate, RelativeResponse, RelativeUpdate, StudentResponse
from sponsorship_admin.api.v1.students.service import student_writer, to_student_response as student_response
from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.app_logger import get_logger
from sponsorship_admin.core.exceptions import NotFoundError, ValidationFailedError, translate_db_error
from sponsorship_admin.core.models import Sponsor, SponsorRelative, SponsorTimelineEvent, Student
from sponsorship_admin.core.slugs import unique_slug

from .schemas import (
    AssignStudentsResponse,
    RemoveStudentRequest,
    SponsorCreate,
    SponsorDetailResponse,
    SponsorResponse,
    SponsorTimelineEventCreate,
    SponsorTimelineEventResponse,
    SponsorUpdate,
    UpdateEmailResponse,
)

logger = get_logger("sponsors")

ASSIGNMENT_EVENT = "student_assignment"
REMOVAL_EVENT = "student_removal"


def _full_name(first_name: str, last_name: str) -> str:
    return f"{first_name} {last_name}".strip()


def _to_response(sponsor: Sponsor, student_count: int = 0) -> SponsorResponse:
    response = SponsorResponse.model_validate(sponsor)
    response.student_count = student_count
    return response


def _check_update_email(email: str, email2: Optional[str], primary: Optional[str]) -> None:
    if primary and primary.lower() not in {e.lower() for e in (email, email2) if e}:
        raise ValidationFailedError("primary_email_for_updates must be one of the sponsor's email addresses")


async def _sponsor_slug(db: AsyncSession, first_name: str, last_name: str, exclude_id: Optional[UUID] = None) -> str:
    stmt = select(Sponsor.slug).where(Sponsor.slug.isnot(None))
    if exclude_id is not None:
        stmt = stmt.where(Sponsor.id != exclude_id)
    existing = (await db.execute(stmt)).scalars().all()
    return unique_slug(_full_name(first_name, last_name), existing)


async def _student_counts(db: AsyncSession, sponsor_ids: Optional[List[UUID]] = None) -> Dict[UUID, int]:
    stmt = (
        select(Student.sponsor_id, func.count())
        .where(Student.is_current_record.is_(True), Student.sponsor_id.isnot(None))
        .group_by(Student.sponsor_id)
    )
    if sponsor_ids is not None:
        stmt = stmt.where(Student.sponsor_id.in_(sponsor_ids))
    return {sponsor_id: count for sponsor_id, count in (await db.execute(stmt)).all()}


async def _commit(db: AsyncSession, conflict_message: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, conflict_message) from e


async def get_sponsor_or_404(db: AsyncSession, sponsor_id: UUID) -> Sponsor:
    sponsor = await db.get(Sponsor, sponsor_id)
    if not sponsor:
        raise NotFoundError("Sponsor not found")
    return sponsor


async def resolve_sponsor(db: AsyncSession, id_or_slug: str) -> Sponsor:
    try:
        return await get_sponsor_or_404(db, UUID(id_or_slug))
    except ValueError:
        pass
    result = await db.execute(select(Sponsor).where(Sponsor.slug == id_or_slug))
    sponsor = result.scalar_one_or_none()
    if not sponsor:
        raise NotFoundError("Sponsor not found")
    return sponsor


async def list_sponsors(
    db: AsyncSession,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> List[SponsorResponse]:
    stmt = select(Sponsor)
    if status:
        stmt = stmt.where(Sponsor.status == status)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Sponsor.first_name).like(pattern),
                func.lower(Sponsor.last_name).like(pattern),
                func.lower(Sponsor.email).like(pattern),
            )
        )
    sponsors = (await db.execute(stmt.order_by(Sponsor.created_at.desc()))).scalars().all()
    counts = await _student_counts(db)
    return [_to_response(s, counts.get(s.id, 0)) for s in sponsors]


async def get_sponsor(db: AsyncSession, id_or_slug: str) -> SponsorDetailResponse:
    """Sponsor with the students currently assigned to them."""
    sponsor = await resolve_sponsor(db, id_or_slug)
    result = await db.execute(
        select(Student)
        .where(Student.is_current_record.is_(True), Student.sponsor_id == sponsor.id)
        .order_by(Student.name)
    )
    students = [student_response(s) for s in result.scalars().all()]
    base = _to_response(sponsor, len(students))
    return SponsorDetailResponse(**base.model_dump(), students=students)


async def create_sponsor(db: AsyncSession, payload: SponsorCreate) -> SponsorResponse:
    _check_update_email(payload.email, payload.email2, payload.primary_email_for_updates)
    data = payload.model_dump()
    data["first_name"] = data["first_name"].strip()
    data["last_name"] = data["last_name"].strip()
    data["slug"] = await _sponsor_slug(db, data["first_name"], data["last_name"])
    sponsor = Sponsor(**data)
    db.add(sponsor)
    await _commit(db, "A sponsor with this slug already exists")
    await db.refresh(sponsor)
    return _to_response(sponsor)


async def update_sponsor(db: AsyncSession, sponsor_id: UUID, payload: SponsorUpdate) -> SponsorResponse:
    sponsor = await get_sponsor_or_404(db, sponsor_id)
    data = payload.model_dump(exclude_unset=True)
    for key in ("first_name", "last_name", "email", "status"):
        if key in data and data[key] is None:
            data.pop(key)
    for key in ("first_name", "last_name"):
        if key in data:
            data[key] = data[key].strip()

    email = data.get("email", sponsor.email)
    email2 = data.get("email2", sponsor.email2)
    primary = data.get("primary_email_for_updates", sponsor.primary_email_for_updates)
    if "primary_email_for_updates" not in data and primary and primary.lower() not in {
        e.lower() for e in (email, email2) if e
    }:
        # The address it pointed to was changed or removed
        data["primary_email_for_updates"] = None
    else:
        _check_update_email(email, email2, primary)

    first_name = data.get("first_name", sponsor.first_name)
    last_name = data.get("last_name", sponsor.last_name)
    if (first_name, last_name) != (sponsor.first_name, sponsor.last_name):
        data["slug"] = await _sponsor_slug(db, first_name, last_name, exclude_id=sponsor.id)

    for key, value in data.items():
        setattr(sponsor, key, value)
    await _commit(db, "A sponsor with this slug already exists")
    await db.refresh(sponsor)
    counts = await _student_counts(db, [sponsor.id])
    return _to_response(sponsor, counts.get(sponsor.id, 0))


async def _delete_sponsor_rows(db: AsyncSession, sponsor_ids: List[UUID]) -> int:
    # Students are kept on every stored year; only the link goes
    await db.execute(
        update(Student)
        .where(Student.sponsor_id.in_(sponsor_ids))
        .values(sponsor_id=None, sponsored_since=None)
    )
    await db.execute(delete(SponsorRelative).where(SponsorRelative.sponsor_id.in_(sponsor_ids)))
    await db.execute(delete(SponsorTimelineEvent).where(SponsorTimelineEvent.sponsor_id.in_(sponsor_ids)))
    result = await db.execute(delete(Sponsor).where(Sponsor.id.in_(sponsor_ids)))
    return result.rowcount


async def delete_sponsor(db: AsyncSession, sponsor_id: UUID) -> str:
    """Returns the deleted sponsor's name."""
    sponsor = await get_sponsor_or_404(db, sponsor_id)
    name = _full_name(sponsor.first_name, sponsor.last_name)
    try:
        await _delete_sponsor_rows(db, [sponsor_id])
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Sponsor could not be deleted") from e
    logger.info("Deleted sponsor %s", sponsor_id)
    return name


async def bulk_delete_sponsors(db: AsyncSession, sponsor_ids: List[UUID]) -> int:
    try:
        deleted = await _delete_sponsor_rows(db, list(set(sponsor_ids)))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Sponsors could not be deleted") from e
    return deleted


async def bulk_update_status(db: AsyncSession, sponsor_ids: List[UUID], status: str) -> int:
    try:
        result = await db.execute(
            update(Sponsor)
            .where(Sponsor.id.in_(list(set(sponsor_ids))))
            .values(status=status, updated_at=datetime.utcnow())
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Sponsor statuses could not be updated") from e
    return result.rowcount


# Assignments


async def list_available_students(db: AsyncSession, authority: AcademicYearAuthority) -> List[StudentResponse]:
    """Active students without a sponsor on their current record."""
    result = await db.execute(
        student_writer(db, authority)
        .current_rows()
        .where(Student.sponsor_id.is_(None), Student.status == "active")
        .order_by(Student.name)
    )
    return [student_response(s) for s in result.scalars().all()]


async def assign_students(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    sponsor_id: UUID,
    student_ids: List[UUID],
    user_id: Optional[UUID] = None,
) -> AssignStudentsResponse:
    """Link unassigned students to the sponsor in the current year. Students that already have a sponsor are skipped."""
    sponsor = await get_sponsor_or_404(db, sponsor_id)
    sponsor_name = _full_name(sponsor.first_name, sponsor.last_name)
    await authority.require_current_year_name()
    writer = student_writer(db, authority)

    now = datetime.utcnow()
    assigned: List[Student] = []
    skipped: List[UUID] = []
    for student_id in dict.fromkeys(student_ids):
        current = await writer.get_current(student_id)
        if current.sponsor_id is not None:
            skipped.append(student_id)
            continue
        row = await writer.write_current_year_value(
            student_id,
            None,
            {"sponsor_id": sponsor_id, "sponsored_since": now, "updated_by": user_id},
            commit=False,
        )
        db.add(
            SponsorTimelineEvent(
                sponsor_id=sponsor_id,
                student_id=student_id,
                title=f"Student assigned: {row.name}",
                description=f"{row.name} ({row.admission_number}) was assigned to {sponsor_name}",
                type=ASSIGNMENT_EVENT,
                date=now,
            )
        )
        assigned.append(row)

    if assigned:
        await _commit(db, "Student assignments changed concurrently; try again")
    return AssignStudentsResponse(assigned=[student_response(s) for s in assigned], skipped=skipped)


async def remove_student(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    sponsor_id: UUID,
    student_id: UUID,
    payload: RemoveStudentRequest,
    user_id: Optional[UUID] = None,
) -> StudentResponse:
    """Unlink the student from the sponsor on the current-year record and log the reason."""
    sponsor = await get_sponsor_or_404(db, sponsor_id)
    sponsor_name = _full_name(sponsor.first_name, sponsor.last_name)
    writer = student_writer(db, authority)
    current = await writer.get_current(student_id)
    if current.sponsor_id != sponsor_id:
        raise NotFoundError("Student is not assigned to this sponsor")

    row = await writer.write_current_year_value(
        student_id,
        None,
        {"sponsor_id": None, "sponsored_since": None, "updated_by": user_id},
        commit=False,
    )
    description = f"{row.name} ({row.admission_number}) was removed from {sponsor_name}. Reason: {payload.reason.value}"
    if payload.notes:
        description += f". Notes: {payload.notes}"
    db.add(
        SponsorTimelineEvent(
            sponsor_id=sponsor_id,
            student_id=student_id,
            title=f"Student removed: {row.name}",
            description=description,
            type=REMOVAL_EVENT,
            date=datetime.utcnow(),
        )
    )
    await _commit(db, "Student assignment changed concurrently; try again")
    return student_response(row)


# Update-recipient email


def _recipient(sponsor: Sponsor) -> UpdateEmailResponse:
    email = sponsor.primary_email_for_updates or sponsor.email
    return UpdateEmailResponse(sponsor_id=sponsor.id, email=email, is_primary_email=email.lower() == sponsor.email.lower())


async def get_update_email(db: AsyncSession, sponsor_id: UUID) -> UpdateEmailResponse:
    """Address that receives student updates: primary_email_for_updates when set, else email."""
    return _recipient(await get_sponsor_or_404(db, sponsor_id))


async def set_update_email(db: AsyncSession, sponsor_id: UUID, email: str) -> UpdateEmailResponse:
    sponsor = await get_sponsor_or_404(db, sponsor_id)
    _check_update_email(sponsor.email, sponsor.email2, email)
    sponsor.primary_email_for_updates = email
    await _commit(db, "Sponsor could not be updated")
    return _recipient(sponsor)


# Relatives


async def _get_relative(db: AsyncSession, sponsor_id: UUID, relative_id: UUID) -> SponsorRelative:
    relative = await db.get(SponsorRelative, relative_id)
    if not relative or relative.sponsor_id != sponsor_id:
        raise NotFoundError("Relative not found")
    return relative


async def list_relatives(db: AsyncSession, sponsor_id: UUID) -> List[RelativeResponse]:
    await get_sponsor_or_404(db, sponsor_id)
    result = await db.execute(
        select(SponsorRelative)
        .where(SponsorRelative.sponsor_id == sponsor_id)
        .order_by(SponsorRelative.created_at.desc())
    )
    return [RelativeResponse.model_validate(r) for r in result.scalars().all()]


async def add_relative(db: AsyncSession, sponsor_id: UUID, payload: RelativeCreate) -> RelativeResponse:
    await get_sponsor_or_404(db, sponsor_id)
    relative = SponsorRelative(sponsor_id=sponsor_id, **payload.model_dump())
    db.add(relative)
    await _commit(db, "Relative could not be added")
    await db.refresh(relative)
    return RelativeResponse.model_validate(relative)


async def update_relative(db: AsyncSession, sponsor_id: UUID, relative_id: UUID, payload: RelativeUpdate) -> RelativeResponse:
    relative = await _get_relative(db, sponsor_id, relative_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key in ("name", "relationship"):
            continue
        setattr(relative, key, value)
    await _commit(db, "Relative could not be updated")
    await db.refresh(relative)
    return RelativeResponse.model_validate(relative)


async def delete_relative(db: AsyncSession, sponsor_id: UUID, relative_id: UUID) -> None:
    relative = await _get_relative(db, sponsor_id, relative_id)
    await db.delete(relative)
    await _commit(db, "Relative could not be deleted")


# Timeline


async def list_timeline(db: AsyncSession, sponsor_id: UUID) -> List[SponsorTimelineEventResponse]:
    await get_sponsor_or_404(db, sponsor_id)
    result = await db.execute(
        select(SponsorTimelineEvent)
        .where(SponsorTimelineEvent.sponsor_id == sponsor_id)
        .order_by(SponsorTimelineEvent.date.desc())
    )
    return [SponsorTimelineEventResponse.model_validate(e) for e in result.scalars().all()]


async def add_timeline_event(
    db: AsyncSession, sponsor_id: UUID, payload: SponsorTimelineEventCreate
) -> SponsorTimelineEventResponse:
    await get_sponsor_or_404(db, sponsor_id)
    data: Dict[str, Any] = payload.model_dump()
    if data.get("date") is None:
        data["date"] = datetime.utcnow()
    event = SponsorTimelineEvent(sponsor_id=sponsor_id, **data)
    db.add(event)
    await _commit(db, "Timeline event could not be added")
    await db.refresh(event)
    return SponsorTimelineEventResponse.model_validate(event)


async def delete_timeline_event(db: AsyncSession, sponsor_id: UUID, event_id: UUID) -> None:
    event = await db.get(SponsorTimelineEvent, event_id)
    if not event or event.sponsor_id != sponsor_id:
        raise NotFoundError("Timeline event not found")
    await db.delete(event)
    await _commit(db, "Timeline event could not be deleted")
