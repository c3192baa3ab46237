from datetime import datetime
from typing import Any, Dict, List, Optional, Type
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.cross_year import get_cross_year_warning
from sponsorship_admin.core.exceptions import ConflictError, NotFoundError, ValidationFailedError, translate_db_error
from sponsorship_admin.core.models import (
    Sponsor,
    Student,
    StudentExamScore,
    StudentLetter,
    StudentPhoto,
    StudentRelative,
    TimelineEvent,
)
from sponsorship_admin.core.slugs import unique_slug
from sponsorship_admin.core.spreadsheets import build_xlsx, cell_date, cell_str, read_xlsx_rows
from sponsorship_admin.core.versioning import VersionedRecordWriter

from .schemas import (
    LetterResponse,
    PhotoResponse,
    RelativeCreate,
    RelativeResponse,
    RelativeUpdate,
    StudentCreate,
    StudentImportResponse,
    StudentImportRowError,
    StudentResponse,
    StudentUpdate,
    TimelineEventResponse,
)

IMPORT_HEADERS = ("admission_number", "name", "gender", "current_grade", "admission_date", "dob", "status")
IMPORT_EXAMPLE_ROW = ("ADM-001", "Jane Wanjiru", "Female", "Grade 4", "2023-01-09", "2014-05-21", "active")


def student_writer(db: AsyncSession, authority: AcademicYearAuthority) -> VersionedRecordWriter:
    return VersionedRecordWriter(db, Student, authority, label="Student")


def _without_required_nulls(model: Type, values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop explicit nulls sent for NOT NULL columns; they mean "leave unchanged"."""
    columns = model.__table__.c
    return {k: v for k, v in values.items() if v is not None or k not in columns or columns[k].nullable}


def to_student_response(row: Student, selected_year: Optional[str] = None, with_warning: bool = False) -> StudentResponse:
    return StudentResponse(
        id=row.entity_id,
        record_id=row.id,
        admission_number=row.admission_number,
        name=row.name,
        slug=row.slug,
        dob=row.dob,
        gender=row.gender,
        location=row.location,
        description=row.description,
        current_grade=row.current_grade,
        school_level=row.school_level,
        cbc_category=row.cbc_category,
        accommodation_status=row.accommodation_status,
        health_status=row.health_status,
        height_cm=row.height_cm,
        weight_kg=row.weight_kg,
        admission_date=row.admission_date,
        status=row.status,
        profile_image_url=row.profile_image_url,
        sponsor_id=row.sponsor_id,
        sponsored_since=row.sponsored_since,
        academic_year_recorded=row.academic_year_recorded,
        is_current_record=row.is_current_record,
        record_date=row.record_date,
        created_by=row.created_by,
        updated_by=row.updated_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
        warning=get_cross_year_warning(row.academic_year_recorded, selected_year) if with_warning else None,
    )


async def _student_slug(db: AsyncSession, name: str, exclude_entity: Optional[UUID] = None) -> str:
    stmt = select(Student.slug).where(Student.is_current_record.is_(True), Student.slug.isnot(None))
    if exclude_entity is not None:
        stmt = stmt.where(Student.entity_id != exclude_entity)
    existing = (await db.execute(stmt)).scalars().all()
    return unique_slug(name, existing)


async def _ensure_admission_number_free(db: AsyncSession, admission_number: str, exclude_entity: Optional[UUID] = None) -> None:
    stmt = select(func.count()).select_from(Student).where(
        Student.is_current_record.is_(True),
        Student.admission_number == admission_number,
    )
    if exclude_entity is not None:
        stmt = stmt.where(Student.entity_id != exclude_entity)
    if await db.scalar(stmt):
        raise ConflictError(f"A student with admission number '{admission_number}' already exists")


async def _ensure_sponsor(db: AsyncSession, sponsor_id: UUID) -> None:
    if not await db.get(Sponsor, sponsor_id):
        raise NotFoundError("Sponsor not found")


async def resolve_student_id(db: AsyncSession, id_or_slug: str) -> UUID:
    """Student entity id from a UUID or a current-record slug."""
    try:
        return UUID(id_or_slug)
    except ValueError:
        pass
    result = await db.execute(
        select(Student.entity_id).where(Student.is_current_record.is_(True), Student.slug == id_or_slug)
    )
    entity_id = result.scalars().first()
    if entity_id is None:
        raise NotFoundError("Student not found")
    return entity_id


async def list_students(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    *,
    status: Optional[str] = None,
    sponsor_id: Optional[UUID] = None,
    unassigned: bool = False,
    search: Optional[str] = None,
    academic_year: Optional[str] = None,
) -> List[StudentResponse]:
    """Current records by default; with academic_year, the records stored for that year."""
    writer = student_writer(db, authority)
    if academic_year:
        await authority.resolve_view_year(academic_year)
        stmt = writer.rows_for_year(academic_year)
    else:
        stmt = writer.current_rows()
    if status:
        stmt = stmt.where(Student.status == status)
    if sponsor_id:
        stmt = stmt.where(Student.sponsor_id == sponsor_id)
    if unassigned:
        stmt = stmt.where(Student.sponsor_id.is_(None))
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(func.lower(Student.name).like(pattern), func.lower(Student.admission_number).like(pattern))
        )
    result = await db.execute(stmt.order_by(Student.name))
    return [to_student_response(row) for row in result.scalars().all()]


async def get_student(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    id_or_slug: str,
    academic_year: Optional[str] = None,
) -> StudentResponse:
    entity_id = await resolve_student_id(db, id_or_slug)
    selected_year = await authority.resolve_view_year(academic_year)
    row = await student_writer(db, authority).get_view(entity_id, academic_year)
    return to_student_response(row, selected_year, with_warning=True)


async def get_student_history(db: AsyncSession, authority: AcademicYearAuthority, student_id: UUID) -> List[StudentResponse]:
    rows = await student_writer(db, authority).history(student_id)
    if not rows:
        raise NotFoundError("Student not found")
    return [to_student_response(row) for row in rows]


async def create_student(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    payload: StudentCreate,
    created_by: Optional[UUID] = None,
) -> StudentResponse:
    admission_number = payload.admission_number.strip()
    await _ensure_admission_number_free(db, admission_number)
    values: Dict[str, Any] = payload.model_dump(exclude={"academic_year", "sponsor_id"})
    values["admission_number"] = admission_number
    values["slug"] = await _student_slug(db, payload.name)
    values["created_by"] = created_by
    if payload.sponsor_id:
        await _ensure_sponsor(db, payload.sponsor_id)
        values["sponsor_id"] = payload.sponsor_id
        values["sponsored_since"] = datetime.utcnow()
    if payload.academic_year:
        await authority.resolve_view_year(payload.academic_year)
    row = await student_writer(db, authority).create(values, academic_year=payload.academic_year)
    return to_student_response(row)


async def update_student(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    student_id: UUID,
    payload: StudentUpdate,
    updated_by: Optional[UUID] = None,
) -> StudentResponse:
    writer = student_writer(db, authority)
    current = await writer.get_current(student_id)
    values: Dict[str, Any] = _without_required_nulls(
        Student, payload.model_dump(exclude_unset=True, exclude={"academic_year"})
    )
    if "admission_number" in values:
        values["admission_number"] = values["admission_number"].strip()
        if values["admission_number"] != current.admission_number:
            await _ensure_admission_number_free(db, values["admission_number"], exclude_entity=student_id)
    if "name" in values and values["name"] != current.name:
        values["slug"] = await _student_slug(db, values["name"], exclude_entity=student_id)
    values["updated_by"] = updated_by
    if payload.academic_year:
        await authority.resolve_view_year(payload.academic_year)
    row = await writer.write_current_year_value(student_id, payload.academic_year, values)
    selected_year = await authority.current_year_name()
    return to_student_response(row, selected_year, with_warning=True)


async def delete_student(db: AsyncSession, authority: AcademicYearAuthority, student_id: UUID) -> str:
    """Delete every record of the student and everything attached to it. Returns the student's name."""
    writer = student_writer(db, authority)
    rows = await writer.history(student_id)
    if not rows:
        raise NotFoundError("Student not found")
    name = next((r.name for r in rows if r.is_current_record), rows[0].name)
    try:
        for model in (StudentExamScore, StudentLetter, StudentPhoto, TimelineEvent, StudentRelative):
            await db.execute(delete(model).where(model.student_id == student_id))
        await writer.delete_entity(student_id, commit=False)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Student is still referenced") from e
    return name


def build_import_template() -> bytes:
    return build_xlsx("Students", IMPORT_HEADERS, [IMPORT_EXAMPLE_ROW])


async def import_students(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    file: UploadFile,
    created_by: Optional[UUID] = None,
) -> StudentImportResponse:
    """Create one student per row in the current year. Existing admission numbers are skipped and reported."""
    rows = await read_xlsx_rows(file, required=("admission_number", "name"))
    if not rows:
        raise ValidationFailedError("Excel file has no data rows")
    year = await authority.require_current_year_name()

    existing_numbers = set(
        (await db.execute(select(Student.admission_number).where(Student.is_current_record.is_(True)))).scalars().all()
    )
    existing_slugs = list(
        (await db.execute(select(Student.slug).where(Student.is_current_record.is_(True), Student.slug.isnot(None))))
        .scalars()
        .all()
    )
    writer = student_writer(db, authority)
    created = 0
    skipped: List[StudentImportRowError] = []
    failed: List[StudentImportRowError] = []

    for row_num, row in rows:
        admission_number = cell_str(row, "admission_number")
        name = cell_str(row, "name")
        if not admission_number or not name:
            failed.append(StudentImportRowError(row=row_num, admission_number=admission_number or None, reason="admission_number and name are required"))
            continue
        if admission_number in existing_numbers:
            skipped.append(StudentImportRowError(row=row_num, admission_number=admission_number, reason="Admission number already exists"))
            continue
        status = (cell_str(row, "status") or "active").lower()
        if status not in ("active", "inactive"):
            failed.append(StudentImportRowError(row=row_num, admission_number=admission_number, reason=f"Invalid status '{status}'"))
            continue
        try:
            admission_date = cell_date(row, "admission_date")
            dob = cell_date(row, "dob")
        except ValueError as e:
            failed.append(StudentImportRowError(row=row_num, admission_number=admission_number, reason=str(e)))
            continue

        slug = unique_slug(name, existing_slugs)
        values = {
            "admission_number": admission_number,
            "name": name,
            "slug": slug,
            "gender": cell_str(row, "gender") or None,
            "current_grade": cell_str(row, "current_grade") or None,
            "admission_date": admission_date,
            "dob": dob,
            "status": status,
            "created_by": created_by,
        }
        await writer.create(values, academic_year=year, commit=False)
        existing_numbers.add(admission_number)
        existing_slugs.append(slug)
        created += 1

    if created:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise translate_db_error(e, "Some admission numbers were created concurrently; try again") from e
    return StudentImportResponse(created=created, skipped=skipped, failed=failed)


# Relatives


async def _get_relative(db: AsyncSession, student_id: UUID, relative_id: UUID) -> StudentRelative:
    relative = await db.get(StudentRelative, relative_id)
    if not relative or relative.student_id != student_id:
        raise NotFoundError("Relative not found")
    return relative


async def list_relatives(db: AsyncSession, authority: AcademicYearAuthority, student_id: UUID) -> List[RelativeResponse]:
    await student_writer(db, authority).get_current(student_id)
    result = await db.execute(
        select(StudentRelative).where(StudentRelative.student_id == student_id).order_by(StudentRelative.created_at)
    )
    return [RelativeResponse.model_validate(r) for r in result.scalars().all()]


async def add_relative(
    db: AsyncSession, authority: AcademicYearAuthority, student_id: UUID, payload: RelativeCreate
) -> RelativeResponse:
    await student_writer(db, authority).get_current(student_id)
    relative = StudentRelative(student_id=student_id, **payload.model_dump())
    db.add(relative)
    await db.commit()
    await db.refresh(relative)
    return RelativeResponse.model_validate(relative)


async def update_relative(
    db: AsyncSession, student_id: UUID, relative_id: UUID, payload: RelativeUpdate
) -> RelativeResponse:
    relative = await _get_relative(db, student_id, relative_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(relative, key, value)
    await db.commit()
    await db.refresh(relative)
    return RelativeResponse.model_validate(relative)


async def delete_relative(db: AsyncSession, student_id: UUID, relative_id: UUID) -> None:
    relative = await _get_relative(db, student_id, relative_id)
    await db.delete(relative)
    await db.commit()


# Timeline events, letters and photos share one shape: year-scoped rows keyed by student_id

RECORD_RESPONSES = {
    TimelineEvent: TimelineEventResponse,
    StudentLetter: LetterResponse,
    StudentPhoto: PhotoResponse,
}
RECORD_LABELS = {
    TimelineEvent: "Timeline event",
    StudentLetter: "Letter",
    StudentPhoto: "Photo",
}


def _record_response(model: Type, row: Any, selected_year: Optional[str] = None, with_warning: bool = False):
    response_cls = RECORD_RESPONSES[model]
    data = {name: getattr(row, name) for name in response_cls.model_fields if name not in ("id", "warning")}
    data["id"] = row.entity_id
    if with_warning:
        data["warning"] = get_cross_year_warning(row.academic_year_recorded, selected_year)
    return response_cls(**data)


async def list_records(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    model: Type,
    student_id: UUID,
    academic_year: Optional[str] = None,
) -> list:
    """Newest first. Current records by default; with academic_year, the records stored for that year."""
    await student_writer(db, authority).get_current(student_id)
    writer = VersionedRecordWriter(db, model, authority, label=RECORD_LABELS[model])
    if academic_year:
        await authority.resolve_view_year(academic_year)
        stmt = writer.rows_for_year(academic_year)
    else:
        stmt = writer.current_rows()
    result = await db.execute(stmt.where(model.student_id == student_id).order_by(model.date.desc()))
    return [_record_response(model, row) for row in result.scalars().all()]


async def create_record(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    model: Type,
    student_id: UUID,
    payload: Any,
    created_by: Optional[UUID] = None,
):
    await student_writer(db, authority).get_current(student_id)
    values = payload.model_dump(exclude={"academic_year"})
    if values.get("date") is None:
        values["date"] = datetime.utcnow()
    values["student_id"] = student_id
    if "created_by" in model.__versioned_fields__:
        values["created_by"] = created_by
    if payload.academic_year:
        await authority.resolve_view_year(payload.academic_year)
    writer = VersionedRecordWriter(db, model, authority, label=RECORD_LABELS[model])
    row = await writer.create(values, academic_year=payload.academic_year)
    return _record_response(model, row)


async def _owned_record(writer: VersionedRecordWriter, student_id: UUID, record_id: UUID) -> Any:
    rows = await writer.history(record_id)
    if not rows or rows[0].student_id != student_id:
        raise NotFoundError(f"{writer.label} not found")
    return rows[0]


async def update_record(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    model: Type,
    student_id: UUID,
    record_id: UUID,
    payload: Any,
    updated_by: Optional[UUID] = None,
):
    writer = VersionedRecordWriter(db, model, authority, label=RECORD_LABELS[model])
    await _owned_record(writer, student_id, record_id)
    values = _without_required_nulls(model, payload.model_dump(exclude_unset=True, exclude={"academic_year"}))
    if hasattr(model, "updated_by"):
        values["updated_by"] = updated_by
    if payload.academic_year:
        await authority.resolve_view_year(payload.academic_year)
    row = await writer.write_current_year_value(record_id, payload.academic_year, values)
    selected_year = await authority.current_year_name()
    return _record_response(model, row, selected_year, with_warning=True)


async def delete_record(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    model: Type,
    student_id: UUID,
    record_id: UUID,
) -> None:
    writer = VersionedRecordWriter(db, model, authority, label=RECORD_LABELS[model])
    await _owned_record(writer, student_id, record_id)
    await writer.delete_entity(record_id)
