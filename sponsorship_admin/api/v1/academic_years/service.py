from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.exceptions import ConflictError, ValidationFailedError, translate_db_error
from sponsorship_admin.core.models import VERSIONED_MODELS, AcademicYear, Exam, Student, StudentExamScore
from sponsorship_admin.core.versioning import VersionedRecordWriter

from .schemas import (
    AcademicYearCreate,
    AcademicYearResponse,
    AcademicYearStatistics,
    AcademicYearUpdate,
    CopyYearRequest,
    CopyYearResponse,
    CurrentAcademicYearResponse,
)


def _to_response(ay: AcademicYear) -> AcademicYearResponse:
    return AcademicYearResponse.model_validate(ay)


def _validate_dates(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise ValidationFailedError("end_date must be after start_date")


async def list_academic_years(authority: AcademicYearAuthority) -> List[AcademicYearResponse]:
    return [_to_response(ay) for ay in await authority.list_years()]


async def get_academic_year(authority: AcademicYearAuthority, year_id: UUID) -> AcademicYearResponse:
    return _to_response(await authority.get_year(year_id))


async def get_current_academic_year(authority: AcademicYearAuthority) -> CurrentAcademicYearResponse:
    ay = await authority.get_current_year()
    if ay is None:
        return CurrentAcademicYearResponse()
    return CurrentAcademicYearResponse(academic_year=_to_response(ay), is_fallback=not ay.is_current)


async def _insert_year(
    db: AsyncSession,
    year_name: str,
    start_date: date,
    end_date: date,
    created_by: Optional[UUID],
) -> AcademicYear:
    _validate_dates(start_date, end_date)
    existing = await db.execute(select(AcademicYear).where(AcademicYear.year_name == year_name))
    if existing.scalar_one_or_none():
        raise ConflictError(f"Academic year '{year_name}' already exists")
    ay = AcademicYear(
        year_name=year_name,
        start_date=start_date,
        end_date=end_date,
        is_current=False,
        created_by=created_by,
    )
    db.add(ay)
    return ay


async def create_academic_year(
    authority: AcademicYearAuthority,
    payload: AcademicYearCreate,
    created_by: Optional[UUID] = None,
) -> AcademicYearResponse:
    """Create a year. With set_as_current the switch goes through the authority so subscribers hear about it."""
    db = authority.db
    ay = await _insert_year(db, payload.year_name.strip(), payload.start_date, payload.end_date, created_by)
    try:
        await db.commit()
        await db.refresh(ay)
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Academic year '{payload.year_name}' already exists")
    if payload.set_as_current:
        ay = await authority.set_current_year(ay.id)
    return _to_response(ay)


async def update_academic_year(
    authority: AcademicYearAuthority,
    year_id: UUID,
    payload: AcademicYearUpdate,
) -> AcademicYearResponse:
    db = authority.db
    ay = await authority.get_year(year_id)
    old_name = ay.year_name

    if payload.start_date is not None:
        ay.start_date = payload.start_date
    if payload.end_date is not None:
        ay.end_date = payload.end_date
    _validate_dates(ay.start_date, ay.end_date)

    new_name = payload.year_name.strip() if payload.year_name is not None else old_name
    if new_name != old_name:
        other = await authority.get_year_by_name(new_name)
        if other is not None:
            raise ConflictError(f"Academic year '{new_name}' already exists")
        ay.year_name = new_name
        # Records are scoped to a year by name; carry them along
        for model in VERSIONED_MODELS:
            await db.execute(
                update(model)
                .where(model.academic_year_recorded == old_name)
                .values(academic_year_recorded=new_name)
            )
        await db.execute(update(Exam).where(Exam.academic_year == old_name).values(academic_year=new_name))

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, f"Academic year '{new_name}' already exists") from e
    await db.refresh(ay)
    return _to_response(ay)


async def set_current_academic_year(authority: AcademicYearAuthority, year_id: UUID) -> AcademicYearResponse:
    return _to_response(await authority.set_current_year(year_id))


async def _resolve_destination(
    authority: AcademicYearAuthority,
    payload: CopyYearRequest,
    created_by: Optional[UUID],
) -> AcademicYear:
    if payload.destination_year_id is not None:
        return await authority.get_year(payload.destination_year_id)
    ay = await _insert_year(
        authority.db,
        payload.new_year_name.strip(),
        payload.new_start_date,
        payload.new_end_date,
        created_by,
    )
    await authority.db.flush()
    return ay


async def copy_year_data(
    authority: AcademicYearAuthority,
    payload: CopyYearRequest,
    created_by: Optional[UUID] = None,
) -> CopyYearResponse:
    """
    Copy student records and exam definitions from the source year into the destination year
    in one transaction. Students already recorded in the destination year are left untouched.
    """
    db = authority.db
    source = await authority.get_year(payload.source_year_id)
    source_name = source.year_name
    destination = await _resolve_destination(authority, payload, created_by)
    destination_name = destination.year_name
    if destination_name == source_name:
        raise ValidationFailedError("Source and destination academic years must differ")

    students_copied = students_skipped = exams_copied = exams_skipped = 0
    try:
        if payload.copy_student_data:
            writer = VersionedRecordWriter(db, Student, authority, label="Student")
            source_rows = (await db.execute(writer.rows_for_year(source_name))).scalars().all()
            already = set(
                (await db.execute(select(Student.entity_id).where(Student.academic_year_recorded == destination_name)))
                .scalars()
                .all()
            )
            for row in source_rows:
                if row.entity_id in already:
                    students_skipped += 1
                    continue
                values = {f: getattr(row, f) for f in Student.__versioned_fields__}
                if row.current_grade in payload.grade_promotion:
                    values["current_grade"] = payload.grade_promotion[row.current_grade]
                if not payload.copy_sponsorship:
                    values["sponsor_id"] = None
                    values["sponsored_since"] = None
                await writer.write_current_year_value(row.entity_id, destination_name, values, commit=False)
                students_copied += 1

        if payload.copy_exam_templates:
            source_exams = (await db.execute(select(Exam).where(Exam.academic_year == source_name))).scalars().all()
            existing = set(
                (await db.execute(select(Exam.name, Exam.term).where(Exam.academic_year == destination_name))).all()
            )
            for exam in source_exams:
                if (exam.name, exam.term) in existing:
                    exams_skipped += 1
                    continue
                db.add(
                    Exam(
                        name=exam.name,
                        term=exam.term,
                        academic_year=destination_name,
                        exam_date=exam.exam_date,
                        max_score=exam.max_score,
                        passing_score=exam.passing_score,
                        description=exam.description,
                        created_by=created_by,
                    )
                )
                exams_copied += 1

        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Academic year data changed while copying; try again") from e

    await db.refresh(destination)
    return CopyYearResponse(
        destination=_to_response(destination),
        students_copied=students_copied,
        students_skipped=students_skipped,
        exams_copied=exams_copied,
        exams_skipped=exams_skipped,
    )


def _change_percent(current: int, previous: Optional[int]) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


async def get_year_statistics(authority: AcademicYearAuthority) -> List[AcademicYearStatistics]:
    """Per-year record counts, newest first, with change against the previous year."""
    db = authority.db
    years = await authority.list_years()

    student_counts = dict(
        (await db.execute(
            select(Student.academic_year_recorded, func.count(Student.id)).group_by(Student.academic_year_recorded)
        )).all()
    )
    exam_counts = dict(
        (await db.execute(select(Exam.academic_year, func.count(Exam.id)).group_by(Exam.academic_year))).all()
    )
    percentage = StudentExamScore.score / Exam.max_score * 100
    sat = and_(StudentExamScore.did_not_sit.is_(False), StudentExamScore.score.isnot(None))
    score_rows = (
        await db.execute(
            select(
                Exam.academic_year,
                func.count(StudentExamScore.id),
                # did-not-sit rows are counted but excluded from the average
                func.avg(case((sat, percentage), else_=None)),
            )
            .join(
                Exam,
                and_(
                    StudentExamScore.exam_id == Exam.id,
                    StudentExamScore.academic_year_recorded == Exam.academic_year,
                ),
            )
            .group_by(Exam.academic_year)
        )
    ).all()
    scores = {row[0]: (row[1], row[2]) for row in score_rows}

    out: List[AcademicYearStatistics] = []
    for index, ay in enumerate(years):
        previous = years[index + 1] if index + 1 < len(years) else None
        student_count = student_counts.get(ay.year_name, 0)
        exam_count = exam_counts.get(ay.year_name, 0)
        score_count, average = scores.get(ay.year_name, (0, None))
        out.append(
            AcademicYearStatistics(
                year_name=ay.year_name,
                is_current=ay.is_current,
                student_count=student_count,
                exam_count=exam_count,
                score_count=score_count,
                average_percentage=round(average, 2) if average is not None else None,
                student_change_percent=_change_percent(
                    student_count, student_counts.get(previous.year_name) if previous else None
                ),
                exam_change_percent=_change_percent(
                    exam_count, exam_counts.get(previous.year_name) if previous else None
                ),
            )
        )
    return out
