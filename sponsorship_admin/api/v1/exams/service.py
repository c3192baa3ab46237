from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.cross_year import get_cross_year_warning
from sponsorship_admin.core.exceptions import NotFoundError, ValidationFailedError, translate_db_error
from sponsorship_admin.core.grades import calculate_percentage, grade_description, grade_for_percentage
from sponsorship_admin.core.models import Exam, Student, StudentExamScore
from sponsorship_admin.core.spreadsheets import build_xlsx, cell_bool, cell_float, cell_str, read_xlsx_rows
from sponsorship_admin.core.versioning import VersionedRecordWriter

from .schemas import (
    ExamCreate,
    ExamDetailResponse,
    ExamResponse,
    ExamStatistics,
    ExamUpdate,
    ScoreCreate,
    ScoreImportResponse,
    ScoreImportRowError,
    ScoreResponse,
    StudentExamResult,
)

SCORE_IMPORT_HEADERS = ("admission_number", "score", "did_not_sit")

# A score row counts for an exam only when it was recorded in the exam's own year
AUTHORITATIVE_SCORE = and_(
    StudentExamScore.exam_id == Exam.id,
    StudentExamScore.academic_year_recorded == Exam.academic_year,
)


def score_writer(db: AsyncSession, authority: AcademicYearAuthority) -> VersionedRecordWriter:
    # A score belongs to its exam's academic year only
    return VersionedRecordWriter(db, StudentExamScore, authority, label="Exam score", roll_forward=False)


def _to_response(exam: Exam, selected_year: Optional[str] = None, with_warning: bool = False) -> ExamResponse:
    response = ExamResponse.model_validate(exam)
    if with_warning:
        response.warning = get_cross_year_warning(exam.academic_year, selected_year)
    return response


def _grade_fields(score: Optional[float], did_not_sit: bool, exam: Exam) -> Dict[str, Any]:
    percentage = calculate_percentage(score, exam.max_score, did_not_sit)
    grade = grade_for_percentage(percentage)
    return {
        "percentage": percentage,
        "grade": grade.value if grade else None,
        "grade_description": grade_description(grade),
        "passed": None if did_not_sit or score is None else score >= exam.passing_score,
    }


def _score_response(row: StudentExamScore, exam: Exam, student: Optional[Student] = None) -> ScoreResponse:
    return ScoreResponse(
        id=row.entity_id,
        student_id=row.student_id,
        student_name=student.name if student else None,
        admission_number=student.admission_number if student else None,
        exam_id=row.exam_id,
        score=row.score,
        did_not_sit=row.did_not_sit,
        academic_year_recorded=row.academic_year_recorded,
        updated_at=row.updated_at,
        **_grade_fields(row.score, row.did_not_sit, exam),
    )


def _statistics(scores: List[ScoreResponse], exam: Exam) -> ExamStatistics:
    sat = [s for s in scores if not s.did_not_sit and s.percentage is not None]
    percentages = [s.percentage for s in sat]
    distribution: Dict[str, int] = {}
    for s in sat:
        distribution[s.grade] = distribution.get(s.grade, 0) + 1
    pass_count = sum(1 for s in sat if s.passed)
    return ExamStatistics(
        students_taken=len(scores),
        did_not_sit=len(scores) - len(sat),
        average_percentage=round(sum(percentages) / len(percentages), 2) if percentages else None,
        highest_percentage=max(percentages) if percentages else None,
        lowest_percentage=min(percentages) if percentages else None,
        pass_count=pass_count,
        pass_rate=round(pass_count / len(sat) * 100, 2) if sat else None,
        grade_distribution=distribution,
    )


async def get_exam_or_404(db: AsyncSession, exam_id: UUID) -> Exam:
    exam = await db.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam not found")
    return exam


async def list_exams(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    academic_year: Optional[str] = None,
    term: Optional[str] = None,
    all_years: bool = False,
) -> List[ExamResponse]:
    """Exams of the selected year (default: the current year), newest first."""
    stmt = select(Exam)
    if not all_years:
        year = await authority.resolve_view_year(academic_year)
        if year is None:
            return []
        stmt = stmt.where(Exam.academic_year == year)
    if term:
        stmt = stmt.where(Exam.term == term)
    result = await db.execute(stmt.order_by(Exam.exam_date.desc(), Exam.name))
    return [_to_response(e) for e in result.scalars().all()]


async def _exam_scores(db: AsyncSession, exam: Exam) -> List[ScoreResponse]:
    # Student details come from the student's row for the exam's year, else the current row
    result = await db.execute(
        select(StudentExamScore).where(
            StudentExamScore.exam_id == exam.id,
            StudentExamScore.academic_year_recorded == exam.academic_year,
        )
    )
    rows = list(result.scalars().all())
    if not rows:
        return []
    student_ids = {r.student_id for r in rows}
    students: Dict[UUID, Student] = {}
    student_rows = await db.execute(
        select(Student).where(
            Student.entity_id.in_(student_ids),
            (Student.academic_year_recorded == exam.academic_year) | Student.is_current_record.is_(True),
        )
    )
    for s in student_rows.scalars().all():
        if s.entity_id not in students or s.academic_year_recorded == exam.academic_year:
            students[s.entity_id] = s
    responses = [_score_response(r, exam, students.get(r.student_id)) for r in rows]
    return sorted(responses, key=lambda s: (s.student_name or "").lower())


async def get_exam_detail(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    exam_id: UUID,
    academic_year: Optional[str] = None,
) -> ExamDetailResponse:
    exam = await get_exam_or_404(db, exam_id)
    selected_year = await authority.resolve_view_year(academic_year)
    scores = await _exam_scores(db, exam)
    return ExamDetailResponse(
        exam=_to_response(exam, selected_year, with_warning=True),
        statistics=_statistics(scores, exam),
        scores=scores,
    )


async def create_exam(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    payload: ExamCreate,
    created_by: Optional[UUID] = None,
) -> ExamResponse:
    if payload.academic_year:
        year = await authority.resolve_view_year(payload.academic_year)
    else:
        year = await authority.require_current_year_name()
    exam = Exam(
        name=payload.name.strip(),
        term=payload.term.strip(),
        academic_year=year,
        exam_date=payload.exam_date,
        max_score=payload.max_score,
        passing_score=payload.passing_score,
        description=payload.description,
        created_by=created_by,
    )
    db.add(exam)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Exam could not be created") from e
    await db.refresh(exam)
    return _to_response(exam)


async def update_exam(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    exam_id: UUID,
    payload: ExamUpdate,
) -> ExamResponse:
    exam = await get_exam_or_404(db, exam_id)
    data = payload.model_dump(exclude_unset=True)
    for key in ("name", "term", "academic_year", "max_score", "passing_score"):
        if data.get(key, "") is None:
            data.pop(key)

    max_score = data.get("max_score", exam.max_score)
    passing_score = data.get("passing_score", exam.passing_score)
    if passing_score > max_score:
        raise ValidationFailedError("passing_score cannot exceed max_score")

    new_year = data.get("academic_year")
    if new_year and new_year != exam.academic_year:
        await authority.resolve_view_year(new_year)
        has_scores = await db.scalar(
            select(func.count()).select_from(StudentExamScore).where(StudentExamScore.exam_id == exam.id)
        )
        if has_scores:
            raise ValidationFailedError("Cannot move an exam with recorded scores to another academic year")

    if "max_score" in data and data["max_score"] < exam.max_score:
        highest = await db.scalar(
            select(func.max(StudentExamScore.score)).where(
                StudentExamScore.exam_id == exam.id,
                StudentExamScore.academic_year_recorded == exam.academic_year,
            )
        )
        if highest is not None and highest > data["max_score"]:
            raise ValidationFailedError(f"max_score cannot be lower than the highest recorded score ({highest})")

    for key, value in data.items():
        setattr(exam, key, value.strip() if key in ("name", "term") else value)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Exam could not be updated") from e
    await db.refresh(exam)
    return _to_response(exam, await authority.current_year_name(), with_warning=True)


async def delete_exam(db: AsyncSession, exam_id: UUID) -> str:
    """Delete the exam and every score recorded for it. Returns the exam's name."""
    exam = await get_exam_or_404(db, exam_id)
    name = exam.name
    try:
        await db.execute(delete(StudentExamScore).where(StudentExamScore.exam_id == exam_id))
        await db.delete(exam)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Exam could not be deleted") from e
    return name


# Scores


async def _score_entity_id(db: AsyncSession, exam_id: UUID, student_id: UUID) -> Optional[UUID]:
    result = await db.execute(
        select(StudentExamScore.entity_id)
        .where(StudentExamScore.exam_id == exam_id, StudentExamScore.student_id == student_id)
        .limit(1)
    )
    return result.scalars().first()


def _validated_score(exam: Exam, score: Optional[float], did_not_sit: bool) -> Optional[float]:
    if did_not_sit:
        return None
    if score is None:
        raise ValidationFailedError("Score is required unless the student did not sit the exam")
    if score < 0 or score > exam.max_score:
        raise ValidationFailedError(f"Score must be between 0 and {exam.max_score:g}")
    return score


async def _write_score(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    exam: Exam,
    student_id: UUID,
    score: Optional[float],
    did_not_sit: bool,
    user_id: Optional[UUID],
    commit: bool = True,
) -> StudentExamScore:
    writer = score_writer(db, authority)
    entity_id = await _score_entity_id(db, exam.id, student_id)
    if entity_id is None:
        return await writer.create(
            {
                "student_id": student_id,
                "exam_id": exam.id,
                "score": score,
                "did_not_sit": did_not_sit,
                "created_by": user_id,
            },
            academic_year=exam.academic_year,
            commit=commit,
        )
    return await writer.write_current_year_value(
        entity_id,
        exam.academic_year,
        {"score": score, "did_not_sit": did_not_sit, "updated_by": user_id},
        commit=commit,
    )


async def record_score(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    exam_id: UUID,
    payload: ScoreCreate,
    user_id: Optional[UUID] = None,
) -> ScoreResponse:
    """Create or overwrite the student's score, recorded in the exam's academic year."""
    exam = await get_exam_or_404(db, exam_id)
    result = await db.execute(
        select(Student).where(Student.entity_id == payload.student_id, Student.is_current_record.is_(True))
    )
    student = result.scalar_one_or_none()
    if student is None:
        raise NotFoundError("Student not found")
    score = _validated_score(exam, payload.score, payload.did_not_sit)
    row = await _write_score(db, authority, exam, payload.student_id, score, payload.did_not_sit, user_id)
    return _score_response(row, exam, student)


async def delete_score(db: AsyncSession, authority: AcademicYearAuthority, exam_id: UUID, student_id: UUID) -> None:
    await get_exam_or_404(db, exam_id)
    entity_id = await _score_entity_id(db, exam_id, student_id)
    if entity_id is None:
        raise NotFoundError("Exam score not found")
    await score_writer(db, authority).delete_entity(entity_id)


def build_score_template() -> bytes:
    return build_xlsx("Scores", SCORE_IMPORT_HEADERS, [("ADM-001", 72, "no")])


async def import_scores(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    exam_id: UUID,
    file: UploadFile,
    user_id: Optional[UUID] = None,
) -> ScoreImportResponse:
    """
    Record one score per row. Students are matched by admission_number (current
    record) or by student_id. Rows that cannot be matched or parsed are skipped.
    """
    exam = await get_exam_or_404(db, exam_id)
    rows = await read_xlsx_rows(file, required=("score",), any_of=("admission_number", "student_id"))
    if not rows:
        raise ValidationFailedError("Excel file has no data rows")

    result = await db.execute(
        select(Student.entity_id, Student.admission_number).where(Student.is_current_record.is_(True))
    )
    by_admission: Dict[str, UUID] = {}
    known_ids = set()
    for entity_id, admission_number in result.all():
        by_admission[admission_number] = entity_id
        known_ids.add(entity_id)

    recorded = 0
    skipped: List[ScoreImportRowError] = []
    seen = set()
    for row_num, row in rows:
        ref = cell_str(row, "admission_number") or cell_str(row, "student_id")
        student_id = by_admission.get(cell_str(row, "admission_number"))
        if student_id is None and cell_str(row, "student_id"):
            try:
                candidate = UUID(cell_str(row, "student_id"))
            except ValueError:
                candidate = None
            student_id = candidate if candidate in known_ids else None
        if student_id is None:
            skipped.append(ScoreImportRowError(row=row_num, student=ref or None, reason="Student not found"))
            continue
        if student_id in seen:
            skipped.append(ScoreImportRowError(row=row_num, student=ref, reason="Duplicate row for this student"))
            continue
        did_not_sit = cell_bool(row, "did_not_sit")
        try:
            score = _validated_score(exam, cell_float(row, "score"), did_not_sit)
        except (ValueError, ValidationFailedError) as e:
            skipped.append(ScoreImportRowError(row=row_num, student=ref, reason=str(e)))
            continue
        await _write_score(db, authority, exam, student_id, score, did_not_sit, user_id, commit=False)
        seen.add(student_id)
        recorded += 1

    if recorded:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise translate_db_error(e, "Scores were changed concurrently; try again") from e
    return ScoreImportResponse(recorded=recorded, skipped=skipped)


async def get_student_exam_results(
    db: AsyncSession,
    authority: AcademicYearAuthority,
    student_id: UUID,
    academic_year: Optional[str] = None,
) -> List[StudentExamResult]:
    """The student's authoritative score for every exam, optionally limited to one year."""
    stmt = (
        select(StudentExamScore, Exam)
        .join(Exam, AUTHORITATIVE_SCORE)
        .where(StudentExamScore.student_id == student_id)
    )
    if academic_year:
        await authority.resolve_view_year(academic_year)
        stmt = stmt.where(Exam.academic_year == academic_year)
    result = await db.execute(stmt.order_by(Exam.academic_year.desc(), Exam.exam_date.desc(), Exam.name))
    return [
        StudentExamResult(
            exam_id=exam.id,
            exam_name=exam.name,
            term=exam.term,
            academic_year=exam.academic_year,
            exam_date=exam.exam_date,
            max_score=exam.max_score,
            passing_score=exam.passing_score,
            score=row.score,
            did_not_sit=row.did_not_sit,
            **_grade_fields(row.score, row.did_not_sit, exam),
        )
        for row, exam in result.all()
    ]
