from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.dependencies import get_current_user
from sponsorship_admin.auth.rbac import check_permission
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.academic_years import AcademicYearAuthority, get_academic_year_authority
from sponsorship_admin.core.audit import log_create, log_delete, log_update
from sponsorship_admin.core.exceptions import ServiceError
from sponsorship_admin.core.spreadsheets import XLSX_MEDIA_TYPE
from sponsorship_admin.db.session import get_db

from .schemas import (
    ExamCreate,
    ExamDetailResponse,
    ExamResponse,
    ExamUpdate,
    ScoreCreate,
    ScoreImportResponse,
    ScoreResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/exams", tags=["exams"])


@router.get(
    "",
    response_model=List[ExamResponse],
    dependencies=[Depends(check_permission("exams", "read"))],
)
async def list_exams(
    academic_year: Optional[str] = Query(None, description="Defaults to the current academic year"),
    term: Optional[str] = Query(None),
    all_years: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[ExamResponse]:
    try:
        return await service.list_exams(db, authority, academic_year=academic_year, term=term, all_years=all_years)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "",
    response_model=ExamResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("exams", "create"))],
)
async def create_exam(
    payload: ExamCreate,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> ExamResponse:
    try:
        exam = await service.create_exam(db, authority, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_create(db, "exam", exam.id, f"Created exam {exam.name} ({exam.term}, {exam.academic_year})", user=current_user)
    return exam


@router.get(
    "/score-template",
    dependencies=[Depends(check_permission("exams", "read"))],
)
async def download_score_template() -> Response:
    return Response(
        content=service.build_score_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="exam_scores_template.xlsx"'},
    )


@router.get(
    "/{exam_id}",
    response_model=ExamDetailResponse,
    dependencies=[Depends(check_permission("exams", "read"))],
)
async def get_exam(
    exam_id: UUID,
    academic_year: Optional[str] = Query(None, description="Year being viewed, for the cross-year warning"),
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> ExamDetailResponse:
    """Exam with its scores and statistics."""
    try:
        return await service.get_exam_detail(db, authority, exam_id, academic_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{exam_id}",
    response_model=ExamResponse,
    dependencies=[Depends(check_permission("exams", "update"))],
)
async def update_exam(
    exam_id: UUID,
    payload: ExamUpdate,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> ExamResponse:
    try:
        exam = await service.update_exam(db, authority, exam_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(db, "exam", exam_id, f"Updated exam {exam.name}", user=current_user)
    return exam


@router.delete(
    "/{exam_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("exams", "delete"))],
)
async def delete_exam(
    exam_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    try:
        name = await service.delete_exam(db, exam_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "exam", exam_id, f"Deleted exam {name} and its scores", user=current_user)


@router.post(
    "/{exam_id}/scores",
    response_model=ScoreResponse,
    dependencies=[Depends(check_permission("exams", "update"))],
)
async def record_score(
    exam_id: UUID,
    payload: ScoreCreate,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> ScoreResponse:
    """Create or overwrite one student's score."""
    try:
        score = await service.record_score(db, authority, exam_id, payload, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    detail = "did not sit" if score.did_not_sit else f"score {score.score:g}"
    await log_update(db, "exam_score", score.id, f"Recorded {detail} for {score.student_name} in exam {exam_id}", user=current_user)
    return score


@router.delete(
    "/{exam_id}/scores/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("exams", "update"))],
)
async def delete_score(
    exam_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    try:
        await service.delete_score(db, authority, exam_id, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "exam_score", exam_id, f"Deleted score of student {student_id}", user=current_user)


@router.post(
    "/{exam_id}/scores/import",
    response_model=ScoreImportResponse,
    dependencies=[Depends(check_permission("exams", "update"))],
)
async def import_scores(
    exam_id: UUID,
    file: UploadFile = File(..., description="Excel file (.xlsx) with admission_number or student_id, score, did_not_sit"),
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> ScoreImportResponse:
    try:
        result = await service.import_scores(db, authority, exam_id, file, user_id=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if result.recorded:
        await log_update(db, "exam", exam_id, f"Imported {result.recorded} scores", user=current_user)
    return result
