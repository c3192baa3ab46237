from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.api.v1.exams.schemas import StudentExamResult
from sponsorship_admin.api.v1.exams.service import get_student_exam_results
from sponsorship_admin.auth.dependencies import get_current_user
from sponsorship_admin.auth.rbac import check_permission
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.academic_years import AcademicYearAuthority, get_academic_year_authority
from sponsorship_admin.core.audit import log_create, log_delete, log_update
from sponsorship_admin.core.exceptions import ServiceError
from sponsorship_admin.core.models import StudentLetter, StudentPhoto, TimelineEvent
from sponsorship_admin.core.spreadsheets import XLSX_MEDIA_TYPE
from sponsorship_admin.db.session import get_db

from .schemas import (
    LetterCreate,
    LetterResponse,
    LetterUpdate,
    PhotoCreate,
    PhotoResponse,
    PhotoUpdate,
    RelativeCreate,
    RelativeResponse,
    RelativeUpdate,
    StudentCreate,
    StudentImportResponse,
    StudentResponse,
    StudentUpdate,
    TimelineEventCreate,
    TimelineEventResponse,
    TimelineEventUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.get(
    "",
    response_model=List[StudentResponse],
    dependencies=[Depends(check_permission("students", "read"))],
)
async def list_students(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|inactive)$"),
    sponsor_id: Optional[UUID] = Query(None),
    unassigned: bool = Query(False, description="Only students without a sponsor"),
    search: Optional[str] = Query(None, description="Name or admission number"),
    academic_year: Optional[str] = Query(None, description="Records stored for this year instead of the current records"),
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[StudentResponse]:
    try:
        return await service.list_students(
            db,
            authority,
            status=status_filter,
            sponsor_id=sponsor_id,
            unassigned=unassigned,
            search=search,
            academic_year=academic_year,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("students", "create"))],
)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentResponse:
    try:
        student = await service.create_student(db, authority, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_create(
        db, "student", student.id, f"Created student {student.name} ({student.admission_number})", user=current_user
    )
    return student


@router.get(
    "/template",
    dependencies=[Depends(check_permission("students", "create"))],
)
async def download_import_template() -> Response:
    """Excel template for bulk student import."""
    return Response(
        content=service.build_import_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="students_import_template.xlsx"'},
    )


@router.post(
    "/import",
    response_model=StudentImportResponse,
    dependencies=[Depends(check_permission("students", "create"))],
)
async def import_students(
    file: UploadFile = File(..., description="Excel file (.xlsx) with admission_number and name columns"),
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentImportResponse:
    """Bulk create students in the current academic year. Existing admission numbers are skipped."""
    try:
        result = await service.import_students(db, authority, file, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if result.created:
        await log_create(db, "student", "import", f"Imported {result.created} students", user=current_user)
    return result


@router.get(
    "/{student_id}",
    response_model=StudentResponse,
    dependencies=[Depends(check_permission("students", "read"))],
)
async def get_student(
    student_id: str,
    academic_year: Optional[str] = Query(None, description="Year being viewed"),
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> StudentResponse:
    """By id or slug. Carries a warning when the record shown belongs to another year than the one viewed."""
    try:
        return await service.get_student(db, authority, student_id, academic_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{student_id}",
    response_model=StudentResponse,
    dependencies=[Depends(check_permission("students", "update"))],
)
async def update_student(
    student_id: UUID,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentResponse:
    try:
        student = await service.update_student(db, authority, student_id, payload, updated_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(
        db,
        "student",
        student_id,
        f"Updated student {student.name} ({student.academic_year_recorded})",
        user=current_user,
    )
    return student


@router.delete(
    "/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("students", "delete"))],
)
async def delete_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    try:
        name = await service.delete_student(db, authority, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "student", student_id, f"Deleted student {name}", user=current_user)


@router.get(
    "/{student_id}/history",
    response_model=List[StudentResponse],
    dependencies=[Depends(check_permission("students", "read"))],
)
async def get_student_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[StudentResponse]:
    """Every academic-year record of the student, newest first."""
    try:
        return await service.get_student_history(db, authority, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{student_id}/exam-results",
    response_model=List[StudentExamResult],
    dependencies=[Depends(check_permission("students", "read"))],
)
async def get_exam_results(
    student_id: UUID,
    academic_year: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[StudentExamResult]:
    try:
        return await get_student_exam_results(db, authority, student_id, academic_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# Relatives


@router.get(
    "/{student_id}/relatives",
    response_model=List[RelativeResponse],
    dependencies=[Depends(check_permission("students", "read"))],
)
async def list_relatives(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
) -> List[RelativeResponse]:
    try:
        return await service.list_relatives(db, authority, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{student_id}/relatives",
    response_model=RelativeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("students", "update"))],
)
async def add_relative(
    student_id: UUID,
    payload: RelativeCreate,
    db: AsyncSession = Depends(get_db),
    authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    current_user: CurrentUser = Depends(get_current_user),
) -> RelativeResponse:
    try:
        relative = await service.add_relative(db, authority, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_create(db, "student_relative", relative.id, f"Added relative {relative.name} to student {student_id}", user=current_user)
    return relative


@router.put(
    "/{student_id}/relatives/{relative_id}",
    response_model=RelativeResponse,
    dependencies=[Depends(check_permission("students", "update"))],
)
async def update_relative(
    student_id: UUID,
    relative_id: UUID,
    payload: RelativeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RelativeResponse:
    try:
        relative = await service.update_relative(db, student_id, relative_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(db, "student_relative", relative_id, f"Updated relative {relative.name}", user=current_user)
    return relative


@router.delete(
    "/{student_id}/relatives/{relative_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("students", "update"))],
)
async def delete_relative(
    student_id: UUID,
    relative_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    try:
        await service.delete_relative(db, student_id, relative_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_delete(db, "student_relative", relative_id, f"Removed relative from student {student_id}", user=current_user)


# Timeline events, letters and photos


def _add_record_routes(path: str, model, entity: str, create_schema, update_schema, response_schema) -> None:
    """Register list/create/update/delete routes for one kind of year-scoped student record."""

    @router.get(
        f"/{{student_id}}/{path}",
        response_model=List[response_schema],
        dependencies=[Depends(check_permission("students", "read"))],
        name=f"list_{path}",
    )
    async def list_items(
        student_id: UUID,
        academic_year: Optional[str] = Query(None, description="Records stored for this year instead of the current records"),
        db: AsyncSession = Depends(get_db),
        authority: AcademicYearAuthority = Depends(get_academic_year_authority),
    ):
        try:
            return await service.list_records(db, authority, model, student_id, academic_year)
        except ServiceError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)

    @router.post(
        f"/{{student_id}}/{path}",
        response_model=response_schema,
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(check_permission("students", "update"))],
        name=f"create_{path}",
    )
    async def create_item(
        student_id: UUID,
        payload: create_schema,
        db: AsyncSession = Depends(get_db),
        authority: AcademicYearAuthority = Depends(get_academic_year_authority),
        current_user: CurrentUser = Depends(get_current_user),
    ):
        try:
            item = await service.create_record(db, authority, model, student_id, payload, created_by=current_user.id)
        except ServiceError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        await log_create(db, entity, item.id, f"Added {entity} to student {student_id} ({item.academic_year_recorded})", user=current_user)
        return item

    @router.put(
        f"/{{student_id}}/{path}/{{record_id}}",
        response_model=response_schema,
        dependencies=[Depends(check_permission("students", "update"))],
        name=f"update_{path}",
    )
    async def update_item(
        student_id: UUID,
        record_id: UUID,
        payload: update_schema,
        db: AsyncSession = Depends(get_db),
        authority: AcademicYearAuthority = Depends(get_academic_year_authority),
        current_user: CurrentUser = Depends(get_current_user),
    ):
        try:
            item = await service.update_record(
                db, authority, model, student_id, record_id, payload, updated_by=current_user.id
            )
        except ServiceError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        await log_update(db, entity, record_id, f"Updated {entity} ({item.academic_year_recorded})", user=current_user)
        return item

    @router.delete(
        f"/{{student_id}}/{path}/{{record_id}}",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(check_permission("students", "update"))],
        name=f"delete_{path}",
    )
    async def delete_item(
        student_id: UUID,
        record_id: UUID,
        db: AsyncSession = Depends(get_db),
        authority: AcademicYearAuthority = Depends(get_academic_year_authority),
        current_user: CurrentUser = Depends(get_current_user),
    ) -> None:
        try:
            await service.delete_record(db, authority, model, student_id, record_id)
        except ServiceError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        await log_delete(db, entity, record_id, f"Deleted {entity} of student {student_id}", user=current_user)


_add_record_routes("timeline", TimelineEvent, "timeline_event", TimelineEventCreate, TimelineEventUpdate, TimelineEventResponse)
_add_record_routes("letters", StudentLetter, "letter", LetterCreate, LetterUpdate, LetterResponse)
_add_record_routes("photos", StudentPhoto, "photo", PhotoCreate, PhotoUpdate, PhotoResponse)
