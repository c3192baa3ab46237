from typing import List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.api.v1.audit_logs.schemas import AuditLogResponse
from sponsorship_admin.api.v1.exams.service import AUTHORITATIVE_SCORE
from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.models import AuditLog, Exam, Sponsor, Student, StudentExamScore

from .schemas import DashboardCounts, DashboardResponse, ExamPerformance, RecentSponsorship

RECENT_LIMIT = 5
ACTIVITY_LIMIT = 10


async def _counts(db: AsyncSession, year: Optional[str]) -> DashboardCounts:
    current = Student.is_current_record.is_(True)
    students = await db.execute(
        select(
            func.count(),
            func.count(case((Student.status == "active", 1))),
            func.count(case((Student.sponsor_id.is_(None), 1))),
        ).where(current)
    )
    total_students, active_students, unassigned = students.one()
    sponsors = await db.execute(select(func.count(), func.count(case((Sponsor.status == "active", 1)))))
    total_sponsors, active_sponsors = sponsors.one()
    exam_stmt = select(func.count()).select_from(Exam)
    if year:
        exam_stmt = exam_stmt.where(Exam.academic_year == year)
    return DashboardCounts(
        students=total_students,
        active_students=active_students,
        sponsors=total_sponsors,
        active_sponsors=active_sponsors,
        exams=await db.scalar(exam_stmt) or 0,
        unassigned_students=unassigned,
    )


async def _recent_sponsorships(db: AsyncSession) -> List[RecentSponsorship]:
    result = await db.execute(
        select(Student, Sponsor)
        .join(Sponsor, Sponsor.id == Student.sponsor_id)
        .where(Student.is_current_record.is_(True), Student.sponsored_since.isnot(None))
        .order_by(Student.sponsored_since.desc())
        .limit(RECENT_LIMIT)
    )
    return [
        RecentSponsorship(
            student_id=student.entity_id,
            student_name=student.name,
            sponsor_id=sponsor.id,
            sponsor_name=f"{sponsor.first_name} {sponsor.last_name}",
            sponsored_since=student.sponsored_since,
        )
        for student, sponsor in result.all()
    ]


async def _exam_performance(db: AsyncSession, year: Optional[str]) -> List[ExamPerformance]:
    if not year:
        return []
    sat = StudentExamScore.did_not_sit.is_(False) & StudentExamScore.score.isnot(None)
    percentage = StudentExamScore.score * 100.0 / Exam.max_score
    result = await db.execute(
        select(
            Exam,
            func.count(StudentExamScore.id),
            func.avg(case((sat, percentage), else_=None)),
            func.count(case((sat, 1))),
            func.count(case((sat & (StudentExamScore.score >= Exam.passing_score), 1))),
        )
        .outerjoin(StudentExamScore, AUTHORITATIVE_SCORE)
        .where(Exam.academic_year == year)
        .group_by(Exam.id)
        .order_by(Exam.exam_date.desc(), Exam.name)
    )
    return [
        ExamPerformance(
            exam_id=exam.id,
            name=exam.name,
            term=exam.term,
            exam_date=exam.exam_date,
            students_taken=taken,
            average_percentage=round(avg, 2) if avg is not None else None,
            pass_rate=round(passed / sat_count * 100, 2) if sat_count else None,
        )
        for exam, taken, avg, sat_count, passed in result.all()
    ]


async def get_dashboard(db: AsyncSession, authority: AcademicYearAuthority) -> DashboardResponse:
    year = await authority.current_year_name()
    activity = await db.execute(select(AuditLog).order_by(AuditLog.created_at.desc()).limit(ACTIVITY_LIMIT))
    return DashboardResponse(
        academic_year=year,
        counts=await _counts(db, year),
        recent_sponsorships=await _recent_sponsorships(db),
        recent_activity=[AuditLogResponse.model_validate(a) for a in activity.scalars().all()],
        exam_performance=await _exam_performance(db, year),
    )
