from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from sponsorship_admin.api.v1.audit_logs.schemas import AuditLogResponse


class DashboardCounts(BaseModel):
    students: int
    active_students: int
    sponsors: int
    active_sponsors: int
    exams: int
    unassigned_students: int


class RecentSponsorship(BaseModel):
    student_id: UUID
    student_name: str
    sponsor_id: UUID
    sponsor_name: str
    sponsored_since: datetime


class ExamPerformance(BaseModel):
    exam_id: UUID
    name: str
    term: str
    exam_date: Optional[date] = None
    students_taken: int
    average_percentage: Optional[float] = None
    pass_rate: Optional[float] = None


class DashboardResponse(BaseModel):
    academic_year: Optional[str] = None
    counts: DashboardCounts
    recent_sponsorships: List[RecentSponsorship]
    recent_activity: List[AuditLogResponse]
    exam_performance: List[ExamPerformance]
