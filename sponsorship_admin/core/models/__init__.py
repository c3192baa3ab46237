from sponsorship_admin.core.models.academic_year import AcademicYear
from sponsorship_admin.core.models.student import Student, StudentRelative
from sponsorship_admin.core.models.student_records import StudentLetter, StudentPhoto, TimelineEvent
from sponsorship_admin.core.models.sponsor import Sponsor, SponsorRelative, SponsorTimelineEvent
from sponsorship_admin.core.models.exam import Exam, StudentExamScore
from sponsorship_admin.core.models.audit_log import AuditLog
from sponsorship_admin.core.models.settings import AppSettings, EmailSettings

__all__ = [
    "AcademicYear",
    "AppSettings",
    "AuditLog",
    "EmailSettings",
    "Exam",
    "Sponsor",
    "SponsorRelative",
    "SponsorTimelineEvent",
    "Student",
    "StudentExamScore",
    "StudentLetter",
    "StudentPhoto",
    "StudentRelative",
    "TimelineEvent",
]

# Tables carrying per-academic-year snapshots
VERSIONED_MODELS = (Student, StudentExamScore, StudentLetter, StudentPhoto, TimelineEvent)
