from enum import Enum


class UserRole(str, Enum):
    SUPERUSER = "superuser"
    ADMIN = "admin"
    MANAGER = "manager"
    VIEWER = "viewer"


# Roles that bypass per-module permission checks
ADMIN_ROLES = (UserRole.SUPERUSER.value, UserRole.ADMIN.value)


class RecordStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SYSTEM = "system"
    LOGIN = "login"
    LOGOUT = "logout"
    VIEW = "view"
    RESTORE = "restore"
    FACTORY_RESET = "factory_reset"


class EmailProvider(str, Enum):
    SMTP = "smtp"
    RESEND = "resend"


class ExamGrade(str, Enum):
    EXCEEDING = "EE"
    MEETING = "ME"
    APPROACHING = "AE"
    BELOW = "BE"


GRADE_DESCRIPTIONS = {
    ExamGrade.EXCEEDING: "Exceeding Expectation",
    ExamGrade.MEETING: "Meeting Expectation",
    ExamGrade.APPROACHING: "Approaching Expectation",
    ExamGrade.BELOW: "Below Expectation",
}


class SponsorRemovalReason(str, Enum):
    SPONSOR_FINANCIAL_ISSUES = "Sponsor financial issues"
    STUDENT_GRADUATED = "Student graduated"
    STUDENT_LEFT_SCHOOL = "Student left school"
    STUDENT_TRANSFERRED = "Student transferred to another sponsor"
    SPONSOR_NOT_ACTIVE = "Sponsor not active"
    ADMINISTRATIVE_CHANGE = "Administrative change"
    SPONSOR_REQUESTED_CHANGE = "Sponsor requested change"
    SPONSOR_DECEASED = "Sponsor deceased"
    PROGRAM_ENDED = "Program ended"
    OTHER = "Other"


# Keys of Role.permissions; each maps to {"create", "read", "update", "delete"} flags
PERMISSION_MODULES = (
    "students",
    "sponsors",
    "exams",
    "academic_years",
    "dashboard",
)
PERMISSION_ACTIONS = ("create", "read", "update", "delete")
