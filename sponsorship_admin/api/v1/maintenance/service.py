"""
Whole-database operations: factory reset, data wipes, JSON backup and restore.

Backups hold one list of rows per table, keyed by table name. Restore replaces
everything except the calling user inside a single transaction, so a failed
restore leaves the previous data in place.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import Table, delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.models import RefreshToken, Role, User
from sponsorship_admin.core.academic_years import AcademicYearAuthority, YearChanged
from sponsorship_admin.core.app_logger import get_logger
from sponsorship_admin.core.enums import AuditAction
from sponsorship_admin.core.exceptions import ValidationFailedError, translate_db_error
from sponsorship_admin.core.models import (
    AcademicYear,
    AuditLog,
    Exam,
    Sponsor,
    SponsorRelative,
    SponsorTimelineEvent,
    Student,
    StudentExamScore,
    StudentLetter,
    StudentPhoto,
    StudentRelative,
    TimelineEvent,
)
from sponsorship_admin.core.models.settings import APP_SETTINGS_ID, DEFAULT_APP_SETTINGS, AppSettings, EmailSettings
from sponsorship_admin.db.session import Base

from .schemas import BackupDocument, MaintenanceResult, WipeResult

logger = get_logger("maintenance")

BACKUP_FORMAT_VERSION = 1

# Parents before children: the order restore inserts in
TABLE_ORDER = (
    "users",
    "user_roles",
    "academic_years",
    "app_settings",
    "email_settings",
    "sponsors",
    "students",
    "student_relatives",
    "timeline_events",
    "student_letters",
    "student_photos",
    "exams",
    "student_exam_scores",
    "sponsor_relatives",
    "sponsor_timeline_events",
    "audit_logs",
)

_OPERATIONAL_MODELS = (
    AuditLog,
    StudentExamScore,
    Exam,
    StudentPhoto,
    StudentLetter,
    TimelineEvent,
    StudentRelative,
    SponsorTimelineEvent,
    SponsorRelative,
    Student,
    Sponsor,
    AcademicYear,
    EmailSettings,
)

# Year-scoped records and exams; students, sponsors and years are kept
ACADEMIC_TABLES = ("student_exam_scores", "exams", "timeline_events", "student_photos", "student_letters")

# Tables the selective wipe may clear, in delete order (scores before their exams)
WIPEABLE_TABLES = (
    "audit_logs",
    "student_photos",
    "student_letters",
    "timeline_events",
    "student_exam_scores",
    "exams",
)


def _table(name: str) -> Table:
    return Base.metadata.tables[name]


def _default_year(preserve_user_id: UUID) -> AcademicYear:
    year = date.today().year
    return AcademicYear(
        year_name=str(year),
        start_date=date(year, 1, 1),
        end_date=date(year, 12, 31),
        is_current=True,
        created_by=preserve_user_id,
    )


async def _wipe(db: AsyncSession, preserve_user_id: UUID) -> None:
    """Delete everything except the preserved user and the built-in roles; reset branding."""
    for model in _OPERATIONAL_MODELS:
        await db.execute(delete(model))
    await db.execute(delete(Role).where(Role.is_system.is_(False)))
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id != preserve_user_id))
    await db.execute(delete(User).where(User.id != preserve_user_id))

    app_settings = await db.get(AppSettings, APP_SETTINGS_ID)
    if app_settings is None:
        app_settings = AppSettings(id=APP_SETTINGS_ID)
        db.add(app_settings)
    for key, value in DEFAULT_APP_SETTINGS.items():
        setattr(app_settings, key, value)
    app_settings.updated_by = preserve_user_id
    await db.flush()


async def _publish_year(authority: AcademicYearAuthority, previous: Optional[str]) -> None:
    current = await authority.get_current_year(refresh=True)
    if current is not None and current.year_name != previous:
        await authority.notifier.publish(YearChanged(previous=previous, current=current.year_name))


async def factory_reset_all_data(authority: AcademicYearAuthority, preserve_user_id: UUID) -> MaintenanceResult:
    db = authority.db
    previous = await authority.current_year_name()
    preserved = await db.get(User, preserve_user_id)
    username = preserved.email if preserved else None
    try:
        await _wipe(db, preserve_user_id)
        default_year = _default_year(preserve_user_id)
        db.add(default_year)
        db.add(
            AuditLog(
                user_id=preserve_user_id,
                username=username,
                action=AuditAction.FACTORY_RESET.value,
                entity="system",
                entity_id="all",
                details="Complete factory reset performed",
            )
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Factory reset failed: %s", e)
        raise translate_db_error(e, "Factory reset conflicted with a concurrent change") from e

    logger.warning("Factory reset performed by user %s", preserve_user_id)
    await _publish_year(authority, previous)
    return MaintenanceResult(message="Factory reset completed", academic_year=default_year.year_name)


async def _delete_tables(db: AsyncSession, tables: Sequence[str], label: str) -> WipeResult:
    deleted = 0
    try:
        for name in tables:
            result = await db.execute(delete(_table(name)))
            deleted += result.rowcount or 0
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("%s failed: %s", label, e)
        raise translate_db_error(e, f"{label} conflicted with a concurrent change") from e
    logger.warning("%s removed %d rows from %s", label, deleted, ", ".join(tables))
    return WipeResult(message=f"{label} completed", tables=list(tables), rows_deleted=deleted)


async def wipe_academic_data(db: AsyncSession) -> WipeResult:
    """Delete every exam, score, timeline event, letter and photo of every year."""
    return await _delete_tables(db, ACADEMIC_TABLES, "Academic data wipe")


async def wipe_tables(db: AsyncSession, tables: List[str]) -> WipeResult:
    """Clear the chosen WIPEABLE_TABLES. Clearing exams clears their scores as well."""
    selected = set(tables)
    if not selected:
        raise ValidationFailedError("Select at least one data type to wipe")
    unknown = sorted(selected - set(WIPEABLE_TABLES))
    if unknown:
        raise ValidationFailedError(f"Table(s) cannot be wiped: {', '.join(unknown)}")
    if "exams" in selected:
        selected.add("student_exam_scores")
    return await _delete_tables(db, [t for t in WIPEABLE_TABLES if t in selected], "Selective wipe")


def _dump_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


async def backup_all_data(db: AsyncSession) -> BackupDocument:
    """Every table except refresh tokens as JSON-ready rows."""
    data: Dict[str, List[Dict[str, Any]]] = {}
    for name in TABLE_ORDER:
        table = _table(name)
        result = await db.execute(select(table))
        data[name] = [{k: _dump_value(v) for k, v in row.items()} for row in result.mappings().all()]
    logger.info("Backup created with %d rows", sum(len(rows) for rows in data.values()))
    return BackupDocument(version=BACKUP_FORMAT_VERSION, created_at=datetime.utcnow(), data=data)


def _load_value(column, value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value
    if python_type is UUID:
        return UUID(value)
    if python_type is datetime:
        return datetime.fromisoformat(value)
    if python_type is date:
        return date.fromisoformat(value[:10])
    return value


def _user_columns(table: Table) -> List[str]:
    return [c.name for c in table.columns if any(fk.column.table.name == "users" for fk in c.foreign_keys)]


def _load_rows(table: Table, rows: List[Dict[str, Any]], user_map: Dict[UUID, UUID]) -> List[Dict[str, Any]]:
    user_columns = _user_columns(table)
    loaded = []
    for raw in rows:
        row = {c.name: _load_value(c, raw[c.name]) for c in table.columns if c.name in raw}
        for name in user_columns:
            if row.get(name) in user_map:
                row[name] = user_map[row[name]]
        loaded.append(row)
    return loaded


async def restore_all_data(
    authority: AcademicYearAuthority,
    payload: Dict[str, Any],
    preserve_user_id: UUID,
) -> MaintenanceResult:
    """
    Replace all data with a backup. The calling user is kept; a backed-up
    account with the same email is folded into it.
    """
    data = payload.get("data") if isinstance(payload.get("data"), dict) else None
    if data is None:
        raise ValidationFailedError("Invalid backup file format")
    unknown = sorted(set(data) - set(TABLE_ORDER) - {"refresh_tokens"})
    if unknown:
        raise ValidationFailedError(f"Unknown table(s) in backup: {', '.join(unknown)}")

    db = authority.db
    previous = await authority.current_year_name()
    preserved = await db.get(User, preserve_user_id)
    preserved_email = preserved.email.lower()
    restored = 0
    try:
        await _wipe(db, preserve_user_id)
        existing_roles = set((await db.execute(select(Role.name))).scalars().all())

        user_map: Dict[UUID, UUID] = {}
        for raw in data.get("users") or []:
            if str(raw.get("email", "")).lower() == preserved_email and raw.get("id"):
                user_map[UUID(str(raw["id"]))] = preserve_user_id

        for name in TABLE_ORDER:
            table = _table(name)
            rows = _load_rows(table, data.get(name) or [], user_map)
            if name == "users":
                rows = [r for r in rows if r.get("id") not in user_map and r.get("id") != preserve_user_id]
            elif name == "user_roles":
                rows = [r for r in rows if r.get("name") not in existing_roles]
            elif name == "app_settings" and rows:
                await db.execute(delete(AppSettings))
            if rows:
                await db.execute(insert(table), rows)
                restored += len(rows)

        if not data.get("academic_years"):
            db.add(_default_year(preserve_user_id))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Restore failed, previous data kept: %s", e)
        raise translate_db_error(e, "Backup contains conflicting rows") from e
    except (KeyError, TypeError, ValueError) as e:
        await db.rollback()
        raise ValidationFailedError(f"Invalid backup file format: {e}") from e

    logger.warning("Restored %d rows from backup for user %s", restored, preserve_user_id)
    await _publish_year(authority, previous)
    return MaintenanceResult(
        message=f"Restored {restored} rows",
        academic_year=await authority.current_year_name(),
        rows_restored=restored,
    )
