from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.config import settings
from sponsorship_admin.core.exceptions import ValidationFailedError, translate_db_error
from sponsorship_admin.core.mailer import EmailConfig, send_test_email
from sponsorship_admin.core.models.settings import (
    APP_SETTINGS_ID,
    DEFAULT_APP_SETTINGS,
    EMAIL_SETTINGS_ID,
    AppSettings,
    EmailSettings,
)

from .schemas import (
    AppSettingsResponse,
    AppSettingsUpdate,
    EmailSettingsResponse,
    EmailSettingsUpdate,
    TestEmailRequest,
)

SECRET_FIELDS = ("smtp_password", "resend_api_key")


async def get_app_settings(db: AsyncSession) -> AppSettingsResponse:
    """Stored settings, or the defaults when none were saved."""
    row = await db.get(AppSettings, APP_SETTINGS_ID)
    if row is None:
        return AppSettingsResponse(**DEFAULT_APP_SETTINGS)
    return AppSettingsResponse.model_validate(row)


async def update_app_settings(
    db: AsyncSession, payload: AppSettingsUpdate, updated_by: Optional[UUID] = None
) -> AppSettingsResponse:
    row = await db.get(AppSettings, APP_SETTINGS_ID)
    if row is None:
        row = AppSettings(id=APP_SETTINGS_ID, **DEFAULT_APP_SETTINGS)
        db.add(row)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key in ("organization_name", "primary_color", "secondary_color", "theme_mode"):
            continue
        setattr(row, key, value)
    row.updated_by = updated_by
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Settings were changed concurrently; try again") from e
    await db.refresh(row)
    return AppSettingsResponse.model_validate(row)


def _email_response(row: EmailSettings) -> EmailSettingsResponse:
    return EmailSettingsResponse(
        provider=row.provider,
        from_name=row.from_name,
        from_email=row.from_email,
        smtp_host=row.smtp_host,
        smtp_port=row.smtp_port,
        smtp_username=row.smtp_username,
        has_smtp_password=bool(row.smtp_password),
        has_resend_api_key=bool(row.resend_api_key),
        notifications_enabled=row.notifications_enabled,
        notify_new_student=row.notify_new_student,
        notify_new_sponsor=row.notify_new_sponsor,
        notify_sponsorship_change=row.notify_sponsorship_change,
        updated_at=row.updated_at,
    )


async def get_email_settings(db: AsyncSession) -> Optional[EmailSettingsResponse]:
    row = await db.get(EmailSettings, EMAIL_SETTINGS_ID)
    return _email_response(row) if row else None


async def update_email_settings(
    db: AsyncSession, payload: EmailSettingsUpdate, updated_by: Optional[UUID] = None
) -> EmailSettingsResponse:
    row = await db.get(EmailSettings, EMAIL_SETTINGS_ID)
    data = payload.model_dump(exclude_unset=True)
    for key in SECRET_FIELDS:
        if not data.get(key):
            data.pop(key, None)
    if row is None:
        if not data.get("from_name") or not data.get("from_email"):
            raise ValidationFailedError("From name and email are required")
        row = EmailSettings(id=EMAIL_SETTINGS_ID, provider=data.pop("provider", None) or "smtp")
        db.add(row)
    for key, value in data.items():
        if value is None and key in ("provider", "from_name", "from_email"):
            continue
        setattr(row, key, value)
    row.updated_by = updated_by
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_db_error(e, "Email settings were changed concurrently; try again") from e
    await db.refresh(row)
    return _email_response(row)


async def send_settings_test_email(db: AsyncSession, payload: TestEmailRequest) -> str:
    """Send a test message with the given settings, filling gaps from the stored ones. Returns the recipient."""
    stored = await db.get(EmailSettings, EMAIL_SETTINGS_ID)
    values = payload.model_dump()
    if stored is not None:
        for key in values:
            if not values[key]:
                values[key] = getattr(stored, key)
    app = await db.get(AppSettings, APP_SETTINGS_ID)
    organization = app.organization_name if app else settings.organization_name
    config = EmailConfig(**values)
    await send_test_email(config, organization_name=organization)
    return config.from_email
