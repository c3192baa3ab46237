from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.dependencies import get_current_user
from sponsorship_admin.auth.rbac import require_admin
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.core.audit import log_system, log_update
from sponsorship_admin.core.exceptions import ServiceError
from sponsorship_admin.db.session import get_db

from .schemas import (
    AppSettingsResponse,
    AppSettingsUpdate,
    EmailSettingsResponse,
    EmailSettingsUpdate,
    TestEmailRequest,
    TestEmailResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


@router.get("/app", response_model=AppSettingsResponse, dependencies=[Depends(get_current_user)])
async def get_app_settings(db: AsyncSession = Depends(get_db)) -> AppSettingsResponse:
    """Organization branding. Defaults are returned until settings are saved."""
    return await service.get_app_settings(db)


@router.put("/app", response_model=AppSettingsResponse)
async def update_app_settings(
    payload: AppSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> AppSettingsResponse:
    try:
        result = await service.update_app_settings(db, payload, updated_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    changed = ", ".join(sorted(payload.model_dump(exclude_unset=True))) or "nothing"
    await log_update(db, "settings", "general", f"Updated app settings: {changed}", user=current_user)
    return result


@router.get("/email", response_model=Optional[EmailSettingsResponse], dependencies=[Depends(require_admin)])
async def get_email_settings(db: AsyncSession = Depends(get_db)) -> Optional[EmailSettingsResponse]:
    """null until email is configured."""
    return await service.get_email_settings(db)


@router.put("/email", response_model=EmailSettingsResponse)
async def update_email_settings(
    payload: EmailSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> EmailSettingsResponse:
    try:
        result = await service.update_email_settings(db, payload, updated_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_update(db, "settings", "email", f"Updated email settings (provider {result.provider})", user=current_user)
    return result


@router.post("/email/test", response_model=TestEmailResponse)
async def send_test_email(
    payload: TestEmailRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> TestEmailResponse:
    """Send a test message to the from address to verify the email configuration."""
    try:
        recipient = await service.send_settings_test_email(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    await log_system(db, "settings", "email", f"Sent test email to {recipient}", user=current_user)
    return TestEmailResponse(success=True, message=f"Test email sent to {recipient}")
