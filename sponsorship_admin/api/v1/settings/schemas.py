from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class AppSettingsResponse(BaseModel):
    organization_name: str
    primary_color: str
    secondary_color: str
    theme_mode: str
    footer_text: Optional[str] = None
    app_version: Optional[str] = None
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AppSettingsUpdate(BaseModel):
    organization_name: Optional[str] = Field(None, min_length=1, max_length=255)
    primary_color: Optional[str] = Field(None, max_length=20)
    secondary_color: Optional[str] = Field(None, max_length=20)
    theme_mode: Optional[str] = Field(None, pattern="^(light|dark|system)$")
    footer_text: Optional[str] = None
    app_version: Optional[str] = Field(None, max_length=50)
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None


class EmailSettingsResponse(BaseModel):
    """Secrets are reported as present or absent, never returned."""

    provider: str
    from_name: str
    from_email: str
    smtp_host: Optional[str] = None
    smtp_port: Optional[str] = None
    smtp_username: Optional[str] = None
    has_smtp_password: bool = False
    has_resend_api_key: bool = False
    notifications_enabled: bool
    notify_new_student: bool
    notify_new_sponsor: bool
    notify_sponsorship_change: bool
    updated_at: Optional[datetime] = None


class EmailSettingsUpdate(BaseModel):
    """Omitted or empty secrets keep the stored value."""

    provider: Optional[str] = Field(None, pattern="^(smtp|resend)$")
    from_name: Optional[str] = Field(None, min_length=1, max_length=255)
    from_email: Optional[EmailStr] = None
    smtp_host: Optional[str] = Field(None, max_length=255)
    smtp_port: Optional[str] = Field(None, max_length=10)
    smtp_username: Optional[str] = Field(None, max_length=255)
    smtp_password: Optional[str] = None
    resend_api_key: Optional[str] = None
    notifications_enabled: Optional[bool] = None
    notify_new_student: Optional[bool] = None
    notify_new_sponsor: Optional[bool] = None
    notify_sponsorship_change: Optional[bool] = None


class TestEmailRequest(BaseModel):
    """Unsaved settings to verify; empty fields fall back to the stored settings."""

    provider: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[str] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    resend_api_key: Optional[str] = None


class TestEmailResponse(BaseModel):
    success: bool
    message: str
