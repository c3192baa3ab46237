from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid

from sponsorship_admin.db.session import Base

APP_SETTINGS_ID = "general"
EMAIL_SETTINGS_ID = "default"

DEFAULT_APP_SETTINGS = {
    "organization_name": "David's Hope International",
    "primary_color": "#9b87f5",
    "secondary_color": "#7E69AB",
    "theme_mode": "light",
    "footer_text": None,
    "app_version": None,
    "logo_url": None,
    "favicon_url": None,
}


class AppSettings(Base):
    """Single-row organization branding settings (id = "general")."""

    __tablename__ = "app_settings"

    id = Column(String(20), primary_key=True, default=APP_SETTINGS_ID)
    organization_name = Column(String(255), nullable=False, default=DEFAULT_APP_SETTINGS["organization_name"])
    primary_color = Column(String(20), nullable=False, default=DEFAULT_APP_SETTINGS["primary_color"])
    secondary_color = Column(String(20), nullable=False, default=DEFAULT_APP_SETTINGS["secondary_color"])
    theme_mode = Column(String(20), nullable=False, default=DEFAULT_APP_SETTINGS["theme_mode"])
    footer_text = Column(Text, nullable=True)
    app_version = Column(String(50), nullable=True)
    logo_url = Column(Text, nullable=True)
    favicon_url = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class EmailSettings(Base):
    """Single-row outbound email configuration (id = "default")."""

    __tablename__ = "email_settings"

    id = Column(String(20), primary_key=True, default=EMAIL_SETTINGS_ID)
    provider = Column(String(20), nullable=False, default="smtp")  # smtp | resend
    from_name = Column(String(255), nullable=False)
    from_email = Column(String(255), nullable=False)
    smtp_host = Column(String(255), nullable=True)
    smtp_port = Column(String(10), nullable=True)
    smtp_username = Column(String(255), nullable=True)
    smtp_password = Column(Text, nullable=True)
    resend_api_key = Column(Text, nullable=True)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    notify_new_student = Column(Boolean, nullable=False, default=True)
    notify_new_sponsor = Column(Boolean, nullable=False, default=True)
    notify_sponsorship_change = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
