"""
Outbound email adapter used to verify the configured email settings.

The transport is picked by provider: "smtp" talks to a mail server directly,
"resend" posts to the Resend transactional email API.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Optional

import httpx
from pydantic import BaseModel

from sponsorship_admin.core.app_logger import get_logger
from sponsorship_admin.core.config import settings
from sponsorship_admin.core.enums import EmailProvider
from sponsorship_admin.core.exceptions import TransientIOError, ValidationFailedError

logger = get_logger("mailer")

TEST_EMAIL_HTML = """
<h1>Email Configuration Test</h1>
<p>Hello,</p>
<p>This is a test email sent to verify your {transport} configuration.</p>
<p>If you're receiving this email, your email settings are correctly configured!</p>
<p>Best regards,<br/>{organization}</p>
"""


class EmailConfig(BaseModel):
    provider: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[str] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    resend_api_key: Optional[str] = None


def _sender(config: EmailConfig) -> str:
    return f"{config.from_name} <{config.from_email}>"


def _send_smtp(config: EmailConfig, port: int, subject: str, html: str) -> None:
    message = EmailMessage()
    message["From"] = _sender(config)
    message["To"] = config.from_email
    message["Subject"] = subject
    message.set_content("This is a test email to verify your SMTP configuration.")
    message.add_alternative(html, subtype="html")

    timeout = settings.email_timeout_seconds
    if port == 465:
        client = smtplib.SMTP_SSL(config.smtp_host, port, timeout=timeout)
    else:
        client = smtplib.SMTP(config.smtp_host, port, timeout=timeout)
    with client:
        if port != 465 and client.has_extn("starttls"):
            client.starttls()
        client.login(config.smtp_username, config.smtp_password)
        client.send_message(message)


async def _send_resend(config: EmailConfig, subject: str, html: str) -> None:
    async with httpx.AsyncClient(timeout=settings.email_timeout_seconds) as client:
        r = await client.post(
            settings.resend_api_url,
            headers={"Authorization": f"Bearer {config.resend_api_key}"},
            json={
                "from": _sender(config),
                "to": [config.from_email],
                "subject": subject,
                "html": html,
            },
        )
        r.raise_for_status()


async def send_test_email(config: EmailConfig, organization_name: Optional[str] = None) -> None:
    """Send a test message to config.from_email. Raises ValidationFailedError or TransientIOError."""
    if not config.provider:
        raise ValidationFailedError("Email provider is required")
    if not config.from_name or not config.from_email:
        raise ValidationFailedError("From name and email are required")

    organization = organization_name or settings.organization_name
    subject = f"Test Email from {organization}"

    if config.provider == EmailProvider.SMTP.value:
        if not all([config.smtp_host, config.smtp_port, config.smtp_username, config.smtp_password]):
            raise ValidationFailedError("SMTP configuration is incomplete")
        try:
            port = int(config.smtp_port)
        except ValueError:
            raise ValidationFailedError("SMTP port must be a number")
        html = TEST_EMAIL_HTML.format(transport="SMTP", organization=organization)
        try:
            await asyncio.to_thread(_send_smtp, config, port, subject, html)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP test email to %s failed: %s", config.from_email, e)
            raise TransientIOError(f"Failed to send test email: {e}") from e
    elif config.provider == EmailProvider.RESEND.value:
        if not config.resend_api_key:
            raise ValidationFailedError("Resend API key is required")
        html = TEST_EMAIL_HTML.format(transport="Resend API", organization=organization)
        try:
            await _send_resend(config, subject, html)
        except httpx.HTTPError as e:
            logger.warning("Resend test email to %s failed: %s", config.from_email, e)
            raise TransientIOError(f"Failed to send test email: {e}") from e
    else:
        raise ValidationFailedError("Invalid email provider")

    logger.info("Test email sent to %s via %s", config.from_email, config.provider)
