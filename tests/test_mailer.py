import smtplib
from typing import List

import httpx
import pytest
from httpx import AsyncClient

from sponsorship_admin.core import mailer
from sponsorship_admin.core.exceptions import TransientIOError, ValidationFailedError
from sponsorship_admin.core.mailer import EmailConfig, send_test_email


def _smtp_config(**overrides) -> EmailConfig:
    values = {
        "provider": "smtp",
        "from_name": "Sponsorship Office",
        "from_email": "office@example.org",
        "smtp_host": "mail.example.org",
        "smtp_port": "587",
        "smtp_username": "office",
        "smtp_password": "secret",
    }
    values.update(overrides)
    return EmailConfig(**values)


@pytest.mark.asyncio
async def test_smtp_test_email_is_sent(monkeypatch) -> None:
    sent: List[tuple] = []

    def fake_send(config, port, subject, html) -> None:
        sent.append((config.smtp_host, port, subject))

    monkeypatch.setattr(mailer, "_send_smtp", fake_send)
    await send_test_email(_smtp_config(), organization_name="Hope Trust")
    assert sent == [("mail.example.org", 587, "Test Email from Hope Trust")]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"provider": None}, "Email provider is required"),
        ({"from_email": ""}, "From name and email are required"),
        ({"smtp_password": None}, "SMTP configuration is incomplete"),
        ({"smtp_port": "smtp"}, "SMTP port must be a number"),
        ({"provider": "resend"}, "Resend API key is required"),
        ({"provider": "pigeon"}, "Invalid email provider"),
    ],
)
@pytest.mark.asyncio
async def test_incomplete_settings_are_rejected(overrides, message) -> None:
    with pytest.raises(ValidationFailedError) as exc:
        await send_test_email(_smtp_config(**overrides))
    assert exc.value.message == message


@pytest.mark.asyncio
async def test_transport_failures_surface_as_transient(monkeypatch) -> None:
    def refused(config, port, subject, html) -> None:
        raise smtplib.SMTPAuthenticationError(535, b"Authentication failed")

    async def unreachable(config, subject, html) -> None:
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(mailer, "_send_smtp", refused)
    monkeypatch.setattr(mailer, "_send_resend", unreachable)

    with pytest.raises(TransientIOError):
        await send_test_email(_smtp_config())
    with pytest.raises(TransientIOError):
        await send_test_email(_smtp_config(provider="resend", resend_api_key="re_123"))


@pytest.mark.asyncio
async def test_email_settings_never_return_secrets(client: AsyncClient, headers, monkeypatch) -> None:
    assert (await client.get("/api/v1/settings/email", headers=headers)).json() is None

    response = await client.put(
        "/api/v1/settings/email",
        json={
            "provider": "smtp",
            "from_name": "Sponsorship Office",
            "from_email": "office@example.org",
            "smtp_host": "mail.example.org",
            "smtp_port": "587",
            "smtp_username": "office",
            "smtp_password": "secret",
        },
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["has_smtp_password"] is True
    assert "smtp_password" not in body

    # An empty secret keeps the stored one
    response = await client.put(
        "/api/v1/settings/email", json={"smtp_password": "", "from_name": "Office"}, headers=headers
    )
    assert response.json()["has_smtp_password"] is True
    assert response.json()["from_name"] == "Office"

    used: List[EmailConfig] = []

    async def fake_send(config, organization_name=None) -> None:
        used.append(config)

    monkeypatch.setattr("sponsorship_admin.api.v1.settings.service.send_test_email", fake_send)
    response = await client.post("/api/v1/settings/email/test", json={"smtp_host": "relay.example.org"}, headers=headers)
    assert response.json() == {"success": True, "message": "Test email sent to office@example.org"}
    assert used[0].smtp_host == "relay.example.org"
    assert used[0].smtp_password == "secret"


@pytest.mark.asyncio
async def test_app_settings(client: AsyncClient, headers, make_user, auth_for) -> None:
    defaults = (await client.get("/api/v1/settings/app", headers=headers)).json()
    assert defaults["organization_name"] == "David's Hope International"

    updated = await client.put("/api/v1/settings/app", json={"theme_mode": "dark"}, headers=headers)
    assert updated.json()["theme_mode"] == "dark"

    viewer = await make_user("viewer@example.org", role="viewer")
    assert (await client.get("/api/v1/settings/app", headers=auth_for(viewer))).json()["theme_mode"] == "dark"
    denied = await client.put("/api/v1/settings/app", json={"theme_mode": "light"}, headers=auth_for(viewer))
    assert denied.status_code == 403
