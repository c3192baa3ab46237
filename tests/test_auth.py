import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.auth.models import RefreshToken
from sponsorship_admin.auth.security import create_access_token, decode_access_token
from sponsorship_admin.core.models import AuditLog

from conftest import TEST_PASSWORD


async def _login(client: AsyncClient, email: str, password: str = TEST_PASSWORD):
    return await client.post("/api/v1/auth/login", json={"email": email, "password": password})


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, db_session: AsyncSession, superuser, make_year) -> None:
    await make_year("2024", is_current=True)

    response = await _login(client, "ROOT@example.org")
    assert response.status_code == 200
    data = response.json()

    assert "access_token" in data
    assert "refresh_token" in data
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "root@example.org"
    assert data["user"]["role"] == "superuser"
    assert data["academic_year"] == "2024"

    result = await db_session.execute(select(AuditLog).where(AuditLog.action == "login"))
    assert result.scalar_one().user_id == superuser.id


@pytest.mark.asyncio
async def test_login_rejects_bad_credentials_and_inactive_users(client: AsyncClient, superuser, make_user) -> None:
    assert (await _login(client, "root@example.org", "wrong-password")).status_code == 401
    assert (await _login(client, "nobody@example.org")).status_code == 401

    await make_user("gone@example.org", role="viewer", status="inactive")
    assert (await _login(client, "gone@example.org")).status_code == 403


@pytest.mark.asyncio
async def test_me_and_profile_update(client: AsyncClient, superuser) -> None:
    tokens = (await _login(client, "root@example.org")).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    me = (await client.get("/api/v1/auth/me", headers=headers)).json()
    assert me["email"] == "root@example.org"

    updated = await client.put("/api/v1/auth/me", json={"full_name": "Root Admin"}, headers=headers)
    assert updated.json()["name"] == "Root Admin"

    assert (await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})).status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_and_logout_revokes(client: AsyncClient, superuser) -> None:
    tokens = (await _login(client, "root@example.org")).json()

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    rotated = response.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]

    reused = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401

    headers = {"Authorization": f"Bearer {rotated['access_token']}"}
    assert (await client.post("/api/v1/auth/logout", headers=headers)).status_code == 204
    revoked = await client.post("/api/v1/auth/refresh", json={"refresh_token": rotated["refresh_token"]})
    assert revoked.status_code == 401


@pytest.mark.asyncio
async def test_expired_refresh_token_is_rejected(client: AsyncClient, db_session: AsyncSession, superuser) -> None:
    tokens = (await _login(client, "root@example.org")).json()
    stored = (
        await db_session.execute(select(RefreshToken).where(RefreshToken.token == tokens["refresh_token"]))
    ).scalar_one()
    stored.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    await db_session.commit()

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


def test_access_token_names_user_and_role() -> None:
    user_id = uuid.uuid4()
    issued_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    token = create_access_token(user_id=user_id, role="manager", issued_at=issued_at, expires_minutes=10**8)

    claims = decode_access_token(token)
    assert claims["sub"] == str(user_id)
    assert claims["role"] == "manager"
    assert claims["iat"] == int(issued_at.timestamp())

    expired = create_access_token(user_id=user_id, role="manager", issued_at=issued_at, expires_minutes=1)
    assert decode_access_token(expired) is None


@pytest.mark.asyncio
async def test_deactivated_user_loses_access(client: AsyncClient, headers, make_user, auth_for) -> None:
    manager = await make_user("manager@example.org", role="manager")
    manager_headers = auth_for(manager)
    assert (await client.get("/api/v1/students", headers=manager_headers)).status_code == 200

    await client.put(f"/api/v1/users/{manager.id}", json={"status": "inactive"}, headers=headers)
    assert (await client.get("/api/v1/students", headers=manager_headers)).status_code == 401


@pytest.mark.asyncio
async def test_user_management_rules(client: AsyncClient, headers, make_user, auth_for) -> None:
    created = await client.post(
        "/api/v1/users",
        json={"email": "Clerk@Example.org", "password": "LongEnough1", "role": "viewer"},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["email"] == "clerk@example.org"

    duplicate = await client.post(
        "/api/v1/users", json={"email": "clerk@example.org", "password": "LongEnough1"}, headers=headers
    )
    assert duplicate.status_code == 409

    unknown_role = await client.post(
        "/api/v1/users", json={"email": "x@example.org", "password": "LongEnough1", "role": "wizard"}, headers=headers
    )
    assert unknown_role.status_code == 400

    admin = await make_user("admin@example.org", role="admin")
    escalation = await client.post(
        "/api/v1/users",
        json={"email": "boss@example.org", "password": "LongEnough1", "role": "superuser"},
        headers=auth_for(admin),
    )
    assert escalation.status_code == 400
    assert (await client.delete(f"/api/v1/users/{admin.id}", headers=auth_for(admin))).status_code == 400

    viewer = await make_user("viewer@example.org", role="viewer")
    assert (await client.get("/api/v1/users", headers=auth_for(viewer))).status_code == 403


@pytest.mark.asyncio
async def test_custom_role_permissions(client: AsyncClient, headers, make_user, auth_for, make_year) -> None:
    await make_year("2024", is_current=True)
    response = await client.post(
        "/api/v1/auth/roles",
        json={"name": "exam clerk", "permissions": {"exams": {"read": True, "create": True}}},
        headers=headers,
    )
    assert response.status_code == 201
    role_id = response.json()["id"]

    clerk = await make_user("clerk@example.org", role="exam clerk")
    clerk_headers = auth_for(clerk)
    created = await client.post("/api/v1/exams", json={"name": "Quiz", "term": "Term 1"}, headers=clerk_headers)
    assert created.status_code == 201
    assert (await client.get("/api/v1/students", headers=clerk_headers)).status_code == 403

    in_use = await client.delete(f"/api/v1/auth/roles/{role_id}", headers=headers)
    assert in_use.status_code == 400

    roles = (await client.get("/api/v1/auth/roles", headers=headers)).json()
    viewer_role = next(r for r in roles if r["name"] == "viewer")
    assert viewer_role["is_system"] is True
    assert (await client.delete(f"/api/v1/auth/roles/{viewer_role['id']}", headers=headers)).status_code == 400
