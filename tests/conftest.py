import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date
from typing import AsyncGenerator, Callable, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sponsorship_admin.auth.models import User
from sponsorship_admin.auth.schemas import CurrentUser
from sponsorship_admin.auth.security import create_access_token, hash_password
from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.models import AcademicYear
from sponsorship_admin.db.init_db import seed_roles
from sponsorship_admin.db.session import Base, get_db
from sponsorship_admin.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "StrongPass123"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; overrides the FastAPI session dependency."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        await seed_roles(session)
        await session.commit()

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def authority(db_session: AsyncSession) -> AcademicYearAuthority:
    return AcademicYearAuthority(db_session)


@pytest.fixture()
def make_year(db_session: AsyncSession) -> Callable:
    async def _make(year_name: str, is_current: bool = False) -> AcademicYear:
        year = int(year_name[:4])
        row = AcademicYear(
            year_name=year_name,
            start_date=date(year, 1, 1),
            end_date=date(year, 12, 31),
            is_current=is_current,
        )
        db_session.add(row)
        await db_session.commit()
        return row

    return _make


@pytest.fixture()
def make_user(db_session: AsyncSession) -> Callable:
    async def _make(email: str, role: str = "superuser", status: str = "active") -> User:
        user = User(
            email=email,
            full_name=email.split("@")[0].title(),
            password_hash=hash_password(TEST_PASSWORD),
            role=role,
            status=status,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(user_id=user.id, role=user.role)
    return {"Authorization": f"Bearer {token}"}


def as_current_user(user: User) -> CurrentUser:
    return CurrentUser(id=user.id, email=user.email, role=user.role, permissions={})


@pytest.fixture()
async def superuser(make_user) -> User:
    return await make_user("root@example.org", role="superuser")


@pytest.fixture()
def headers(superuser: User) -> Dict[str, str]:
    return auth_headers(superuser)


@pytest.fixture()
def auth_for() -> Callable[[User], Dict[str, str]]:
    return auth_headers
