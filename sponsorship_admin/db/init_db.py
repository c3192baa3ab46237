"""
Create tables and seed the rows a fresh install needs.

Run once after configuring DATABASE_URL:
  python -m sponsorship_admin.db.init_db

Creates (when missing):
- all tables
- the built-in roles (is_system = true)
- the "general" app settings row with the default branding
- the superuser account when SUPERUSER_EMAIL / SUPERUSER_PASSWORD are set
"""
import asyncio
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from sponsorship_admin.auth.models import Role, User
from sponsorship_admin.auth.security import hash_password
from sponsorship_admin.core.config import settings
from sponsorship_admin.core.enums import PERMISSION_ACTIONS, PERMISSION_MODULES, UserRole
from sponsorship_admin.core.models.settings import APP_SETTINGS_ID, DEFAULT_APP_SETTINGS, AppSettings
from sponsorship_admin.db.session import AsyncSessionLocal, Base, engine


def _grant(*actions: str) -> Dict[str, Dict[str, bool]]:
    return {module: {action: action in actions for action in PERMISSION_ACTIONS} for module in PERMISSION_MODULES}


_manager_permissions = _grant("create", "read", "update", "delete")
_manager_permissions["academic_years"] = {action: action == "read" for action in PERMISSION_ACTIONS}

# superuser and admin bypass permission checks; their rows exist so they can be assigned and listed
DEFAULT_ROLES = (
    (UserRole.SUPERUSER.value, "Full access including destructive maintenance", _grant(*PERMISSION_ACTIONS)),
    (UserRole.ADMIN.value, "Full access to records, users and settings", _grant(*PERMISSION_ACTIONS)),
    (UserRole.MANAGER.value, "Manage students, sponsors and exams", _manager_permissions),
    (UserRole.VIEWER.value, "Read-only access", _grant("read")),
)


async def create_tables(db_engine: AsyncEngine) -> None:
    # Importing the model modules registers every table on Base.metadata
    import sponsorship_admin.core.models  # noqa: F401

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_roles(db: AsyncSession) -> None:
    existing = set((await db.execute(select(Role.name))).scalars().all())
    for name, description, permissions in DEFAULT_ROLES:
        if name in existing:
            continue
        db.add(Role(name=name, description=description, is_system=True, permissions=permissions))
        print("Created role:", name)


async def seed_app_settings(db: AsyncSession) -> None:
    if await db.get(AppSettings, APP_SETTINGS_ID) is None:
        db.add(AppSettings(id=APP_SETTINGS_ID, **DEFAULT_APP_SETTINGS))
        print("Created default app settings.")


async def seed_superuser(db: AsyncSession) -> None:
    email = (settings.superuser_email or "").strip().lower()
    password = settings.superuser_password
    if not email or not password:
        print("No SUPERUSER_EMAIL/SUPERUSER_PASSWORD; skipping superuser.")
        return

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        db.add(
            User(
                email=email,
                full_name=settings.superuser_name,
                password_hash=hash_password(password),
                role=UserRole.SUPERUSER.value,
                status="active",
            )
        )
        print("Created superuser:", email)
    elif user.role != UserRole.SUPERUSER.value:
        user.role = UserRole.SUPERUSER.value
        print("Promoted existing user to superuser:", email)


async def init_db(db: AsyncSession) -> None:
    await seed_roles(db)
    await seed_app_settings(db)
    await seed_superuser(db)
    await db.commit()


async def main() -> None:
    await create_tables(engine)
    async with AsyncSessionLocal() as db:
        try:
            await init_db(db)
        except Exception as e:
            await db.rollback()
            print("Error:", e)
            raise
    await engine.dispose()
    print("Database initialised.")


if __name__ == "__main__":
    asyncio.run(main())
