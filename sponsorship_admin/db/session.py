from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from sponsorship_admin.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Pool settings for a server database; SQLite (tests, local runs) keeps the driver defaults."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # pool_pre_ping: drop connections the server or network closed while idle
    # pool_recycle: seconds before a pooled connection is replaced
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_async_engine(settings.database_url, echo=False, future=True, **engine_options(settings.database_url))

# Objects stay readable after commit; services return them straight into responses
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
