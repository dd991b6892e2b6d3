from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from slotwise.core.config import settings


def to_async_database_url(url: str) -> str:
    """Use asyncpg for postgres URLs; asyncpg does not accept psycopg params like sslmode/channel_binding."""
    parsed = make_url(url)
    if parsed.drivername not in ("postgresql", "postgres"):
        return url
    parsed = parsed.set(drivername="postgresql+asyncpg").difference_update_query(["sslmode", "channel_binding"])
    return parsed.render_as_string(hide_password=False)


def _engine_kwargs(async_url: str) -> dict[str, Any]:
    if async_url.startswith("sqlite"):
        # sqlite pools do not take size/overflow settings
        return {"echo": False}
    kwargs: dict[str, Any] = {
        "echo": settings.env == "development",
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
    }
    if settings.database_ssl:
        kwargs["connect_args"] = {"ssl": True}
    return kwargs


async_database_url = to_async_database_url(settings.database_url)

engine = create_async_engine(async_database_url, **_engine_kwargs(async_database_url))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
