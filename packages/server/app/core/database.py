"""
Async engine, sessions and the per-request tenant context used by row level security.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def ping_db(session: AsyncSession) -> None:
    """Round-trip a trivial query. Raises on connection failure."""
    await session.execute(text("SELECT 1"))


async def set_org_context(session: AsyncSession, org_id) -> None:
    """Scope the current transaction to one organization (PostgreSQL only)."""
    if session.bind is None or session.bind.dialect.name != "postgresql":
        return
    # SET does not accept bind parameters; org_id is a UUID from our own row
    await session.execute(text(f"SET LOCAL app.current_org_id = '{str(org_id)}'"))


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: commit when the handler returns, roll back when it raises."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Workers and scripts run outside the request lifecycle
get_session_context = asynccontextmanager(get_session)
