"""
Database Session Management

One async engine per process for the pgvector knowledge base. Request
handlers get a session through ``get_async_session``; the ingestion script
opens its own with ``AsyncSessionLocal``.

Pool size, overflow and SQL echo come from ``Settings`` (``DB_POOL_SIZE``,
``DB_MAX_OVERFLOW``, ``DB_ECHO``).
"""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..config import settings


async_engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

# Rows stay readable after commit; the ingestion loop commits per page
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session that commits when the request succeeds and rolls back
    when it raises.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
