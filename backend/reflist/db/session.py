from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from reflist.core.config import settings

# -----------------------------
# Async engine
# -----------------------------
# Use CLEAN URL to avoid asyncpg errors with sslmode/channel_binding query params.
DATABASE_URL_ASYNC = settings.DATABASE_URL_ASYNC_CLEAN

engine: AsyncEngine = create_async_engine(
    DATABASE_URL_ASYNC,
    echo=False,
    pool_pre_ping=True,  # detects dead connections before using them
    pool_recycle=300,
    # a request that cannot get a connection fails fast as a transient error
    pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
)

# Ledger sessions are opened by SqlAlchemyUnitOfWork, one per transaction
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)
