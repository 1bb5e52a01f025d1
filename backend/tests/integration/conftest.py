from __future__ import annotations

import asyncio
import os
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Ensure Base + models are registered before create_all
from reflist.db.base import Base
import reflist.models  # noqa: F401
from reflist.db.uow import SqlAlchemyUnitOfWork


# ---------------------------------------------------------
# Database config
# ---------------------------------------------------------
@pytest.fixture(scope="session")
def database_url_async() -> str:
    url = os.getenv("DATABASE_URL_ASYNC")
    if not url:
        pytest.skip("DATABASE_URL_ASYNC is not set; skipping Postgres integration tests")
    return url


@pytest.fixture(scope="session")
def test_schema_name() -> str:
    return f"test_{uuid.uuid4().hex}"


# ---------------------------------------------------------
# Engine + schema lifecycle (CI-safe with retry)
# ---------------------------------------------------------
@pytest_asyncio.fixture(scope="session")
async def engine(database_url_async: str, test_schema_name: str):
    engine = create_async_engine(
        database_url_async,
        echo=False,
        poolclass=NullPool,
        connect_args={"server_settings": {"search_path": test_schema_name}},
    )

    # ------------------------------
    # Wait/retry for DB readiness
    # ------------------------------
    last_exc = None
    for _ in range(30):  # ~30 seconds max wait
        try:
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            last_exc = None
            break
        except Exception as e:
            last_exc = e
            await asyncio.sleep(1)

    if last_exc is not None:
        raise RuntimeError(f"Database not reachable for tests: {last_exc}") from last_exc

    # ------------------------------
    # Create isolated test schema
    # ------------------------------
    async with engine.begin() as conn:
        await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{test_schema_name}"'))
        await conn.execute(text(f'SET search_path TO "{test_schema_name}"'))
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # ------------------------------
    # Teardown: drop schema
    # ------------------------------
    async with engine.begin() as conn:
        await conn.execute(text(f'DROP SCHEMA IF EXISTS "{test_schema_name}" CASCADE'))

    await engine.dispose()


@pytest.fixture(scope="session")
def sessionmaker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------
# AUTOUSE: clean DB before every test
# ---------------------------------------------------------
@pytest_asyncio.fixture(autouse=True)
async def _truncate_tables(engine, test_schema_name: str):
    async with engine.begin() as conn:
        table_names = [t.name for t in Base.metadata.sorted_tables]
        if table_names:
            qualified = ", ".join(f'"{test_schema_name}"."{name}"' for name in table_names)
            await conn.execute(text(f"TRUNCATE TABLE {qualified} RESTART IDENTITY CASCADE;"))

    yield


# ---------------------------------------------------------
# Session for setup & assertions
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# Services from the top-level conftest pick this up instead of the in-memory ledger
@pytest.fixture()
def uow_factory(sessionmaker):
    return SqlAlchemyUnitOfWork.factory(sessionmaker)
