# backend/reflist/db/uow.py
"""
SQLAlchemy unit of work for ledger transactions.

Every commission split and claim runs inside one of these: a single
AsyncSession, one database transaction at LEDGER_ISOLATION_LEVEL with
Postgres lock/statement timeouts, all repositories bound to that session.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reflist.core.config import settings
from reflist.core.errors import DuplicateRecordError, TransientStorageError
from reflist.repositories.account_repository import AccountRepository
from reflist.repositories.audit_repository import AuditRepository
from reflist.repositories.earning_repository import EarningRepository
from reflist.repositories.earning_split_repository import EarningSplitRepository
from reflist.repositories.link_repository import LinkRepository
from reflist.repositories.participant_repository import ParticipantRepository
from reflist.repositories.protocols import UnitOfWork, UnitOfWorkFactory
from reflist.repositories.reward_policy_repository import RewardPolicyRepository
from reflist.repositories.verification_token_repository import VerificationTokenRepository
from reflist.repositories.workspace_repository import WorkspaceRepository

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_storage_error(exc: BaseException) -> Optional[Exception]:
    """Map driver/pool errors onto the ledger taxonomy; None for anything else."""
    if isinstance(exc, IntegrityError):
        return DuplicateRecordError(str(exc.orig))
    if isinstance(exc, PoolTimeoutError):
        return TransientStorageError("Timed out waiting for a database connection; safe to retry")
    if isinstance(exc, DBAPIError):
        state = _sqlstate(exc)
        retryable = state in RETRYABLE_SQLSTATES
        return TransientStorageError(
            f"Storage failure (sqlstate={state or '-'}); transaction rolled back, safe to retry",
            retryable=retryable,
        )
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError, OSError)):
        return TransientStorageError("Lost connection to the database; safe to retry")
    return None


class SqlAlchemyUnitOfWork:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        isolation_level: Optional[str] = None,
        lock_timeout_ms: Optional[int] = None,
        statement_timeout_ms: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self._isolation_level = (isolation_level or settings.LEDGER_ISOLATION_LEVEL).upper()
        self._lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else settings.LEDGER_LOCK_TIMEOUT_MS
        self._statement_timeout_ms = (
            statement_timeout_ms if statement_timeout_ms is not None else settings.LEDGER_STATEMENT_TIMEOUT_MS
        )
        self._committed = False
        self.session: Optional[AsyncSession] = None

    @classmethod
    def factory(cls, session_factory: async_sessionmaker[AsyncSession], **kwargs) -> UnitOfWorkFactory:
        def _make() -> "SqlAlchemyUnitOfWork":
            return cls(session_factory, **kwargs)

        return _make

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self._session_factory()
        self._committed = False
        try:
            conn = await self.session.connection(execution_options={"isolation_level": self._isolation_level})
            if conn.dialect.name == "postgresql":
                # SET LOCAL does not take bind parameters
                await self.session.execute(text(f"SET LOCAL lock_timeout = {int(self._lock_timeout_ms)}"))
                await self.session.execute(text(f"SET LOCAL statement_timeout = {int(self._statement_timeout_ms)}"))
        except Exception as e:
            await self.session.close()
            translated = translate_storage_error(e)
            if translated is None:
                raise
            raise translated from e

        self.participants = ParticipantRepository(self.session)
        self.accounts = AccountRepository(self.session)
        self.workspaces = WorkspaceRepository(self.session)
        self.rewards = RewardPolicyRepository(self.session)
        self.links = LinkRepository(self.session)
        self.earnings = EarningRepository(self.session)
        self.splits = EarningSplitRepository(self.session)
        self.audit = AuditRepository(self.session)
        self.tokens = VerificationTokenRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        assert self.session is not None
        try:
            if not self._committed:
                await self.session.rollback()
        finally:
            await self.session.close()

        if exc is not None:
            translated = translate_storage_error(exc)
            if translated is not None:
                raise translated from exc

    async def commit(self) -> None:
        assert self.session is not None
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        assert self.session is not None
        await self.session.rollback()


async def run_in_transaction(
    uow_factory: UnitOfWorkFactory,
    work: Callable[[UnitOfWork], Awaitable[T]],
    *,
    retries: Optional[int] = None,
    label: str = "ledger",
) -> T:
    """
    Run `work` in a fresh unit of work and commit.

    Serialization failures and deadlocks are retried up to `retries` times
    (LEDGER_TX_RETRIES by default); every other error propagates unchanged.
    """
    attempts = retries or settings.LEDGER_TX_RETRIES
    attempt = 0
    while True:
        attempt += 1
        try:
            async with uow_factory() as uow:
                result = await work(uow)
                await uow.commit()
                return result
        except TransientStorageError as e:
            if not e.retryable or attempt >= attempts:
                logger.error("{} transaction failed after {} attempt(s): {}", label, attempt, e.message)
                raise
            logger.warning("{} transaction conflict (attempt {}/{}), retrying", label, attempt, attempts)
            await asyncio.sleep(0.05 * attempt)
