# tests/test_transactions.py
from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from reflist.core.errors import DuplicateRecordError, InvalidInputError, TransientStorageError
from reflist.db.uow import run_in_transaction, translate_storage_error


class FakeDriverError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class CountingFactory:
    """Wraps a unit-of-work factory and counts how many transactions were opened."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.opened = 0

    def __call__(self):
        self.opened += 1
        return self.inner()


def test_integrity_error_is_duplicate():
    translated = translate_storage_error(IntegrityError("INSERT ...", {}, Exception("duplicate key")))
    assert isinstance(translated, DuplicateRecordError)


@pytest.mark.parametrize("sqlstate, retryable", [("40001", True), ("40P01", True), ("57014", False)])
def test_dbapi_errors_are_transient(sqlstate, retryable):
    translated = translate_storage_error(DBAPIError("UPDATE ...", {}, FakeDriverError(sqlstate)))

    assert isinstance(translated, TransientStorageError)
    assert translated.retryable is retryable


@pytest.mark.parametrize("exc", [PoolTimeoutError("pool exhausted"), asyncio.TimeoutError(), ConnectionResetError()])
def test_timeouts_and_disconnects_are_transient(exc):
    translated = translate_storage_error(exc)

    assert isinstance(translated, TransientStorageError)
    assert translated.retryable is False


def test_other_errors_are_not_translated():
    assert translate_storage_error(ValueError("nope")) is None


@pytest.mark.asyncio
async def test_retryable_failures_are_retried(uow_factory, ledger, seed):
    factory = CountingFactory(uow_factory)
    ledger.fail_next_commit = TransientStorageError("deadlock detected", retryable=True)

    async def work(uow):
        return await uow.participants.create(name="Retried", status="active", phone_number="+15550100001")

    created = await run_in_transaction(factory, work, retries=3)

    assert factory.opened == 2
    assert [p.id for p in ledger.rows("participants")] == [created.id]


@pytest.mark.asyncio
async def test_retries_give_up(uow_factory, ledger):
    factory = CountingFactory(uow_factory)
    attempts = 0

    async def work(uow):
        nonlocal attempts
        attempts += 1
        raise TransientStorageError("could not serialize access", retryable=True)

    with pytest.raises(TransientStorageError):
        await run_in_transaction(factory, work, retries=2)

    assert attempts == 2


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate_immediately(uow_factory, ledger):
    factory = CountingFactory(uow_factory)

    async def timeout(uow):
        raise TransientStorageError("statement timeout")

    async def invalid(uow):
        await uow.participants.create(name="Doomed", status="active")
        raise InvalidInputError("bad input")

    with pytest.raises(TransientStorageError):
        await run_in_transaction(factory, timeout, retries=3)
    with pytest.raises(InvalidInputError):
        await run_in_transaction(factory, invalid, retries=3)

    assert factory.opened == 2
    assert ledger.rows("participants") == []
