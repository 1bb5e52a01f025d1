# tests/test_notifications.py
from __future__ import annotations

import uuid

import pytest

from reflist.core.enums import EventType, RewardType
from reflist.services.claim_handlers import ClaimHandlers, register_claim_handlers
from reflist.services.commission_splitter import TrackedEvent
from reflist.services.notifications import AccountCreated, LoggedIn, NotificationBus, PhoneVerified

PHONE = "+15550102030"


@pytest.mark.asyncio
async def test_publish_reaches_every_subscriber_in_order():
    bus = NotificationBus()
    seen: list[str] = []

    async def first(event):
        seen.append("first")

    def second(event):
        seen.append("second")

    bus.subscribe(PhoneVerified, first)
    bus.subscribe(PhoneVerified, second)

    delivered = await bus.publish(PhoneVerified(phone_number=PHONE))

    assert delivered == 2
    assert seen == ["first", "second"]


@pytest.mark.asyncio
async def test_duplicate_subscription_is_ignored():
    bus = NotificationBus()
    calls: list[PhoneVerified] = []

    async def handler(event):
        calls.append(event)

    assert bus.subscribe(PhoneVerified, handler) is True
    assert bus.subscribe(PhoneVerified, handler) is False

    await bus.publish(PhoneVerified(phone_number=PHONE))

    assert len(calls) == 1
    assert len(bus.handlers_for(PhoneVerified)) == 1


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others():
    bus = NotificationBus()
    seen: list[str] = []

    async def broken(event):
        raise RuntimeError("boom")

    async def healthy(event):
        seen.append("healthy")

    bus.subscribe(LoggedIn, broken)
    bus.subscribe(LoggedIn, healthy)

    delivered = await bus.publish(LoggedIn(account_id=uuid.uuid4()))

    assert delivered == 1
    assert seen == ["healthy"]


@pytest.mark.asyncio
async def test_unsubscribe_and_unrouted_events():
    bus = NotificationBus()

    async def handler(event):
        raise AssertionError("should not be called")

    bus.subscribe(AccountCreated, handler)
    bus.unsubscribe(AccountCreated, handler)

    assert await bus.publish(AccountCreated(account_id=uuid.uuid4(), email="a@example.com")) == 0
    assert await bus.publish(PhoneVerified(phone_number=PHONE)) == 0


def test_register_claim_handlers_once(bus, claim_service, gateway):
    handlers = ClaimHandlers(claim_service, gateway)

    register_claim_handlers(bus, handlers)
    register_claim_handlers(bus, handlers)

    assert len(bus.handlers_for(PhoneVerified)) == 1
    assert len(bus.handlers_for(AccountCreated)) == 1
    assert len(bus.handlers_for(LoggedIn)) == 1


async def seed_pending_split(seed, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, PHONE, "40")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")
    await splitter.process(TrackedEvent(event=EventType.SALE, link_id=link.id, amount=10000))


@pytest.mark.asyncio
async def test_signup_with_claim_ticket_claims(seed, ledger, splitter, claim_service, gateway):
    await seed_pending_split(seed, splitter)
    account = seed.account("new@example.com")
    handlers = ClaimHandlers(claim_service, gateway)
    ticket = await gateway.issue_claim_ticket(PHONE)

    result = await handlers.on_account_created(
        AccountCreated(account_id=account.id, email=account.email, phone_number=PHONE, claim_ticket=ticket)
    )

    assert result is not None
    assert result.claimed_count == 1
    assert result.total_earnings == 800


@pytest.mark.asyncio
async def test_login_without_ticket_does_not_claim(seed, ledger, splitter, claim_service, gateway):
    await seed_pending_split(seed, splitter)
    account = seed.account("returning@example.com")
    handlers = ClaimHandlers(claim_service, gateway)

    result = await handlers.on_logged_in(LoggedIn(account_id=account.id, phone_number_pending_claim=PHONE))

    assert result is None
    [split] = ledger.rows("earning_splits")
    assert split.claimed is False


@pytest.mark.asyncio
async def test_login_without_phone_is_ignored(claim_service, gateway, seed):
    account = seed.account("returning@example.com")
    handlers = ClaimHandlers(claim_service, gateway)

    assert await handlers.on_logged_in(LoggedIn(account_id=account.id)) is None


@pytest.mark.asyncio
async def test_phone_verified_auto_claim_is_opt_in(seed, ledger, splitter, claim_service, gateway):
    await seed_pending_split(seed, splitter)
    account = seed.account("new@example.com")
    event = PhoneVerified(phone_number=PHONE, account_id=account.id)

    off = ClaimHandlers(claim_service, gateway, auto_claim_on_phone_verified=False)
    assert await off.on_phone_verified(event) is None
    assert ledger.rows("earning_splits")[0].claimed is False

    on = ClaimHandlers(claim_service, gateway, auto_claim_on_phone_verified=True)
    result = await on.on_phone_verified(event)
    assert result is not None
    assert result.claimed_count == 1


@pytest.mark.asyncio
async def test_bus_delivers_signup_claim(seed, ledger, splitter, claim_service, gateway, bus):
    await seed_pending_split(seed, splitter)
    account = seed.account("new@example.com")
    register_claim_handlers(bus, ClaimHandlers(claim_service, gateway))
    ticket = await gateway.issue_claim_ticket(PHONE)

    delivered = await bus.publish(
        AccountCreated(account_id=account.id, email=account.email, phone_number=PHONE, claim_ticket=ticket)
    )

    assert delivered == 1
    [split] = ledger.rows("earning_splits")
    assert split.claimed_by_account_id == account.id


@pytest.mark.asyncio
async def test_login_with_rejected_ticket_claims_nothing(seed, ledger, splitter, claim_service, gateway):
    await seed_pending_split(seed, splitter)
    account = seed.account("returning@example.com")
    handlers = ClaimHandlers(claim_service, gateway)
    await gateway.issue_claim_ticket(PHONE)

    result = await handlers.on_logged_in(
        LoggedIn(account_id=account.id, phone_number_pending_claim=PHONE, claim_ticket="not-the-ticket")
    )

    assert result is None
    [split] = ledger.rows("earning_splits")
    assert split.claimed is False
    assert ledger.rows("workspaces") == []
