# tests/test_commission_splitter.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from reflist.core.enums import AuditAction, EarningStatus, EventType, ParticipantStatus, RewardType
from reflist.core.errors import InvalidInputError, TransientStorageError
from reflist.repositories.memory import InMemoryUnitOfWork
from reflist.services.commission_splitter import (
    CommissionSplitter,
    ManualSale,
    SkipReason,
    SplitStatus,
    TrackedEvent,
    split_event_id,
)
from reflist.services.pending_recipients import UNKNOWN_PARTICIPANT_NAME


def sale(link, amount=10000, customer_id="cus_1", **kwargs) -> TrackedEvent:
    return TrackedEvent(event=EventType.SALE, link_id=link.id, amount=amount, customer_id=customer_id, **kwargs)


@pytest.mark.asyncio
async def test_sale_without_splits_creates_one_pending_earning(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    outcome = await splitter.process(sale(link))

    assert outcome.status == SplitStatus.CREATED
    assert outcome.total_earnings == 2000
    assert outcome.split_ids == ()

    [earning] = ledger.rows("earnings")
    assert earning.id == outcome.primary_earning_id
    assert earning.participant_id == owner.id
    assert earning.earnings == 2000
    assert earning.amount == 10000
    assert earning.status == EarningStatus.PENDING.value
    assert earning.program_id == "prog_test"

    [audit] = ledger.rows("earning_audit_entries")
    assert audit.action == AuditAction.COMMISSION_CREATED.value
    assert audit.earning_id == earning.id
    assert audit.details["total_earnings"] == 2000


@pytest.mark.asyncio
async def test_split_recipient_gets_share_as_unclaimed_split(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+1 (555) 010-2030", "40")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    outcome = await splitter.process(sale(link, event_id="evt_abc"))

    assert outcome.created
    assert outcome.total_earnings == 2000

    primary = ledger.tables["earnings"][outcome.primary_earning_id]
    assert primary.participant_id == owner.id
    assert primary.earnings == 1200
    assert primary.event_id == "evt_abc"

    [split] = ledger.rows("earning_splits")
    assert split.id == outcome.split_ids[0]
    assert split.earning_id == primary.id
    assert split.phone_number == "+15550102030"
    assert split.split_percent == Decimal("40")
    assert split.earnings == 800
    assert split.claimed is False
    assert split.claimed_by_account_id is None

    placeholder = ledger.tables["participants"][split.participant_id]
    assert placeholder.status == ParticipantStatus.PLACEHOLDER.value
    assert placeholder.name == UNKNOWN_PARTICIPANT_NAME
    assert placeholder.phone_number == "+15550102030"

    secondary = ledger.tables["earnings"][split.split_earning_id]
    assert secondary.participant_id == placeholder.id
    assert secondary.earnings == 800
    assert secondary.event_id == split_event_id("evt_abc", placeholder.id)

    assert primary.earnings + split.earnings <= outcome.total_earnings


@pytest.mark.asyncio
async def test_existing_placeholder_is_reused(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "25")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    await splitter.process(sale(link, customer_id="cus_1"))
    await splitter.process(sale(link, customer_id="cus_2"))

    splits = ledger.rows("earning_splits")
    assert len(splits) == 2
    assert splits[0].participant_id == splits[1].participant_id
    assert len(ledger.rows("participants")) == 2


@pytest.mark.asyncio
async def test_recipient_with_account_is_credited_immediately(seed, ledger, splitter):
    owner = seed.participant()
    recipient = seed.participant(name="Known Partner", phone_number="+15550102030")
    account = seed.account("known@example.com")
    seed.associate(recipient, account)

    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "50")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    await splitter.process(sale(link))

    [split] = ledger.rows("earning_splits")
    assert split.participant_id == recipient.id
    assert split.claimed is True
    assert split.claimed_by_account_id == account.id
    assert split.claimed_at is not None


@pytest.mark.asyncio
async def test_first_sale_only_skips_repeat_customer(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20", max_duration=0)
    seed.earning(owner, earnings=2000, customer_id="cus_1")

    outcome = await splitter.process(sale(link, customer_id="cus_1"))

    assert outcome.status == SplitStatus.SKIPPED
    assert outcome.reason == SkipReason.FIRST_SALE_ONLY
    assert len(ledger.rows("earnings")) == 1
    assert ledger.rows("earning_audit_entries") == []


@pytest.mark.asyncio
async def test_first_sale_only_still_pays_new_customer(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20", max_duration=0)
    seed.earning(owner, earnings=2000, customer_id="cus_1")

    outcome = await splitter.process(sale(link, customer_id="cus_2"))

    assert outcome.status == SplitStatus.CREATED
    assert len(ledger.rows("earnings")) == 2


@pytest.mark.asyncio
async def test_max_duration_window(seed, ledger, splitter):
    # clock is 2026-05-15 12:00 UTC
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20", max_duration=2)
    seed.earning(owner, earnings=2000, customer_id="old", created_at=datetime(2026, 2, 10, tzinfo=timezone.utc))
    seed.earning(owner, earnings=2000, customer_id="recent", created_at=datetime(2026, 4, 20, tzinfo=timezone.utc))

    expired = await splitter.process(sale(link, customer_id="old"))
    within = await splitter.process(sale(link, customer_id="recent"))

    assert expired.reason == SkipReason.MAX_DURATION_REACHED
    assert within.status == SplitStatus.CREATED


@pytest.mark.asyncio
async def test_first_sale_only_without_customer_id(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20", max_duration=0)

    first = await splitter.process(sale(link, customer_id=None))
    second = await splitter.process(sale(link, customer_id=None))

    assert first.status == SplitStatus.CREATED
    assert second.status == SplitStatus.SKIPPED
    assert second.reason == SkipReason.FIRST_SALE_ONLY
    assert len(ledger.rows("earnings")) == 1


@pytest.mark.asyncio
async def test_max_duration_without_customer_id_counts_from_any_sale(seed, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20", max_duration=2)
    seed.earning(owner, earnings=2000, customer_id="cus_9", created_at=datetime(2026, 2, 10, tzinfo=timezone.utc))

    outcome = await splitter.process(sale(link, customer_id=None))

    assert outcome.reason == SkipReason.MAX_DURATION_REACHED


@pytest.mark.asyncio
async def test_lifetime_cap_trims_then_skips(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(event=EventType.LEAD, type=RewardType.FLAT, amount="500", max_amount=1200)
    seed.earning(owner, earnings=1000, event=EventType.LEAD)

    lead = TrackedEvent(event=EventType.LEAD, link_id=link.id)
    trimmed = await splitter.process(lead)
    capped = await splitter.process(lead)

    assert trimmed.status == SplitStatus.CREATED
    assert trimmed.total_earnings == 200
    assert capped.status == SplitStatus.SKIPPED
    assert capped.reason == SkipReason.MAX_AMOUNT_REACHED


@pytest.mark.asyncio
async def test_canceled_earnings_do_not_count_toward_cap(seed, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(event=EventType.LEAD, type=RewardType.FLAT, amount="500", max_amount=1200)
    seed.earning(owner, earnings=1000, event=EventType.LEAD, status=EarningStatus.CANCELED)

    outcome = await splitter.process(TrackedEvent(event=EventType.LEAD, link_id=link.id))

    assert outcome.total_earnings == 500


@pytest.mark.asyncio
async def test_participant_policy_overrides_program_default(seed, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20")
    seed.reward(type=RewardType.PERCENTAGE, amount="35", participant=owner)

    outcome = await splitter.process(sale(link))

    assert outcome.total_earnings == 3500


@pytest.mark.asyncio
async def test_no_reward_is_a_skip(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner, program_id=None)

    outcome = await splitter.process(sale(link))

    assert outcome.status == SplitStatus.SKIPPED
    assert outcome.reason == SkipReason.NO_REWARD
    assert ledger.rows("earnings") == []


@pytest.mark.asyncio
async def test_split_percentages_over_100_write_nothing(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "60")
    seed.split_recipient(link, "+15550102031", "50")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    with pytest.raises(InvalidInputError):
        await splitter.process(sale(link))

    assert ledger.rows("earnings") == []
    assert ledger.rows("earning_splits") == []
    assert [p.id for p in ledger.rows("participants")] == [owner.id]


@pytest.mark.asyncio
async def test_malformed_recipient_phone_writes_nothing(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "call me", "30")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    with pytest.raises(InvalidInputError):
        await splitter.process(sale(link))

    assert ledger.rows("earnings") == []


@pytest.mark.asyncio
async def test_duplicate_recipient_phone_writes_nothing(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "20")
    seed.split_recipient(link, "+1 (555) 010-2030", "20")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    with pytest.raises(InvalidInputError):
        await splitter.process_with_fallback(sale(link))

    assert ledger.rows("earnings") == []
    assert ledger.rows("earning_splits") == []
    assert ledger.rows("earning_audit_entries") == []


@pytest.mark.asyncio
async def test_unknown_link_is_invalid_input(splitter):
    with pytest.raises(InvalidInputError):
        await splitter.process(TrackedEvent(event=EventType.CLICK, link_id=uuid.uuid4()))


@pytest.mark.asyncio
async def test_storage_failure_is_reported_with_total(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "40")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")
    ledger.fail_next_commit = TransientStorageError("statement timeout")

    outcome = await splitter.process(sale(link))

    assert outcome.status == SplitStatus.FAILED
    assert outcome.total_earnings == 2000
    assert isinstance(outcome.error, TransientStorageError)
    # all-or-nothing: the placeholder created mid-transaction is gone too
    assert ledger.rows("earnings") == []
    assert ledger.rows("earning_splits") == []
    assert len(ledger.rows("participants")) == 1


@pytest.mark.asyncio
async def test_fallback_pays_owner_the_full_total(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "40")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")
    ledger.fail_next_commit = TransientStorageError("statement timeout")

    outcome = await splitter.process_with_fallback(sale(link))

    assert outcome.status == SplitStatus.CREATED
    assert outcome.fallback is True
    assert outcome.split_ids == ()

    [earning] = ledger.rows("earnings")
    assert earning.participant_id == owner.id
    assert earning.earnings == 2000
    assert ledger.rows("earning_splits") == []

    [audit] = ledger.rows("earning_audit_entries")
    assert audit.action == AuditAction.FALLBACK_COMMISSION.value
    assert audit.details["error"] == "statement timeout"


@pytest.mark.asyncio
async def test_fallback_not_used_when_split_succeeds(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "40")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    outcome = await splitter.process_with_fallback(sale(link))

    assert outcome.fallback is False
    assert len(outcome.split_ids) == 1


class UnreachableLinksUnitOfWork(InMemoryUnitOfWork):
    """Link lookups fail, so a split dies before its total is known."""

    async def __aenter__(self):
        uow = await super().__aenter__()

        async def lost_connection(link_id):
            raise TransientStorageError("connection reset")

        uow.links.get = lost_connection
        return uow


@pytest.mark.asyncio
async def test_fallback_reraises_when_total_is_unknown(seed, ledger, clock):
    owner = seed.participant()
    link = seed.link(owner)
    seed.reward(type=RewardType.PERCENTAGE, amount="20")
    splitter = CommissionSplitter(UnreachableLinksUnitOfWork.factory(ledger), clock=clock)

    with pytest.raises(TransientStorageError):
        await splitter.process_with_fallback(sale(link))

    assert ledger.rows("earnings") == []
    assert ledger.rows("earning_audit_entries") == []


@pytest.mark.asyncio
async def test_serialization_conflict_is_retried(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "40")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")
    ledger.fail_next_commit = TransientStorageError("could not serialize access", retryable=True)

    outcome = await splitter.process(sale(link))

    assert outcome.status == SplitStatus.CREATED
    assert outcome.fallback is False
    assert len(ledger.rows("earnings")) == 2
    assert len(ledger.rows("earning_splits")) == 1


@pytest.mark.asyncio
async def test_manual_sale_with_take_rate_override(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)

    outcome = await splitter.record_manual_sale(
        ManualSale(
            link_id=link.id,
            amount=10000,
            recorded_by="ops@example.com",
            payment_processor="stripe",
            notes="paid at the booth",
            commission_amount=5000,
            user_take_rate=Decimal("70"),
        )
    )

    assert outcome.status == SplitStatus.CREATED
    [earning] = ledger.rows("earnings")
    assert earning.earnings == 3500
    assert earning.event_id.startswith("manual_")

    [audit] = ledger.rows("earning_audit_entries")
    assert audit.action == AuditAction.MANUAL_SALE_RECORDED.value
    assert audit.source == "manual"
    assert audit.actor == "ops@example.com"
    assert audit.details["payment_processor"] == "stripe"
    assert audit.details["notes"] == "paid at the booth"
    assert audit.details["user_take_rate"] == "70"


@pytest.mark.asyncio
async def test_manual_sale_uses_program_reward(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner)
    seed.split_recipient(link, "+15550102030", "40")
    seed.reward(type=RewardType.PERCENTAGE, amount="20")

    outcome = await splitter.record_manual_sale(
        ManualSale(link_id=link.id, amount=10000, recorded_by="ops@example.com", payment_processor="cash")
    )

    assert outcome.total_earnings == 2000
    assert len(outcome.split_ids) == 1
    [split] = ledger.rows("earning_splits")
    assert split.earnings == 800


@pytest.mark.asyncio
async def test_manual_sale_without_program_uses_default_rate(seed, ledger, splitter):
    owner = seed.participant()
    link = seed.link(owner, program_id=None)

    outcome = await splitter.record_manual_sale(
        ManualSale(link_id=link.id, amount=10000, recorded_by="ops@example.com", payment_processor="cash")
    )

    # DEFAULT_MANUAL_COMMISSION_RATE = 10
    assert outcome.total_earnings == 1000


@pytest.mark.asyncio
async def test_manual_sale_override_needs_both_fields(seed, splitter):
    owner = seed.participant()
    link = seed.link(owner)

    with pytest.raises(InvalidInputError):
        await splitter.record_manual_sale(
            ManualSale(
                link_id=link.id,
                amount=10000,
                recorded_by="ops@example.com",
                payment_processor="cash",
                commission_amount=5000,
            )
        )
