from __future__ import annotations

import re
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Ensure Base + models are registered before any mapper is used
import reflist.models  # noqa: F401
from reflist.core.enums import EarningStatus, EventType, ParticipantStatus, RewardType
from reflist.core.roles import ParticipantRole
from reflist.models.account import Account
from reflist.models.earning import Earning
from reflist.models.earning_split import EarningSplit
from reflist.models.link import Link, LinkSplitRecipient
from reflist.models.participant import Participant
from reflist.models.participant_account import ParticipantAccount
from reflist.models.reward_policy import RewardPolicy
from reflist.repositories.memory import InMemoryLedger, InMemoryUnitOfWork
from reflist.services.claim_service import ClaimService
from reflist.services.commission_splitter import CommissionSplitter
from reflist.services.notifications import NotificationBus
from reflist.services.verification import LocalTokenVerificationGateway

PROGRAM_ID = "prog_test"


# ---------------------------------------------------------
# Test doubles
# ---------------------------------------------------------
class FakeClock:
    """Settable clock shared by the ledger and the services under test."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 5, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSmsSender:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None

    async def send(self, phone_number: str, body: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((phone_number, body))

    def last_code(self) -> str:
        assert self.sent, "no SMS was sent"
        match = re.search(r"\b(\d{6})\b", self.sent[-1][1])
        assert match, f"no code in {self.sent[-1][1]!r}"
        return match.group(1)


class LedgerSeeder:
    """Writes fixture rows straight into the in-memory ledger."""

    def __init__(self, ledger: InMemoryLedger) -> None:
        self.ledger = ledger

    def participant(
        self,
        name: str = "Link Owner",
        phone_number: Optional[str] = None,
        status: str = ParticipantStatus.ACTIVE.value,
    ) -> Participant:
        return self.ledger.add("participants", Participant, name=name, phone_number=phone_number, status=status)

    def account(
        self,
        email: str,
        name: Optional[str] = None,
        is_admin: bool = False,
        default_participant_id: Optional[uuid.UUID] = None,
    ) -> Account:
        return self.ledger.add(
            "accounts",
            Account,
            email=email,
            name=name,
            is_admin=is_admin,
            default_participant_id=default_participant_id,
        )

    def associate(self, participant: Participant, account: Account, role: str = ParticipantRole.OWNER.value):
        return self.ledger.add(
            "participant_accounts",
            ParticipantAccount,
            participant_id=participant.id,
            account_id=account.id,
            role=role,
        )

    def link(
        self,
        owner: Optional[Participant],
        program_id: Optional[str] = PROGRAM_ID,
        title: Optional[str] = "Spring Promo",
    ) -> Link:
        key = f"key-{uuid.uuid4().hex[:8]}"
        return self.ledger.add(
            "links",
            Link,
            key=key,
            url=f"https://example.com/{key}",
            title=title,
            participant_id=owner.id if owner is not None else None,
            program_id=program_id,
        )

    def split_recipient(self, link: Link, phone_number: str, percent) -> LinkSplitRecipient:
        return self.ledger.add(
            "link_split_recipients",
            LinkSplitRecipient,
            link_id=link.id,
            phone_number=phone_number,
            split_percent=Decimal(str(percent)),
        )

    def reward(
        self,
        event: EventType = EventType.SALE,
        type: RewardType = RewardType.PERCENTAGE,
        amount="20",
        program_id: str = PROGRAM_ID,
        participant: Optional[Participant] = None,
        max_amount: Optional[int] = None,
        max_duration: Optional[int] = None,
    ) -> RewardPolicy:
        return self.ledger.add(
            "reward_policies",
            RewardPolicy,
            program_id=program_id,
            participant_id=participant.id if participant is not None else None,
            event=event.value,
            type=type.value,
            amount=Decimal(str(amount)),
            max_amount=max_amount,
            max_duration=max_duration,
            is_default=participant is None,
        )

    def earning(
        self,
        participant: Participant,
        earnings: int,
        event: EventType = EventType.SALE,
        customer_id: Optional[str] = None,
        program_id: str = PROGRAM_ID,
        status: EarningStatus = EarningStatus.PENDING,
        created_at: Optional[datetime] = None,
    ) -> Earning:
        return self.ledger.add(
            "earnings",
            Earning,
            participant_id=participant.id,
            program_id=program_id,
            customer_id=customer_id,
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            type=event.value,
            earnings=earnings,
            status=status.value,
            created_at=created_at,
        )

    def orphan_split(self, phone_number: str, earnings: int) -> EarningSplit:
        """An unclaimed split whose phone number no participant carries."""
        owner = self.participant(name="Orphan Owner")
        primary = self.earning(owner, earnings=0)
        return self.ledger.add(
            "earning_splits",
            EarningSplit,
            earning_id=primary.id,
            phone_number=phone_number,
            split_percent=Decimal("50"),
            earnings=earnings,
        )


# ---------------------------------------------------------
# In-memory ledger + services
# ---------------------------------------------------------
@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ledger(clock) -> InMemoryLedger:
    return InMemoryLedger(clock=clock)


@pytest.fixture()
def seed(ledger) -> LedgerSeeder:
    return LedgerSeeder(ledger)


@pytest.fixture()
def uow_factory(ledger):
    return InMemoryUnitOfWork.factory(ledger)


@pytest.fixture()
def splitter(uow_factory, clock) -> CommissionSplitter:
    return CommissionSplitter(uow_factory, clock=clock, retries=3)


@pytest.fixture()
def claim_service(uow_factory, clock) -> ClaimService:
    return ClaimService(uow_factory, clock=clock, retries=3)


@pytest.fixture()
def sms() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest.fixture()
def gateway(uow_factory, sms, clock) -> LocalTokenVerificationGateway:
    return LocalTokenVerificationGateway(
        uow_factory,
        sms,
        code_ttl_minutes=10,
        ticket_ttl_minutes=15,
        bcrypt_rounds=4,
        clock=clock,
    )


@pytest.fixture()
def bus() -> NotificationBus:
    return NotificationBus()


# ---------------------------------------------------------
# FastAPI app over the in-memory ledger
# ---------------------------------------------------------
@pytest.fixture()
def app(ledger, sms):
    from reflist.main import create_application

    return create_application(uow_factory=InMemoryUnitOfWork.factory(ledger), sms_sender=sms)


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac
