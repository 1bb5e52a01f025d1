# backend/reflist/repositories/protocols.py
"""
Storage seams for the ledger services.

Services only talk to these protocols; the `*_repository` modules back them
with SQLAlchemy (see reflist.db.uow), `reflist.repositories.memory` with plain
objects for tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from reflist.models.account import Account
from reflist.models.earning import Earning
from reflist.models.earning_audit_entry import EarningAuditEntry
from reflist.models.earning_split import EarningSplit
from reflist.models.link import Link, LinkSplitRecipient
from reflist.models.participant import Participant
from reflist.models.participant_account import ParticipantAccount
from reflist.models.phone_verification_token import PhoneVerificationToken
from reflist.models.reward_policy import RewardPolicy
from reflist.models.workspace import Workspace


class ParticipantStore(Protocol):
    async def get(self, participant_id: uuid.UUID) -> Optional[Participant]: ...

    async def get_many(self, participant_ids: list[uuid.UUID]) -> list[Participant]: ...

    async def find_by_phone(self, phone_number: str) -> Optional[Participant]: ...

    async def create(
        self,
        *,
        name: str,
        status: str,
        phone_number: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Participant:
        """Raises DuplicateRecordError when the phone number is taken."""
        ...

    async def set_phone(self, participant: Participant, phone_number: str) -> None: ...

    async def list_for_account(self, account_id: uuid.UUID) -> list[Participant]:
        """Participants associated with the account, oldest association first."""
        ...


class AccountStore(Protocol):
    async def get(self, account_id: uuid.UUID) -> Optional[Account]: ...

    async def get_by_email(self, email: str) -> Optional[Account]: ...

    async def create(self, *, email: str, name: Optional[str] = None) -> Account: ...

    async def save(self, account: Account, **fields: Any) -> Account: ...

    async def get_association(
        self, participant_id: uuid.UUID, account_id: uuid.UUID
    ) -> Optional[ParticipantAccount]: ...

    async def add_association(
        self, participant_id: uuid.UUID, account_id: uuid.UUID, role: str
    ) -> ParticipantAccount:
        """Raises DuplicateRecordError when the pair already exists."""
        ...

    async def first_account_for_participant(self, participant_id: uuid.UUID) -> Optional[uuid.UUID]: ...


class WorkspaceStore(Protocol):
    async def list_for_account(self, account_id: uuid.UUID) -> list[Workspace]: ...

    async def slug_exists(self, slug: str) -> bool: ...

    async def create(self, *, name: str, slug: str, owner_account_id: uuid.UUID) -> Workspace:
        """Creates the workspace and the owner's membership."""
        ...


class RewardPolicyStore(Protocol):
    async def find_for_participant(
        self, participant_id: uuid.UUID, program_id: str, event: str
    ) -> Optional[RewardPolicy]: ...

    async def find_program_default(self, program_id: str, event: str) -> Optional[RewardPolicy]: ...


class LinkStore(Protocol):
    async def get(self, link_id: uuid.UUID) -> Optional[Link]: ...

    async def get_many(self, link_ids: list[uuid.UUID]) -> list[Link]: ...

    async def split_recipients(self, link_id: uuid.UUID) -> list[LinkSplitRecipient]: ...


class EarningStore(Protocol):
    async def create(self, **fields: Any) -> Earning: ...

    async def get_many(self, earning_ids: list[uuid.UUID]) -> list[Earning]: ...

    async def first_sale_for(self, participant_id: uuid.UUID, customer_id: Optional[str]) -> Optional[Earning]:
        """Earliest sale Earning for the participant; any customer when customer_id is None."""
        ...

    async def sum_toward_cap(self, participant_id: uuid.UUID, program_id: str, event: str) -> int:
        """Sum of positive earnings in cap-counted statuses."""
        ...

    async def list_for_participants(
        self, participant_ids: list[uuid.UUID], *, limit: int, offset: int
    ) -> tuple[list[Earning], int]: ...


class EarningSplitStore(Protocol):
    async def create(self, **fields: Any) -> EarningSplit: ...

    async def find_unclaimed_by_phone(self, phone_number: str) -> list[EarningSplit]: ...

    async def mark_claimed(
        self,
        split_ids: list[uuid.UUID],
        *,
        account_id: uuid.UUID,
        participant_id: uuid.UUID,
        claimed_at: datetime,
    ) -> list[tuple[uuid.UUID, int]]:
        """
        Flip claimed false -> true for the given ids.

        Returns (split_id, earnings) only for rows this call transitioned;
        rows another transaction already claimed are left untouched.
        """
        ...

    async def count_claimed_by(self, phone_number: str, account_id: uuid.UUID) -> int: ...


class AuditStore(Protocol):
    async def record(
        self,
        *,
        action: str,
        earning_id: Optional[uuid.UUID] = None,
        actor: Optional[str] = None,
        source: str = "pipeline",
        details: Optional[dict[str, Any]] = None,
    ) -> EarningAuditEntry: ...


class VerificationTokenStore(Protocol):
    async def delete_for(self, phone_number: str, purpose: str) -> int: ...

    async def create(
        self, *, phone_number: str, purpose: str, token_hash: str, expires_at: datetime
    ) -> PhoneVerificationToken: ...

    async def list_for(self, phone_number: str, purpose: str) -> list[PhoneVerificationToken]: ...

    async def record_failed_attempt(self, token_id: uuid.UUID) -> int:
        """Count one wrong guess against the token; returns the new count (0 when it is gone)."""
        ...

    async def consume(self, token_id: uuid.UUID) -> bool:
        """Delete the token; False when another caller consumed it first."""
        ...


class UnitOfWork(Protocol):
    """
    One transaction. `async with` opens it; leaving the block without
    `commit()` (or via an exception) rolls it back.
    """

    participants: ParticipantStore
    accounts: AccountStore
    workspaces: WorkspaceStore
    rewards: RewardPolicyStore
    links: LinkStore
    earnings: EarningStore
    splits: EarningSplitStore
    audit: AuditStore
    tokens: VerificationTokenStore

    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(self, exc_type, exc, tb) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]
