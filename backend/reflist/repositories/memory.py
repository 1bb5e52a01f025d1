# backend/reflist/repositories/memory.py
"""
In-memory stores for service tests.

InMemoryLedger holds transient ORM instances keyed by id; InMemoryUnitOfWork
serializes transactions on one asyncio.Lock and restores a snapshot of every
row on rollback, so services see the same all-or-nothing behaviour they get
from Postgres.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import inspect as sa_inspect

from reflist.core.enums import CAP_COUNTED_STATUSES, EventType
from reflist.core.errors import DuplicateRecordError
from reflist.core.roles import WorkspaceRole
from reflist.models.account import Account
from reflist.models.earning import Earning
from reflist.models.earning_audit_entry import EarningAuditEntry
from reflist.models.earning_split import EarningSplit
from reflist.models.link import LinkSplitRecipient
from reflist.models.participant import Participant
from reflist.models.participant_account import ParticipantAccount
from reflist.models.phone_verification_token import PhoneVerificationToken
from reflist.models.reward_policy import RewardPolicy
from reflist.models.workspace import Workspace
from reflist.models.workspace_membership import WorkspaceMembership

TABLES = (
    "participants",
    "accounts",
    "participant_accounts",
    "workspaces",
    "workspace_memberships",
    "reward_policies",
    "links",
    "link_split_recipients",
    "earnings",
    "earning_splits",
    "earning_audit_entries",
    "phone_verification_tokens",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _column_values(obj: Any) -> dict[str, Any]:
    return {attr.key: getattr(obj, attr.key) for attr in sa_inspect(type(obj)).column_attrs}


class InMemoryLedger:
    """All tables of one fake database."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self.clock = clock
        self.lock = asyncio.Lock()
        self.tables: dict[str, dict[uuid.UUID, Any]] = {name: {} for name in TABLES}
        # raised by the next commit() instead of committing
        self.fail_next_commit: Optional[Exception] = None
        self._seq = 0

    def rows(self, table: str) -> list[Any]:
        return sorted(self.tables[table].values(), key=lambda o: (o.created_at, o._mem_seq))

    def new(self, model: type, **fields: Any) -> Any:
        """Build a row the way an INSERT would: column defaults applied, id and timestamps set."""
        obj = model(**fields)
        for attr in sa_inspect(model).column_attrs:
            if getattr(obj, attr.key) is not None:
                continue
            column = attr.columns[0]
            if column.default is not None:
                arg = column.default.arg
                setattr(obj, attr.key, arg(None) if column.default.is_callable else arg)
            elif attr.key in ("created_at", "updated_at"):
                setattr(obj, attr.key, self.clock())
        self._seq += 1
        obj._mem_seq = self._seq
        return obj

    def add(self, table: str, model: type, **fields: Any) -> Any:
        obj = self.new(model, **fields)
        self.tables[table][obj.id] = obj
        return obj

    def snapshot(self) -> tuple[dict[str, dict], list[tuple[Any, dict[str, Any]]]]:
        tables = {name: dict(rows) for name, rows in self.tables.items()}
        values = [(obj, _column_values(obj)) for rows in self.tables.values() for obj in rows.values()]
        return tables, values

    def restore(self, snap: tuple[dict[str, dict], list[tuple[Any, dict[str, Any]]]]) -> None:
        tables, values = snap
        for name, rows in tables.items():
            self.tables[name].clear()
            self.tables[name].update(rows)
        for obj, cols in values:
            for key, value in cols.items():
                setattr(obj, key, value)


class _Store:
    table: str = ""

    def __init__(self, ledger: InMemoryLedger) -> None:
        self.ledger = ledger

    @property
    def _rows(self) -> dict[uuid.UUID, Any]:
        return self.ledger.tables[self.table]

    def _all(self) -> list[Any]:
        return self.ledger.rows(self.table)

    async def get(self, row_id: uuid.UUID):
        return self._rows.get(row_id)

    async def get_many(self, row_ids: list[uuid.UUID]) -> list[Any]:
        return [self._rows[i] for i in row_ids if i in self._rows]


class MemoryParticipantStore(_Store):
    table = "participants"

    async def find_by_phone(self, phone_number: str) -> Optional[Participant]:
        for p in self._all():
            if p.phone_number == phone_number:
                return p
        return None

    async def create(
        self,
        *,
        name: str,
        status: str,
        phone_number: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Participant:
        if phone_number is not None and await self.find_by_phone(phone_number) is not None:
            raise DuplicateRecordError(f"participants: phone_number {phone_number} already exists")
        return self.ledger.add(
            self.table, Participant, name=name, status=status, phone_number=phone_number, email=email
        )

    async def set_phone(self, participant: Participant, phone_number: str) -> None:
        other = await self.find_by_phone(phone_number)
        if other is not None and other.id != participant.id:
            raise DuplicateRecordError(f"participants: phone_number {phone_number} already exists")
        participant.phone_number = phone_number

    async def list_for_account(self, account_id: uuid.UUID) -> list[Participant]:
        links = [a for a in self.ledger.rows("participant_accounts") if a.account_id == account_id]
        return [self._rows[a.participant_id] for a in links if a.participant_id in self._rows]


class MemoryAccountStore(_Store):
    table = "accounts"

    async def get_by_email(self, email: str) -> Optional[Account]:
        for a in self._all():
            if a.email == email:
                return a
        return None

    async def create(self, *, email: str, name: Optional[str] = None) -> Account:
        if await self.get_by_email(email) is not None:
            raise DuplicateRecordError(f"accounts: email {email} already exists")
        return self.ledger.add(self.table, Account, email=email, name=name)

    async def save(self, account: Account, **fields: Any) -> Account:
        for key, value in fields.items():
            setattr(account, key, value)
        return account

    async def get_association(self, participant_id: uuid.UUID, account_id: uuid.UUID) -> Optional[ParticipantAccount]:
        for a in self.ledger.rows("participant_accounts"):
            if a.participant_id == participant_id and a.account_id == account_id:
                return a
        return None

    async def add_association(self, participant_id: uuid.UUID, account_id: uuid.UUID, role: str) -> ParticipantAccount:
        if await self.get_association(participant_id, account_id) is not None:
            raise DuplicateRecordError("participant_accounts: association already exists")
        return self.ledger.add(
            "participant_accounts", ParticipantAccount, participant_id=participant_id, account_id=account_id, role=role
        )

    async def first_account_for_participant(self, participant_id: uuid.UUID) -> Optional[uuid.UUID]:
        for a in self.ledger.rows("participant_accounts"):
            if a.participant_id == participant_id:
                return a.account_id
        return None


class MemoryWorkspaceStore(_Store):
    table = "workspaces"

    async def list_for_account(self, account_id: uuid.UUID) -> list[Workspace]:
        ids = [m.workspace_id for m in self.ledger.rows("workspace_memberships") if m.account_id == account_id]
        return [self._rows[i] for i in ids if i in self._rows]

    async def slug_exists(self, slug: str) -> bool:
        return any(w.slug == slug for w in self._rows.values())

    async def create(self, *, name: str, slug: str, owner_account_id: uuid.UUID) -> Workspace:
        if await self.slug_exists(slug):
            raise DuplicateRecordError(f"workspaces: slug {slug} already exists")
        workspace = self.ledger.add(self.table, Workspace, name=name, slug=slug)
        self.ledger.add(
            "workspace_memberships",
            WorkspaceMembership,
            workspace_id=workspace.id,
            account_id=owner_account_id,
            role=WorkspaceRole.OWNER.value,
        )
        return workspace


class MemoryRewardPolicyStore(_Store):
    table = "reward_policies"

    async def find_for_participant(
        self, participant_id: uuid.UUID, program_id: str, event: str
    ) -> Optional[RewardPolicy]:
        matches = [
            r
            for r in self._all()
            if r.participant_id == participant_id and r.program_id == program_id and r.event == event
        ]
        return matches[-1] if matches else None

    async def find_program_default(self, program_id: str, event: str) -> Optional[RewardPolicy]:
        matches = [
            r
            for r in self._all()
            if r.participant_id is None and r.program_id == program_id and r.event == event and r.is_default
        ]
        return matches[-1] if matches else None


class MemoryLinkStore(_Store):
    table = "links"

    async def split_recipients(self, link_id: uuid.UUID) -> list[LinkSplitRecipient]:
        return [r for r in self.ledger.rows("link_split_recipients") if r.link_id == link_id]


class MemoryEarningStore(_Store):
    table = "earnings"

    async def create(self, **fields: Any) -> Earning:
        return self.ledger.add(self.table, Earning, **fields)

    async def first_sale_for(self, participant_id: uuid.UUID, customer_id: Optional[str]) -> Optional[Earning]:
        for e in self._all():
            if e.participant_id != participant_id or e.type != EventType.SALE.value:
                continue
            if customer_id is None or e.customer_id == customer_id:
                return e
        return None

    async def sum_toward_cap(self, participant_id: uuid.UUID, program_id: str, event: str) -> int:
        counted = {s.value for s in CAP_COUNTED_STATUSES}
        return sum(
            e.earnings
            for e in self._rows.values()
            if e.participant_id == participant_id
            and e.program_id == program_id
            and e.type == event
            and e.earnings > 0
            and e.status in counted
        )

    async def list_for_participants(
        self, participant_ids: list[uuid.UUID], *, limit: int, offset: int
    ) -> tuple[list[Earning], int]:
        wanted = set(participant_ids)
        rows = [e for e in reversed(self._all()) if e.participant_id in wanted]
        return rows[offset : offset + limit], len(rows)


class MemoryEarningSplitStore(_Store):
    table = "earning_splits"

    async def create(self, **fields: Any) -> EarningSplit:
        return self.ledger.add(self.table, EarningSplit, **fields)

    async def find_unclaimed_by_phone(self, phone_number: str) -> list[EarningSplit]:
        return [s for s in self._all() if s.phone_number == phone_number and not s.claimed]

    async def mark_claimed(
        self,
        split_ids: list[uuid.UUID],
        *,
        account_id: uuid.UUID,
        participant_id: uuid.UUID,
        claimed_at: datetime,
    ) -> list[tuple[uuid.UUID, int]]:
        transitioned: list[tuple[uuid.UUID, int]] = []
        for split_id in split_ids:
            split = self._rows.get(split_id)
            if split is None or split.claimed:
                continue
            split.claimed = True
            split.claimed_at = claimed_at
            split.claimed_by_account_id = account_id
            split.participant_id = participant_id
            transitioned.append((split.id, split.earnings))
        return transitioned

    async def count_claimed_by(self, phone_number: str, account_id: uuid.UUID) -> int:
        return sum(
            1
            for s in self._rows.values()
            if s.phone_number == phone_number and s.claimed and s.claimed_by_account_id == account_id
        )


class MemoryAuditStore(_Store):
    table = "earning_audit_entries"

    async def record(
        self,
        *,
        action: str,
        earning_id: Optional[uuid.UUID] = None,
        actor: Optional[str] = None,
        source: str = "pipeline",
        details: Optional[dict[str, Any]] = None,
    ) -> EarningAuditEntry:
        return self.ledger.add(
            self.table,
            EarningAuditEntry,
            action=action,
            earning_id=earning_id,
            actor=actor,
            source=source,
            details=dict(details or {}),
        )


class MemoryVerificationTokenStore(_Store):
    table = "phone_verification_tokens"

    async def delete_for(self, phone_number: str, purpose: str) -> int:
        doomed = [t.id for t in self._rows.values() if t.phone_number == phone_number and t.purpose == purpose]
        for token_id in doomed:
            del self._rows[token_id]
        return len(doomed)

    async def create(
        self, *, phone_number: str, purpose: str, token_hash: str, expires_at: datetime
    ) -> PhoneVerificationToken:
        return self.ledger.add(
            self.table,
            PhoneVerificationToken,
            phone_number=phone_number,
            purpose=purpose,
            token_hash=token_hash,
            expires_at=expires_at,
        )

    async def list_for(self, phone_number: str, purpose: str) -> list[PhoneVerificationToken]:
        rows = [t for t in self._all() if t.phone_number == phone_number and t.purpose == purpose]
        return list(reversed(rows))

    async def record_failed_attempt(self, token_id: uuid.UUID) -> int:
        token = self._rows.get(token_id)
        if token is None:
            return 0
        token.failed_attempts += 1
        return token.failed_attempts

    async def consume(self, token_id: uuid.UUID) -> bool:
        return self._rows.pop(token_id, None) is not None


class InMemoryUnitOfWork:
    def __init__(self, ledger: InMemoryLedger) -> None:
        self.ledger = ledger
        self.participants = MemoryParticipantStore(ledger)
        self.accounts = MemoryAccountStore(ledger)
        self.workspaces = MemoryWorkspaceStore(ledger)
        self.rewards = MemoryRewardPolicyStore(ledger)
        self.links = MemoryLinkStore(ledger)
        self.earnings = MemoryEarningStore(ledger)
        self.splits = MemoryEarningSplitStore(ledger)
        self.audit = MemoryAuditStore(ledger)
        self.tokens = MemoryVerificationTokenStore(ledger)
        self._snapshot = None
        self._committed = False

    @classmethod
    def factory(cls, ledger: InMemoryLedger) -> Callable[[], "InMemoryUnitOfWork"]:
        return lambda: cls(ledger)

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self.ledger.lock.acquire()
        self._snapshot = self.ledger.snapshot()
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if not self._committed:
                await self.rollback()
        finally:
            self.ledger.lock.release()

    async def commit(self) -> None:
        failure = self.ledger.fail_next_commit
        if failure is not None:
            self.ledger.fail_next_commit = None
            raise failure
        self._committed = True

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self.ledger.restore(self._snapshot)
            self._snapshot = self.ledger.snapshot()

