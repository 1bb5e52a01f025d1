# backend/reflist/services/claim_service.py
"""
Deferred claims: bind a verified phone number's unclaimed splits to an account.

Everything below runs in one transaction. The guarded update in
EarningSplitStore.mark_claimed is what makes a split claimable exactly once;
a claimer that loses a race sees zero newly claimed rows, not an error.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from loguru import logger

from reflist.core.clock import utcnow
from reflist.core.enums import AuditAction
from reflist.core.errors import ClaimNotAuthorizedError, InvalidInputError, NoEligibleParticipantError
from reflist.core.phone import mask_phone_number, normalize_phone_number
from reflist.core.roles import ParticipantRole
from reflist.db.uow import run_in_transaction
from reflist.models.account import Account
from reflist.models.participant import Participant
from reflist.repositories.protocols import UnitOfWork, UnitOfWorkFactory
from reflist.services.workspace_provisioning import ensure_workspace

UNKNOWN_LINK_LABEL = "Unknown Link"

# runs inside the claim transaction before anything is credited
ClaimAuthorizer = Callable[[UnitOfWork], Awaitable[bool]]


class ClaimOutcome(str, enum.Enum):
    CLAIMED = "claimed"
    NOTHING_TO_CLAIM = "nothing_to_claim"
    ALREADY_CLAIMED = "already_claimed"


@dataclass(frozen=True)
class ParticipantSummary:
    id: uuid.UUID
    name: str
    role: str
    is_default: bool
    newly_associated: bool


@dataclass(frozen=True)
class ClaimResult:
    outcome: ClaimOutcome
    claimed_count: int
    total_earnings: int
    participants: tuple[ParticipantSummary, ...] = ()
    split_ids: tuple[uuid.UUID, ...] = ()
    workspace_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class UnclaimedItem:
    split_id: uuid.UUID
    earnings: int
    currency: str
    label: str
    program_id: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class UnclaimedPreview:
    phone_number: str
    items: tuple[UnclaimedItem, ...]
    total_earnings: int

    @property
    def count(self) -> int:
        return len(self.items)


class ClaimService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        clock: Callable[[], datetime] = utcnow,
        retries: Optional[int] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock
        self._retries = retries

    async def claim(
        self,
        phone_number: str,
        account_id: uuid.UUID,
        participant_ids: Optional[Iterable[uuid.UUID]] = None,
        *,
        authorize: Optional[ClaimAuthorizer] = None,
    ) -> ClaimResult:
        """
        Claim every unclaimed split for `phone_number` on behalf of the account.

        `authorize` proves ownership of the phone number (e.g. redeems a claim
        ticket). It only runs when there is something to claim, in the same
        transaction, so a failed claim leaves the proof unspent. Without it the
        caller must already have proven ownership. Calling again after a
        successful claim returns claimed_count == 0.
        """
        phone = normalize_phone_number(phone_number)
        wanted = list(participant_ids or [])

        async def _work(uow: UnitOfWork) -> ClaimResult:
            return await self._claim(uow, phone, account_id, wanted, authorize)

        result = await run_in_transaction(self._uow_factory, _work, retries=self._retries, label="claim")

        if result.claimed_count:
            logger.info(
                "Account {} claimed {} split(s) worth {} for {}",
                account_id,
                result.claimed_count,
                result.total_earnings,
                mask_phone_number(phone),
            )
        else:
            logger.info("Claim for {} by account {}: {}", mask_phone_number(phone), account_id, result.outcome.value)
        return result

    async def list_unclaimed(self, phone_number: str) -> UnclaimedPreview:
        """Read-only preview of what a phone number could claim."""
        phone = normalize_phone_number(phone_number)

        async with self._uow_factory() as uow:
            splits = await uow.splits.find_unclaimed_by_phone(phone)
            primaries = {e.id: e for e in await uow.earnings.get_many(list({s.earning_id for s in splits}))}
            link_ids = list({e.link_id for e in primaries.values() if e.link_id is not None})
            links = {link.id: link for link in await uow.links.get_many(link_ids)}

            items: list[UnclaimedItem] = []
            for s in splits:
                primary = primaries.get(s.earning_id)
                link = links.get(primary.link_id) if primary is not None and primary.link_id else None
                items.append(
                    UnclaimedItem(
                        split_id=s.id,
                        earnings=s.earnings,
                        currency=primary.currency if primary is not None else "usd",
                        label=link.label if link is not None else UNKNOWN_LINK_LABEL,
                        program_id=(primary.program_id or None) if primary is not None else None,
                        created_at=s.created_at,
                    )
                )
            return UnclaimedPreview(
                phone_number=phone,
                items=tuple(items),
                total_earnings=sum(i.earnings for i in items),
            )

    # ------------------------------------------------------------------

    async def _claim(
        self,
        uow: UnitOfWork,
        phone: str,
        account_id: uuid.UUID,
        participant_ids: list[uuid.UUID],
        authorize: Optional[ClaimAuthorizer] = None,
    ) -> ClaimResult:
        account = await uow.accounts.get(account_id)
        if account is None:
            raise InvalidInputError(f"Account {account_id} not found")

        workspace = await ensure_workspace(uow, account)

        splits = await uow.splits.find_unclaimed_by_phone(phone)
        if not splits:
            return await self._empty_result(uow, phone, account, workspace.id)

        if authorize is not None and not await authorize(uow):
            raise ClaimNotAuthorizedError(f"No valid claim ticket for {mask_phone_number(phone)}")

        participants = await self._resolve_participants(uow, account, phone, participant_ids)
        if not participants:
            raise NoEligibleParticipantError(
                f"No participant could be resolved for account {account.id} to claim {mask_phone_number(phone)}"
            )

        if account.default_participant_id is None:
            await uow.accounts.save(account, default_participant_id=participants[0].id)

        summaries = await self._ensure_associations(uow, account, participants)
        target = participants[0]

        transitioned = await uow.splits.mark_claimed(
            [s.id for s in splits],
            account_id=account.id,
            participant_id=target.id,
            claimed_at=self._clock(),
        )
        if not transitioned:
            return await self._empty_result(uow, phone, account, workspace.id, summaries)

        total = sum(earnings for _, earnings in transitioned)
        await uow.audit.record(
            action=AuditAction.SPLITS_CLAIMED.value,
            actor=str(account.id),
            source="claim",
            details={
                "phone_number": mask_phone_number(phone),
                "participant_id": str(target.id),
                "workspace_id": str(workspace.id),
                "split_ids": [str(split_id) for split_id, _ in transitioned],
                "total_earnings": total,
            },
        )
        return ClaimResult(
            outcome=ClaimOutcome.CLAIMED,
            claimed_count=len(transitioned),
            total_earnings=total,
            participants=summaries,
            split_ids=tuple(split_id for split_id, _ in transitioned),
            workspace_id=workspace.id,
        )

    async def _empty_result(
        self,
        uow: UnitOfWork,
        phone: str,
        account: Account,
        workspace_id: uuid.UUID,
        summaries: tuple[ParticipantSummary, ...] = (),
    ) -> ClaimResult:
        already = await uow.splits.count_claimed_by(phone, account.id)
        return ClaimResult(
            outcome=ClaimOutcome.ALREADY_CLAIMED if already else ClaimOutcome.NOTHING_TO_CLAIM,
            claimed_count=0,
            total_earnings=0,
            participants=summaries,
            workspace_id=workspace_id,
        )

    async def _resolve_participants(
        self,
        uow: UnitOfWork,
        account: Account,
        phone: str,
        participant_ids: list[uuid.UUID],
    ) -> list[Participant]:
        """
        Who gets credited, first match wins:
          1. requested participant ids the account is associated with
          2. the participant already carrying this phone number
          3. the account's default participant (phone copied onto it)
          4. the first participant the account is associated with (phone copied onto it)
        """
        owned = await uow.participants.list_for_account(account.id)

        if participant_ids:
            requested = set(participant_ids)
            chosen = [p for p in owned if p.id in requested]
            if chosen:
                return chosen

        with_phone = await uow.participants.find_by_phone(phone)
        if with_phone is not None:
            return [with_phone]

        if account.default_participant_id is not None:
            default = await uow.participants.get(account.default_participant_id)
            if default is not None:
                await uow.participants.set_phone(default, phone)
                return [default]

        if owned:
            first = owned[0]
            await uow.participants.set_phone(first, phone)
            return [first]

        return []

    async def _ensure_associations(
        self,
        uow: UnitOfWork,
        account: Account,
        participants: list[Participant],
    ) -> tuple[ParticipantSummary, ...]:
        summaries: list[ParticipantSummary] = []
        for p in participants:
            existing = await uow.accounts.get_association(p.id, account.id)
            if existing is None:
                await uow.accounts.add_association(p.id, account.id, ParticipantRole.OWNER.value)
            summaries.append(
                ParticipantSummary(
                    id=p.id,
                    name=p.name or "Unnamed Partner",
                    role=existing.role if existing is not None else ParticipantRole.OWNER.value,
                    is_default=account.default_participant_id == p.id,
                    newly_associated=existing is None,
                )
            )
        return tuple(summaries)
