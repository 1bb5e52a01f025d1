# backend/reflist/services/commission_splitter.py
"""
Commission pipeline: tracked event -> reward -> earnings -> ledger rows.

One tracked event produces one primary Earning for the link owner and, when
the link has split recipients, one secondary Earning plus one EarningSplit
per recipient. All rows of one event are written in a single transaction.

Outcomes are explicit (SplitOutcome):
  - created  rows written (fallback=True when only the owner row could be written)
  - skipped  a reward rule says there is nothing to pay (logged at INFO)
  - failed   persistence gave up; carries the computed total so the caller
             can decide on the fallback (see process_with_fallback)
"""

from __future__ import annotations

import enum
import secrets
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Optional

from loguru import logger

from reflist.core.clock import as_aware, utcnow
from reflist.core.config import settings
from reflist.core.earnings import (
    RewardTerms,
    Sale,
    allocate_split,
    compute_default_earnings,
    compute_earnings,
    compute_manual_earnings,
    months_between,
)
from reflist.core.enums import AuditAction, EventType
from reflist.core.errors import DuplicateRecordError, InvalidInputError, LedgerError, TransientStorageError
from reflist.core.phone import mask_phone_number, normalize_phone_number
from reflist.db.uow import run_in_transaction
from reflist.models.earning import Earning
from reflist.repositories.protocols import UnitOfWork, UnitOfWorkFactory
from reflist.services.pending_recipients import resolve_or_create
from reflist.services.reward_resolver import resolve_reward


class SplitStatus(str, enum.Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, enum.Enum):
    NO_REWARD = "no_reward"
    FIRST_SALE_ONLY = "first_sale_only"
    MAX_DURATION_REACHED = "max_duration_reached"
    MAX_AMOUNT_REACHED = "max_amount_reached"


@dataclass(frozen=True)
class TrackedEvent:
    event: EventType
    link_id: uuid.UUID
    # defaults to the link owner / the link's program
    participant_id: Optional[uuid.UUID] = None
    program_id: Optional[str] = None
    event_id: Optional[str] = None
    customer_id: Optional[str] = None
    invoice_id: Optional[str] = None
    amount: int = 0
    quantity: int = 1
    currency: str = "usd"
    # caller-resolved reward (skips the lookup)
    reward: Optional[RewardTerms] = None
    # precomputed total (manual sales); skips reward rules entirely
    earnings: Optional[int] = None


@dataclass(frozen=True)
class SplitOutcome:
    status: SplitStatus
    primary_earning_id: Optional[uuid.UUID] = None
    split_earning_ids: tuple[uuid.UUID, ...] = ()
    split_ids: tuple[uuid.UUID, ...] = ()
    total_earnings: Optional[int] = None
    reason: Optional[SkipReason] = None
    error: Optional[LedgerError] = None
    fallback: bool = False

    @property
    def created(self) -> bool:
        return self.status == SplitStatus.CREATED


@dataclass(frozen=True)
class ManualSale:
    link_id: uuid.UUID
    amount: int
    recorded_by: str
    payment_processor: str
    currency: str = "usd"
    event_name: str = "Manual Sale"
    customer_id: Optional[str] = None
    invoice_id: Optional[str] = None
    notes: Optional[str] = None
    # operator override: pay commission_amount * user_take_rate / 100
    commission_amount: Optional[int] = None
    user_take_rate: Optional[Decimal] = None


@dataclass
class _Resolved:
    """What the pipeline worked out before writing; read by the fallback."""

    participant_id: Optional[uuid.UUID] = None
    program_id: str = ""
    event_id: str = ""
    total: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)


def _new_event_id(prefix: str = "evt") -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


def split_event_id(event_id: str, participant_id: uuid.UUID) -> str:
    return f"{event_id}_split_{participant_id}"


class CommissionSplitter:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        clock: Callable = utcnow,
        retries: Optional[int] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock
        self._retries = retries

    async def process(self, event: TrackedEvent) -> SplitOutcome:
        return await self._run(event, _Resolved())

    async def process_with_fallback(self, event: TrackedEvent) -> SplitOutcome:
        """
        process(), and when persistence fails, write one Earning for the link
        owner with the full total and no splits.

        Raises the original storage error when the total was never computed or
        the fallback write fails too.
        """
        resolved = _Resolved()
        outcome = await self._run(event, resolved)
        return await self._fallback_if_failed(event, resolved, outcome)

    async def _fallback_if_failed(self, event: TrackedEvent, resolved: _Resolved, outcome: SplitOutcome) -> SplitOutcome:
        if outcome.status != SplitStatus.FAILED:
            return outcome

        if resolved.total is None or resolved.participant_id is None:
            if outcome.error is None:
                raise RuntimeError(f"Split for event {resolved.event_id} failed without an error")
            raise outcome.error

        logger.warning(
            "Split for event {} failed ({}); recording fallback commission of {} for participant {}",
            resolved.event_id,
            outcome.error.message if outcome.error else "-",
            resolved.total,
            resolved.participant_id,
        )

        async def _fallback(uow: UnitOfWork) -> Earning:
            earning = await self._create_earning(
                uow,
                event,
                participant_id=resolved.participant_id,
                program_id=resolved.program_id,
                event_id=resolved.event_id,
                earnings=resolved.total,
            )
            await uow.audit.record(
                action=AuditAction.FALLBACK_COMMISSION.value,
                earning_id=earning.id,
                actor="system",
                source=resolved.extra.get("source", "pipeline"),
                details={
                    "event_id": resolved.event_id,
                    "total_earnings": resolved.total,
                    "error": outcome.error.message if outcome.error else None,
                    **resolved.extra,
                },
            )
            return earning

        earning = await run_in_transaction(
            self._uow_factory, _fallback, retries=self._retries, label="fallback commission"
        )
        return SplitOutcome(
            status=SplitStatus.CREATED,
            primary_earning_id=earning.id,
            total_earnings=resolved.total,
            fallback=True,
        )

    async def record_manual_sale(self, sale: ManualSale) -> SplitOutcome:
        """
        Operator-entered sale on a link. Earnings come from the override
        (commission_amount * user_take_rate) when given, else from the
        program's default sale reward, else DEFAULT_MANUAL_COMMISSION_RATE.
        """
        if sale.amount < 0:
            raise InvalidInputError("Sale amount must not be negative")
        if (sale.commission_amount is None) != (sale.user_take_rate is None):
            raise InvalidInputError("commission_amount and user_take_rate must be given together")

        async def _compute(uow: UnitOfWork) -> int:
            link = await uow.links.get(sale.link_id)
            if link is None:
                raise InvalidInputError(f"Link {sale.link_id} not found")
            if link.participant_id is None:
                raise InvalidInputError(f"Link {sale.link_id} has no owner participant")

            if sale.commission_amount is not None:
                return compute_manual_earnings(sale.commission_amount, sale.user_take_rate)

            reward = None
            if link.program_id:
                policy = await uow.rewards.find_program_default(link.program_id, EventType.SALE.value)
                reward = policy.to_terms() if policy is not None else None
            if reward is None:
                return compute_default_earnings(sale.amount, settings.DEFAULT_MANUAL_COMMISSION_RATE)
            return compute_earnings(reward, Sale(amount=sale.amount, quantity=1))

        earnings = await run_in_transaction(self._uow_factory, _compute, retries=self._retries, label="manual sale")

        tracked = TrackedEvent(
            event=EventType.SALE,
            link_id=sale.link_id,
            event_id=_new_event_id("manual"),
            customer_id=sale.customer_id,
            invoice_id=sale.invoice_id,
            amount=sale.amount,
            quantity=1,
            currency=sale.currency,
            earnings=earnings,
        )
        details = {
            "recorded_by": sale.recorded_by,
            "payment_processor": sale.payment_processor,
            "event_name": sale.event_name,
            "notes": sale.notes or "",
        }
        if sale.commission_amount is not None:
            details["commission_amount"] = sale.commission_amount
            details["user_take_rate"] = str(sale.user_take_rate)

        resolved = _Resolved(extra={"source": "manual", "manual": details})
        outcome = await self._run(tracked, resolved, actor=sale.recorded_by)
        return await self._fallback_if_failed(tracked, resolved, outcome)

    # ------------------------------------------------------------------

    async def _run(self, event: TrackedEvent, resolved: _Resolved, actor: Optional[str] = None) -> SplitOutcome:
        if event.amount < 0 or event.quantity < 0:
            raise InvalidInputError("Event amount and quantity must not be negative")
        if event.earnings is not None and event.earnings < 0:
            raise InvalidInputError("Precomputed earnings must not be negative")

        async def _work(uow: UnitOfWork) -> SplitOutcome:
            return await self._process(uow, event, resolved, actor)

        try:
            return await run_in_transaction(
                self._uow_factory, _work, retries=self._retries, label="commission split"
            )
        except (TransientStorageError, DuplicateRecordError) as e:
            logger.error("Commission split for event {} failed: {}", resolved.event_id or event.event_id, e.message)
            return SplitOutcome(status=SplitStatus.FAILED, total_earnings=resolved.total, error=e)

    async def _process(
        self,
        uow: UnitOfWork,
        event: TrackedEvent,
        resolved: _Resolved,
        actor: Optional[str],
    ) -> SplitOutcome:
        link = await uow.links.get(event.link_id)
        if link is None:
            raise InvalidInputError(f"Link {event.link_id} not found")

        participant_id = event.participant_id or link.participant_id
        if participant_id is None:
            raise InvalidInputError(f"Link {event.link_id} has no owner participant")

        resolved.participant_id = participant_id
        resolved.program_id = event.program_id or link.program_id or ""
        resolved.event_id = resolved.event_id or event.event_id or _new_event_id()
        program_id = resolved.program_id

        if event.earnings is not None:
            total = event.earnings
        else:
            reward = event.reward or await resolve_reward(
                uow, participant_id=participant_id, program_id=program_id, event=event.event
            )
            if reward is None:
                return self._skip(resolved, SkipReason.NO_REWARD)

            if event.event == EventType.SALE and reward.max_duration is not None:
                first = await uow.earnings.first_sale_for(participant_id, event.customer_id)
                if first is not None:
                    if reward.max_duration == 0:
                        return self._skip(resolved, SkipReason.FIRST_SALE_ONLY)
                    if months_between(as_aware(first.created_at), self._clock()) >= reward.max_duration:
                        return self._skip(resolved, SkipReason.MAX_DURATION_REACHED)

            total = compute_earnings(reward, Sale(amount=event.amount, quantity=event.quantity))

            if reward.max_amount is not None:
                so_far = await uow.earnings.sum_toward_cap(participant_id, program_id, event.event.value)
                if so_far >= reward.max_amount:
                    return self._skip(resolved, SkipReason.MAX_AMOUNT_REACHED)
                total = max(0, min(total, reward.max_amount - so_far))

        resolved.total = total

        recipients = await uow.links.split_recipients(link.id)
        if not recipients:
            primary = await self._create_earning(
                uow, event, participant_id=participant_id, program_id=program_id,
                event_id=resolved.event_id, earnings=total,
            )
            await self._audit_created(uow, primary, resolved, actor, owner_share=total, splits=[])
            logger.info("Commission {} created for participant {}: {}", primary.id, participant_id, total)
            return SplitOutcome(status=SplitStatus.CREATED, primary_earning_id=primary.id, total_earnings=total)

        # validate everything before the first write
        phones = [normalize_phone_number(r.phone_number) for r in recipients]
        if len(set(phones)) != len(phones):
            raise InvalidInputError(f"Link {link.id} lists the same recipient phone number more than once")
        allocation = allocate_split(total, [r.split_percent for r in recipients])

        primary = await self._create_earning(
            uow, event, participant_id=participant_id, program_id=program_id,
            event_id=resolved.event_id, earnings=allocation.owner_share,
        )

        now = self._clock()
        split_earning_ids: list[uuid.UUID] = []
        split_ids: list[uuid.UUID] = []
        audit_splits: list[dict[str, Any]] = []
        for recipient, phone, share in zip(recipients, phones, allocation.recipient_shares):
            placeholder = await resolve_or_create(uow, phone)
            account_id = await uow.accounts.first_account_for_participant(placeholder.id)

            secondary = await self._create_earning(
                uow, event, participant_id=placeholder.id, program_id=program_id,
                event_id=split_event_id(resolved.event_id, placeholder.id), earnings=share,
            )
            split = await uow.splits.create(
                earning_id=primary.id,
                split_earning_id=secondary.id,
                participant_id=placeholder.id,
                phone_number=phone,
                split_percent=Decimal(recipient.split_percent),
                earnings=share,
                claimed=account_id is not None,
                claimed_at=now if account_id is not None else None,
                claimed_by_account_id=account_id,
            )
            split_earning_ids.append(secondary.id)
            split_ids.append(split.id)
            audit_splits.append(
                {
                    "split_id": str(split.id),
                    "phone_number": mask_phone_number(phone),
                    "split_percent": str(recipient.split_percent),
                    "earnings": share,
                    "claimed": account_id is not None,
                }
            )

        await self._audit_created(uow, primary, resolved, actor, owner_share=allocation.owner_share, splits=audit_splits)
        logger.info(
            "Commission {} split for participant {}: total={} owner={} recipients={}",
            primary.id,
            participant_id,
            total,
            allocation.owner_share,
            len(split_ids),
        )
        return SplitOutcome(
            status=SplitStatus.CREATED,
            primary_earning_id=primary.id,
            split_earning_ids=tuple(split_earning_ids),
            split_ids=tuple(split_ids),
            total_earnings=total,
        )

    def _skip(self, resolved: _Resolved, reason: SkipReason) -> SplitOutcome:
        logger.info(
            "Skipping commission for participant {} (event {}): {}",
            resolved.participant_id,
            resolved.event_id,
            reason.value,
        )
        return SplitOutcome(status=SplitStatus.SKIPPED, reason=reason)

    async def _create_earning(
        self,
        uow: UnitOfWork,
        event: TrackedEvent,
        *,
        participant_id: uuid.UUID,
        program_id: str,
        event_id: str,
        earnings: int,
    ) -> Earning:
        return await uow.earnings.create(
            participant_id=participant_id,
            program_id=program_id,
            link_id=event.link_id,
            customer_id=event.customer_id,
            event_id=event_id,
            invoice_id=event.invoice_id,
            type=event.event.value,
            amount=event.amount,
            quantity=event.quantity,
            currency=event.currency,
            earnings=earnings,
        )

    async def _audit_created(
        self,
        uow: UnitOfWork,
        primary: Earning,
        resolved: _Resolved,
        actor: Optional[str],
        *,
        owner_share: int,
        splits: list[dict[str, Any]],
    ) -> None:
        source = resolved.extra.get("source", "pipeline")
        details: dict[str, Any] = {
            "event_id": resolved.event_id,
            "total_earnings": resolved.total,
            "owner_share": owner_share,
            "splits": splits,
        }
        if source == "manual":
            await uow.audit.record(
                action=AuditAction.MANUAL_SALE_RECORDED.value,
                earning_id=primary.id,
                actor=actor,
                source=source,
                details={**details, **resolved.extra.get("manual", {})},
            )
        else:
            await uow.audit.record(
                action=AuditAction.COMMISSION_CREATED.value,
                earning_id=primary.id,
                actor=actor or "system",
                source=source,
                details=details,
            )
