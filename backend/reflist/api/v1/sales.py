# backend/reflist/api/v1/sales.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from reflist.api.deps.accounts import get_current_account, require_admin
from reflist.api.deps.services import get_splitter, get_uow_factory
from reflist.api.errors import ledger_http_error
from reflist.core.errors import LedgerError
from reflist.models.account import Account
from reflist.repositories.protocols import UnitOfWorkFactory
from reflist.schemas.sales import EarningOut, EarningsPageOut, ManualSaleIn, SplitOutcomeOut, TrackedEventIn
from reflist.services.commission_splitter import CommissionSplitter, ManualSale, SplitOutcome, TrackedEvent

router = APIRouter(prefix="/sales", tags=["sales"])


def _outcome_out(outcome: SplitOutcome) -> SplitOutcomeOut:
    return SplitOutcomeOut(
        status=outcome.status.value,
        reason=outcome.reason.value if outcome.reason else None,
        fallback=outcome.fallback,
        primary_earning_id=str(outcome.primary_earning_id) if outcome.primary_earning_id else None,
        split_earning_ids=[str(i) for i in outcome.split_earning_ids],
        total_earnings=outcome.total_earnings,
    )


@router.post("/events", response_model=SplitOutcomeOut)
async def record_event(
    payload: TrackedEventIn,
    _admin: Account = Depends(require_admin),
    splitter: CommissionSplitter = Depends(get_splitter),
) -> SplitOutcomeOut:
    """
    Runs a tracked click/lead/sale through the commission pipeline.
    Skips (no reward, first-sale-only, duration or cap reached) are 200s with
    status "skipped" and a reason.
    """
    event = TrackedEvent(
        event=payload.event,
        link_id=payload.link_id,
        participant_id=payload.participant_id,
        program_id=payload.program_id,
        event_id=payload.event_id,
        customer_id=payload.customer_id,
        invoice_id=payload.invoice_id,
        amount=payload.amount,
        quantity=payload.quantity,
        currency=payload.currency.lower(),
    )
    try:
        outcome = await splitter.process_with_fallback(event)
    except LedgerError as e:
        raise ledger_http_error(e)
    return _outcome_out(outcome)


@router.post("/manual", response_model=SplitOutcomeOut)
async def record_manual_sale(
    payload: ManualSaleIn,
    admin: Account = Depends(require_admin),
    splitter: CommissionSplitter = Depends(get_splitter),
) -> SplitOutcomeOut:
    """
    Admin-entered sale. Who recorded it, the payment processor and notes go
    to the audit trail.
    """
    sale = ManualSale(
        link_id=payload.link_id,
        amount=payload.amount,
        recorded_by=admin.email,
        payment_processor=payload.payment_processor,
        currency=payload.currency.lower(),
        event_name=payload.event_name,
        customer_id=payload.customer_id,
        invoice_id=payload.invoice_id,
        notes=payload.notes,
        commission_amount=payload.commission_amount,
        user_take_rate=payload.user_take_rate,
    )
    try:
        outcome = await splitter.record_manual_sale(sale)
    except LedgerError as e:
        raise ledger_http_error(e)
    return _outcome_out(outcome)


@router.get("/me/earnings", response_model=EarningsPageOut)
async def list_my_earnings(
    account: Account = Depends(get_current_account),
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """
    Earnings ledger for every participant the caller is associated with.
    Pagination:
      - limit (1..100)
      - offset (>=0)
    """
    async with uow_factory() as uow:
        participants = await uow.participants.list_for_account(account.id)
        rows, total = await uow.earnings.list_for_participants(
            [p.id for p in participants], limit=limit, offset=offset
        )

    items: list[EarningOut] = []
    for e in rows:
        items.append(
            EarningOut(
                id=str(e.id),
                participant_id=str(e.participant_id),
                program_id=e.program_id,
                link_id=str(e.link_id) if e.link_id else None,
                event_id=e.event_id,
                type=e.type,
                amount=e.amount,
                quantity=e.quantity,
                currency=e.currency,
                earnings=e.earnings,
                status=e.status,
                created_at=e.created_at,
            )
        )

    return EarningsPageOut(items=items, limit=limit, offset=offset, total=int(total))
