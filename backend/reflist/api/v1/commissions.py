# backend/reflist/api/v1/commissions.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from reflist.api.deps.accounts import get_current_account
from reflist.api.deps.services import get_claim_service, get_verification_gateway
from reflist.api.errors import ledger_http_error
from reflist.core.errors import LedgerError
from reflist.models.account import Account
from reflist.schemas.commissions import (
    ClaimRequest,
    ClaimResponse,
    ParticipantSummaryOut,
    UnclaimedItemOut,
    UnclaimedPreviewOut,
)
from reflist.services.claim_service import ClaimService, UnclaimedPreview
from reflist.services.verification import LocalTokenVerificationGateway

router = APIRouter(prefix="/commissions", tags=["commissions"])


def to_preview_out(preview: UnclaimedPreview) -> UnclaimedPreviewOut:
    return UnclaimedPreviewOut(
        phone_number=preview.phone_number,
        count=preview.count,
        total_earnings=preview.total_earnings,
        items=[
            UnclaimedItemOut(
                split_id=str(i.split_id),
                earnings=i.earnings,
                currency=i.currency,
                label=i.label,
                program_id=i.program_id,
                created_at=i.created_at,
            )
            for i in preview.items
        ],
    )


@router.get("/unclaimed", response_model=UnclaimedPreviewOut)
async def list_unclaimed(
    phone_number: str = Query(..., min_length=1, max_length=32),
    claim_service: ClaimService = Depends(get_claim_service),
) -> UnclaimedPreviewOut:
    """
    Read-only preview of the unclaimed earnings waiting for a phone number.
    """
    try:
        preview = await claim_service.list_unclaimed(phone_number)
    except LedgerError as e:
        raise ledger_http_error(e)
    return to_preview_out(preview)


@router.post("/claim", response_model=ClaimResponse)
async def claim(
    payload: ClaimRequest,
    account: Account = Depends(get_current_account),
    gateway: LocalTokenVerificationGateway = Depends(get_verification_gateway),
    claim_service: ClaimService = Depends(get_claim_service),
) -> ClaimResponse:
    """
    Body: {"phone_number": "+15550102030", "claim_ticket": "...", "participant_ids": [...]}

    Credits every unclaimed split for the phone number to the caller. The
    ticket from /phone-verification/verify proves ownership of the number; it
    is spent only by a claim that commits, so a 503 can be retried with it.
    When nothing is left to claim the outcome says so and the ticket is kept.
    """
    try:
        result = await claim_service.claim(
            payload.phone_number,
            account.id,
            payload.participant_ids,
            authorize=gateway.claim_ticket_authorizer(payload.phone_number, payload.claim_ticket),
        )
    except LedgerError as e:
        raise ledger_http_error(e)

    return ClaimResponse(
        outcome=result.outcome.value,
        claimed_count=result.claimed_count,
        total_earnings=result.total_earnings,
        participants=[
            ParticipantSummaryOut(
                id=str(p.id),
                name=p.name,
                role=p.role,
                is_default=p.is_default,
                newly_associated=p.newly_associated,
            )
            for p in result.participants
        ],
        workspace_id=str(result.workspace_id) if result.workspace_id else None,
    )
