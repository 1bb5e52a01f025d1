# backend/reflist/api/v1/phone_verification.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from reflist.api.deps.accounts import get_optional_account
from reflist.api.deps.rate_limit import limit_phone_verification
from reflist.api.deps.services import get_bus, get_claim_service, get_verification_gateway
from reflist.api.errors import ledger_http_error
from reflist.api.v1.commissions import to_preview_out
from reflist.core.config import settings
from reflist.core.errors import LedgerError
from reflist.models.account import Account
from reflist.schemas.phone_verification import (
    PhoneSendRequest,
    PhoneSendResponse,
    PhoneVerifyRequest,
    PhoneVerifyResponse,
)
from reflist.services.claim_service import ClaimService
from reflist.services.notifications import NotificationBus, PhoneVerified
from reflist.services.verification import LocalTokenVerificationGateway, VerificationStatus

router = APIRouter(
    prefix="/phone-verification",
    tags=["phone-verification"],
    dependencies=[Depends(limit_phone_verification)],
)


@router.post("/send", response_model=PhoneSendResponse)
async def send_code(
    payload: PhoneSendRequest,
    gateway: LocalTokenVerificationGateway = Depends(get_verification_gateway),
) -> PhoneSendResponse:
    """
    Body: {"phone_number": "+15550102030"}
    Sends a 6-digit code by SMS. Any earlier code for the number stops working.
    """
    try:
        result = await gateway.send_code(payload.phone_number)
    except LedgerError as e:
        raise ledger_http_error(e)

    return PhoneSendResponse(ok=result.ok, message=result.message, expires_in_minutes=settings.PHONE_CODE_TTL_MINUTES)


@router.post("/verify", response_model=PhoneVerifyResponse)
async def verify_code(
    payload: PhoneVerifyRequest,
    account: Optional[Account] = Depends(get_optional_account),
    gateway: LocalTokenVerificationGateway = Depends(get_verification_gateway),
    claim_service: ClaimService = Depends(get_claim_service),
    bus: NotificationBus = Depends(get_bus),
) -> PhoneVerifyResponse:
    """
    Body: {"phone_number": "+15550102030", "code": "123456"}

    On success returns a single-use claim ticket and the preview of what the
    number can claim. The ticket is presented to POST /commissions/claim or
    carried through signup/login (/auth/verify-code).
    """
    try:
        status = await gateway.check_code(payload.phone_number, payload.code)
        if status != VerificationStatus.VERIFIED:
            return PhoneVerifyResponse(status=status.value, verified=False, phone_number=payload.phone_number)

        ticket = await gateway.issue_claim_ticket(payload.phone_number)
        preview = await claim_service.list_unclaimed(payload.phone_number)
    except LedgerError as e:
        raise ledger_http_error(e)

    await bus.publish(PhoneVerified(phone_number=payload.phone_number, account_id=account.id if account else None))

    return PhoneVerifyResponse(
        status=status.value,
        verified=True,
        phone_number=payload.phone_number,
        claim_ticket=ticket,
        claim_ticket_expires_in_minutes=settings.CLAIM_TICKET_TTL_MINUTES,
        unclaimed=to_preview_out(preview),
    )
