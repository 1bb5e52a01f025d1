# backend/reflist/api/v1/auth.py
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from reflist.api.deps.accounts import get_current_account
from reflist.api.deps.services import get_bus, get_uow_factory
from reflist.core.clock import as_aware, utcnow
from reflist.core.config import settings
from reflist.core.security import (
    create_access_token,
    generate_login_code,
    hash_login_code,
    login_code_matches,
)
from reflist.models.account import Account
from reflist.repositories.protocols import UnitOfWorkFactory
from reflist.schemas.auth import MagicCodeRequest, MagicCodeVerify, MeResponse, ParticipantOut, TokenResponse
from reflist.services.notifications import AccountCreated, LoggedIn, NotificationBus

router = APIRouter(prefix="/auth", tags=["auth"])

MAGIC_CODE_EXPIRY_MINUTES = 10


def _should_return_magic_code_in_response() -> bool:
    """
    Never return the OTP outside dev; in development it is returned to
    simplify Swagger testing.
    """
    return not settings.is_production and (settings.ENVIRONMENT or "").strip().lower() != "staging"


@router.post("/request-code")
async def request_code(payload: MagicCodeRequest, uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)):
    """
    Body: {"email": "user@example.com"}
    Generates a magic code (its hash is stored on the account record). Unknown emails get
    an account created on the spot.
    """
    email = payload.email.strip().lower()

    code = generate_login_code()
    expires_at = utcnow() + timedelta(minutes=MAGIC_CODE_EXPIRY_MINUTES)

    async with uow_factory() as uow:
        account = await uow.accounts.get_by_email(email)
        if account is None:
            account = await uow.accounts.create(email=email, name=payload.name)
        await uow.accounts.save(account, magic_code=hash_login_code(code), magic_code_expires_at=expires_at)
        await uow.commit()

    resp = {"status": "ok", "expires_in_minutes": MAGIC_CODE_EXPIRY_MINUTES}
    if _should_return_magic_code_in_response():
        resp["code"] = code
    return resp


@router.post("/verify-code", response_model=TokenResponse)
async def verify_code(
    payload: MagicCodeVerify,
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    bus: NotificationBus = Depends(get_bus),
) -> TokenResponse:
    """
    Body: {"email":"user@example.com","code":"123456",
           "phone_number": "+15550102030", "claim_ticket": "..."}
    Returns: access_token

    The optional phone_number + claim_ticket (from /phone-verification/verify)
    ride along on the AccountCreated / LoggedIn notification so the phone's
    pending earnings are claimed for this account.
    """
    email = payload.email.strip().lower()
    code = payload.code.strip()

    if not code:
        raise HTTPException(status_code=400, detail="code is required")

    async with uow_factory() as uow:
        account = await uow.accounts.get_by_email(email)

        if not account or not account.magic_code or not account.magic_code_expires_at:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

        if not login_code_matches(code, account.magic_code):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

        if as_aware(account.magic_code_expires_at) < utcnow():
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Code expired")

        if not account.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account inactive")

        is_new_account = account.last_login_at is None

        # One-time use: clear after successful verification
        await uow.accounts.save(account, magic_code=None, magic_code_expires_at=None, last_login_at=utcnow())
        await uow.commit()

    if is_new_account:
        event = AccountCreated(
            account_id=account.id,
            email=account.email,
            phone_number=payload.phone_number,
            claim_ticket=payload.claim_ticket,
        )
    else:
        event = LoggedIn(
            account_id=account.id,
            phone_number_pending_claim=payload.phone_number,
            claim_ticket=payload.claim_ticket,
        )
    await bus.publish(event)
    logger.info("Account {} signed in (new={})", account.id, is_new_account)

    access_token = create_access_token(account.id, expires_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return TokenResponse(access_token=access_token, is_new_account=is_new_account)


@router.get("/me", response_model=MeResponse)
async def me(
    account: Account = Depends(get_current_account),
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> MeResponse:
    """
    Returns the current account and the participants it is associated with.
    """
    async with uow_factory() as uow:
        participants = await uow.participants.list_for_account(account.id)

    return MeResponse(
        id=str(account.id),
        email=account.email,
        name=account.name,
        is_active=account.is_active,
        is_admin=account.is_admin,
        default_participant_id=str(account.default_participant_id) if account.default_participant_id else None,
        participants=[
            ParticipantOut(id=str(p.id), name=p.name, phone_number=p.phone_number, status=p.status)
            for p in participants
        ],
    )
