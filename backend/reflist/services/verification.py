# backend/reflist/services/verification.py
"""
Phone ownership verification.

LocalTokenVerificationGateway keeps bcrypt hashes of one-time secrets in
phone_verification_tokens:
  - SMS codes (6 digits, PHONE_CODE_TTL_MINUTES)
  - claim tickets minted after a code checks out (CLAIM_TICKET_TTL_MINUTES);
    a claim must present one

Both are single use: a successful check deletes the row with a guarded
delete, so two concurrent checks of the same secret cannot both succeed.
A secret is also thrown away after PHONE_CODE_MAX_ATTEMPTS wrong guesses.
"""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Protocol

import bcrypt
from loguru import logger

from reflist.core.clock import as_aware, utcnow
from reflist.core.config import settings
from reflist.core.enums import VerificationPurpose
from reflist.core.phone import mask_phone_number, normalize_phone_number
from reflist.db.uow import run_in_transaction
from reflist.repositories.protocols import UnitOfWork, UnitOfWorkFactory

CODE_DIGITS = 6


class VerificationStatus(str, enum.Enum):
    VERIFIED = "verified"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SendResult:
    ok: bool
    message: str


class VerificationGateway(Protocol):
    async def send_code(self, phone_number: str) -> SendResult: ...

    async def check_code(self, phone_number: str, code: str) -> VerificationStatus: ...


class SmsSender(Protocol):
    async def send(self, phone_number: str, body: str) -> None: ...


class LoggingSmsSender:
    """Development sender: writes the message to the log instead of an SMS provider."""

    async def send(self, phone_number: str, body: str) -> None:
        logger.info("SMS to {}: {}", mask_phone_number(phone_number), body)


def _hash_secret(secret: str, rounds: int) -> str:
    return bcrypt.hashpw(secret.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def _matches(secret: str, token_hash: str) -> bool:
    return bcrypt.checkpw(secret.encode(), token_hash.encode())


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"


class LocalTokenVerificationGateway:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        sms_sender: SmsSender,
        *,
        code_ttl_minutes: Optional[int] = None,
        ticket_ttl_minutes: Optional[int] = None,
        bcrypt_rounds: Optional[int] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Callable[[], str] = generate_code,
    ) -> None:
        self._uow_factory = uow_factory
        self._sms = sms_sender
        self._code_ttl = timedelta(minutes=code_ttl_minutes or settings.PHONE_CODE_TTL_MINUTES)
        self._ticket_ttl = timedelta(minutes=ticket_ttl_minutes or settings.CLAIM_TICKET_TTL_MINUTES)
        self._rounds = bcrypt_rounds or settings.PHONE_CODE_BCRYPT_ROUNDS
        self._max_attempts = max_attempts or settings.PHONE_CODE_MAX_ATTEMPTS
        self._clock = clock
        self._code_generator = code_generator

    async def send_code(self, phone_number: str) -> SendResult:
        phone = normalize_phone_number(phone_number)
        code = self._code_generator()
        await self._store_secret(phone, VerificationPurpose.CODE, code, self._code_ttl)

        minutes = int(self._code_ttl.total_seconds() // 60)
        try:
            await self._sms.send(phone, f"Your verification code is {code}. It expires in {minutes} minutes.")
        except Exception as e:
            logger.error("Failed to send verification code to {}: {}", mask_phone_number(phone), e)
            return SendResult(ok=False, message="Failed to send verification code")

        logger.info("Verification code sent to {}", mask_phone_number(phone))
        return SendResult(ok=True, message="Verification code sent")

    async def check_code(self, phone_number: str, code: str) -> VerificationStatus:
        phone = normalize_phone_number(phone_number)
        status = await self._redeem(phone, VerificationPurpose.CODE, (code or "").strip())
        logger.info("Verification code check for {}: {}", mask_phone_number(phone), status.value)
        return status

    async def issue_claim_ticket(self, phone_number: str) -> str:
        """Single-use proof that `phone_number` was just verified."""
        phone = normalize_phone_number(phone_number)
        ticket = secrets.token_urlsafe(32)
        await self._store_secret(phone, VerificationPurpose.CLAIM_TICKET, ticket, self._ticket_ttl)
        return ticket

    async def redeem_claim_ticket(self, phone_number: str, ticket: Optional[str]) -> bool:
        async def _work(uow: UnitOfWork) -> bool:
            return await self.redeem_claim_ticket_in(uow, phone_number, ticket)

        return await run_in_transaction(self._uow_factory, _work, label="claim ticket")

    async def redeem_claim_ticket_in(self, uow: UnitOfWork, phone_number: str, ticket: Optional[str]) -> bool:
        """redeem_claim_ticket inside the caller's transaction: a rollback puts the ticket back."""
        if not ticket:
            return False
        phone = normalize_phone_number(phone_number)
        status = await self._redeem_in(uow, phone, VerificationPurpose.CLAIM_TICKET, ticket.strip())
        if status != VerificationStatus.VERIFIED:
            logger.warning("Claim ticket for {} rejected: {}", mask_phone_number(phone), status.value)
        return status == VerificationStatus.VERIFIED

    def claim_ticket_authorizer(
        self, phone_number: str, ticket: Optional[str]
    ) -> Callable[[UnitOfWork], Awaitable[bool]]:
        """Adapter for ClaimService.claim(authorize=...)."""

        async def _authorize(uow: UnitOfWork) -> bool:
            return await self.redeem_claim_ticket_in(uow, phone_number, ticket)

        return _authorize

    # ------------------------------------------------------------------

    async def _store_secret(
        self,
        phone: str,
        purpose: VerificationPurpose,
        secret: str,
        ttl: timedelta,
    ) -> None:
        token_hash = _hash_secret(secret, self._rounds)
        expires_at = self._clock() + ttl

        async def _work(uow: UnitOfWork) -> None:
            # only the newest secret per phone/purpose stays valid
            await uow.tokens.delete_for(phone, purpose.value)
            await uow.tokens.create(
                phone_number=phone,
                purpose=purpose.value,
                token_hash=token_hash,
                expires_at=expires_at,
            )

        await run_in_transaction(self._uow_factory, _work, label="verification token")

    async def _redeem(self, phone: str, purpose: VerificationPurpose, secret: str) -> VerificationStatus:
        async def _work(uow: UnitOfWork) -> VerificationStatus:
            return await self._redeem_in(uow, phone, purpose, secret)

        return await run_in_transaction(self._uow_factory, _work, label="verification check")

    async def _redeem_in(
        self, uow: UnitOfWork, phone: str, purpose: VerificationPurpose, secret: str
    ) -> VerificationStatus:
        if not secret:
            return VerificationStatus.INVALID

        tokens = await uow.tokens.list_for(phone, purpose.value)
        if not tokens:
            return VerificationStatus.INVALID

        now = self._clock()
        live = [t for t in tokens if as_aware(t.expires_at) > now]
        if not live:
            for t in tokens:
                await uow.tokens.consume(t.id)
            return VerificationStatus.EXPIRED

        for t in live:
            if _matches(secret, t.token_hash):
                if await uow.tokens.consume(t.id):
                    return VerificationStatus.VERIFIED
                return VerificationStatus.INVALID

        # a wrong guess counts against every live secret; too many and it is gone
        for t in live:
            attempts = await uow.tokens.record_failed_attempt(t.id)
            if attempts >= self._max_attempts:
                await uow.tokens.consume(t.id)
                logger.warning(
                    "Discarded {} for {} after {} wrong attempts",
                    purpose.value,
                    mask_phone_number(phone),
                    attempts,
                )
        return VerificationStatus.INVALID
