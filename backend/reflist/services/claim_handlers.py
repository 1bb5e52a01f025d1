# backend/reflist/services/claim_handlers.py
"""
Bus subscribers that turn signup/login/verification events into claims.

A post-signup or post-login claim only runs when the event carries a claim
ticket that LocalTokenVerificationGateway accepts for that phone number.
"""

from __future__ import annotations

import uuid
from typing import Optional

from loguru import logger

from reflist.core.config import settings
from reflist.core.errors import ClaimNotAuthorizedError
from reflist.core.phone import mask_phone_number
from reflist.services.claim_service import ClaimResult, ClaimService
from reflist.services.notifications import AccountCreated, LoggedIn, NotificationBus, PhoneVerified
from reflist.services.verification import LocalTokenVerificationGateway


class ClaimHandlers:
    def __init__(
        self,
        claim_service: ClaimService,
        gateway: LocalTokenVerificationGateway,
        *,
        auto_claim_on_phone_verified: Optional[bool] = None,
    ) -> None:
        self.claim_service = claim_service
        self.gateway = gateway
        self.auto_claim_on_phone_verified = (
            settings.AUTO_CLAIM_ON_PHONE_VERIFIED
            if auto_claim_on_phone_verified is None
            else auto_claim_on_phone_verified
        )

    async def on_phone_verified(self, event: PhoneVerified) -> Optional[ClaimResult]:
        if not self.auto_claim_on_phone_verified or event.account_id is None:
            logger.info(
                "Phone {} verified; claim left to the user (account={})",
                mask_phone_number(event.phone_number),
                event.account_id,
            )
            return None
        return await self.claim_service.claim(event.phone_number, event.account_id)

    async def on_account_created(self, event: AccountCreated) -> Optional[ClaimResult]:
        return await self._claim_with_ticket(event.account_id, event.phone_number, event.claim_ticket, "signup")

    async def on_logged_in(self, event: LoggedIn) -> Optional[ClaimResult]:
        return await self._claim_with_ticket(
            event.account_id, event.phone_number_pending_claim, event.claim_ticket, "login"
        )

    async def _claim_with_ticket(
        self,
        account_id: uuid.UUID,
        phone_number: Optional[str],
        ticket: Optional[str],
        trigger: str,
    ) -> Optional[ClaimResult]:
        if not phone_number:
            return None
        if not ticket:
            logger.warning(
                "Skipping {} claim for account {}: no claim ticket for {}",
                trigger,
                account_id,
                mask_phone_number(phone_number),
            )
            return None
        try:
            return await self.claim_service.claim(
                phone_number,
                account_id,
                authorize=self.gateway.claim_ticket_authorizer(phone_number, ticket),
            )
        except ClaimNotAuthorizedError:
            logger.warning(
                "Skipping {} claim for account {}: claim ticket for {} was not accepted",
                trigger,
                account_id,
                mask_phone_number(phone_number),
            )
            return None


def register_claim_handlers(bus: NotificationBus, handlers: ClaimHandlers) -> None:
    """One-time startup wiring; calling it again subscribes nothing new."""
    added = [
        bus.subscribe(PhoneVerified, handlers.on_phone_verified),
        bus.subscribe(AccountCreated, handlers.on_account_created),
        bus.subscribe(LoggedIn, handlers.on_logged_in),
    ]
    if any(added):
        logger.info("Claim handlers registered")
