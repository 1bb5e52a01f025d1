# backend/reflist/services/pending_recipients.py
"""
Placeholder participants for split recipients who only exist as a phone number.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from reflist.core.enums import ParticipantStatus
from reflist.core.errors import DuplicateRecordError, TransientStorageError
from reflist.core.phone import mask_phone_number, normalize_phone_number
from reflist.models.participant import Participant
from reflist.repositories.protocols import UnitOfWork

UNKNOWN_PARTICIPANT_NAME = "Unknown Partner"


async def resolve_or_create(
    uow: UnitOfWork,
    phone_number: str,
    display_name_hint: Optional[str] = None,
) -> Participant:
    """
    Find the participant carrying this phone number, or create a placeholder.

    Runs inside the caller's unit of work. Raises InvalidInputError for a
    malformed phone number.
    """
    phone = normalize_phone_number(phone_number)

    existing = await uow.participants.find_by_phone(phone)
    if existing is not None:
        return existing

    try:
        created = await uow.participants.create(
            name=(display_name_hint or "").strip() or UNKNOWN_PARTICIPANT_NAME,
            status=ParticipantStatus.PLACEHOLDER.value,
            phone_number=phone,
        )
    except DuplicateRecordError:
        # a concurrent writer inserted the same phone first
        winner = await uow.participants.find_by_phone(phone)
        if winner is None:
            # committed after this transaction's snapshot; re-run the transaction
            raise TransientStorageError(
                f"Participant for {mask_phone_number(phone)} was created concurrently",
                retryable=True,
            )
        logger.info("Placeholder for {} created concurrently, reusing {}", mask_phone_number(phone), winner.id)
        return winner

    logger.info("Created placeholder participant {} for {}", created.id, mask_phone_number(phone))
    return created
