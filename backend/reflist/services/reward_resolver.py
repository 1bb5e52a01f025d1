# backend/reflist/services/reward_resolver.py
from __future__ import annotations

import uuid
from typing import Optional

from reflist.core.earnings import RewardTerms
from reflist.core.enums import EventType
from reflist.repositories.protocols import UnitOfWork


async def resolve_reward(
    uow: UnitOfWork,
    *,
    participant_id: uuid.UUID,
    program_id: Optional[str],
    event: EventType,
) -> Optional[RewardTerms]:
    """
    Reward that applies to this participant for this program/event.

    A participant-specific policy wins over the program default. None means
    there is nothing to pay; callers skip commission creation.
    """
    if not program_id:
        return None

    policy = await uow.rewards.find_for_participant(participant_id, program_id, event.value)
    if policy is None:
        policy = await uow.rewards.find_program_default(program_id, event.value)
    if policy is None:
        return None
    return policy.to_terms()
