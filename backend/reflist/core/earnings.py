# backend/reflist/core/earnings.py
"""
Earnings calculation.

Pure functions only: no I/O, no clock. Identical inputs always give identical
outputs so historical sales can be replayed for audits. All amounts are
integer minor units (cents); percentages are Decimal values in [0, 100].

Duration and lifetime-cap enforcement live in the commission pipeline
(reflist.services.commission_splitter), not here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from reflist.core.enums import EventType, RewardType
from reflist.core.errors import InvalidInputError

HUNDRED = Decimal("100")
ZERO = Decimal("0")


@dataclass(frozen=True)
class RewardTerms:
    """Snapshot of a reward policy, detached from storage."""

    event: EventType
    type: RewardType
    amount: Decimal
    max_amount: Optional[int] = None
    max_duration: Optional[int] = None  # months after the first sale; 0 = first sale only


@dataclass(frozen=True)
class Sale:
    amount: int = 0
    quantity: int = 1


@dataclass(frozen=True)
class SplitAllocation:
    owner_percent: Decimal
    owner_share: int
    recipient_shares: tuple[int, ...]

    @property
    def allocated(self) -> int:
        return self.owner_share + sum(self.recipient_shares)


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def _round_half_up(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def clamp_percent(value) -> Decimal:
    v = _to_decimal(value)
    return max(ZERO, min(HUNDRED, v))


def compute_earnings(reward: RewardTerms, sale: Sale) -> int:
    """
    Earnings for one tracked event.

      non-sale event        -> reward.amount * quantity
      sale, percentage      -> round(sale.amount * reward.amount / 100)
      sale, flat            -> reward.amount * quantity
    The result is clamped to reward.max_amount when set.
    """
    if sale.amount < 0 or sale.quantity < 0:
        raise InvalidInputError("Sale amount and quantity must not be negative")

    amount = _to_decimal(reward.amount)
    if amount < ZERO:
        raise InvalidInputError("Reward amount must not be negative")

    if reward.event == EventType.SALE and reward.type == RewardType.PERCENTAGE:
        earnings = _round_half_up(Decimal(sale.amount) * amount / HUNDRED)
    else:
        earnings = _round_half_up(amount * sale.quantity)

    if reward.max_amount is not None and earnings > reward.max_amount:
        earnings = reward.max_amount

    return earnings


def compute_manual_earnings(commission_amount: int, split_percentage) -> int:
    """
    Operator override: floor(commission_amount * clamp(split_percentage, 0, 100) / 100).

    Out-of-range percentages are clamped, so the result never exceeds
    commission_amount.
    """
    if commission_amount < 0:
        raise InvalidInputError("Commission amount must not be negative")
    return _floor(Decimal(commission_amount) * clamp_percent(split_percentage) / HUNDRED)


def compute_default_earnings(amount: int, rate) -> int:
    """Manual sales on links without a program reward: floor(amount * rate / 100)."""
    return compute_manual_earnings(amount, rate)


def allocate_split(total: int, recipient_percents: Sequence) -> SplitAllocation:
    """
    Split `total` between the link owner and phone-number recipients.

    The owner keeps (100 - sum(recipient percents))%. Every share is floored,
    so owner_share + sum(recipient_shares) <= total; the remainder (at most
    one cent per party) stays unallocated.
    """
    if total < 0:
        raise InvalidInputError("Total earnings must not be negative")

    percents = [_to_decimal(p) for p in recipient_percents]
    for p in percents:
        if p <= ZERO or p > HUNDRED:
            raise InvalidInputError("Each split percentage must be greater than 0 and at most 100")

    split_total = sum(percents, ZERO)
    if split_total > HUNDRED:
        raise InvalidInputError(f"Split percentages add up to {split_total}%, which is over 100%")

    owner_percent = HUNDRED - split_total
    owner_share = _floor(Decimal(total) * owner_percent / HUNDRED)
    shares = tuple(_floor(Decimal(total) * p / HUNDRED) for p in percents)

    return SplitAllocation(owner_percent=owner_percent, owner_share=owner_share, recipient_shares=shares)


def months_between(start: datetime, end: datetime) -> int:
    """Whole calendar months elapsed from start to end (never negative)."""
    if end <= start:
        return 0

    months = (end.year - start.year) * 12 + (end.month - start.month)
    # a month only counts once the same day-of-month and time has been reached
    if (end.day, end.time()) < (start.day, start.time()):
        months -= 1
    return max(0, months)
