# reflist/core/enums.py

import enum


class EventType(str, enum.Enum):
    CLICK = "click"
    LEAD = "lead"
    SALE = "sale"


class RewardType(str, enum.Enum):
    PERCENTAGE = "percentage"  # percent of the sale amount
    FLAT = "flat"              # fixed amount per unit


class EarningStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    PAID = "paid"
    CANCELED = "canceled"
    DISPUTED = "disputed"


# Statuses that count toward a reward's lifetime max_amount
CAP_COUNTED_STATUSES = (EarningStatus.PENDING, EarningStatus.PROCESSED, EarningStatus.PAID)


class ParticipantStatus(str, enum.Enum):
    PLACEHOLDER = "placeholder"  # created from a phone number, no account yet
    ACTIVE = "active"


class VerificationPurpose(str, enum.Enum):
    CODE = "code"
    CLAIM_TICKET = "claim_ticket"


class AuditAction(str, enum.Enum):
    COMMISSION_CREATED = "commission_created"
    MANUAL_SALE_RECORDED = "manual_sale_recorded"
    FALLBACK_COMMISSION = "fallback_commission"
    SPLITS_CLAIMED = "splits_claimed"
