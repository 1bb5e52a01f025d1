# backend/reflist/core/phone.py
from __future__ import annotations

import re
from typing import Optional

from reflist.core.errors import InvalidInputError

_NON_DIGITS_RE = re.compile(r"\D")

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15  # E.164


def normalize_phone_number(value: Optional[str]) -> str:
    """
    Canonical form used as the phone identity of split recipients:
    a leading '+' is kept if present, every other non-digit is dropped.

      "+1 (555) 010-2030" -> "+15550102030"
      "555.010.2030"      -> "5550102030"
    """
    if value is None:
        raise InvalidInputError("Phone number is required")

    v = value.strip()
    if not v:
        raise InvalidInputError("Phone number is required")

    digits = _NON_DIGITS_RE.sub("", v)
    if not (MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS):
        raise InvalidInputError(
            f"Phone number must contain between {MIN_PHONE_DIGITS} and {MAX_PHONE_DIGITS} digits"
        )

    return f"+{digits}" if v.startswith("+") else digits


def mask_phone_number(phone_number: str) -> str:
    """For logs: keep the last 4 digits only."""
    if len(phone_number) <= 4:
        return "****"
    return "*" * (len(phone_number) - 4) + phone_number[-4:]
