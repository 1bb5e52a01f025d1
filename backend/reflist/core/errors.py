# backend/reflist/core/errors.py
"""
Ledger error taxonomy.

Skips ("policy not applicable") and no-op claims are NOT exceptions: they are
returned as normal results (see SplitOutcome / ClaimResult). Everything here
propagates to the caller.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all referral ledger errors."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(LedgerError):
    """
    Malformed phone number, missing link/participant/account reference,
    split percentages over 100, negative amounts.

    Raised before any write.
    """

    code = "INVALID_INPUT"


class NoEligibleParticipantError(LedgerError):
    """A claim could not resolve any participant to credit for the account."""

    code = "NO_ELIGIBLE_PARTICIPANT"


class ClaimNotAuthorizedError(LedgerError):
    """The claim ticket presented for a phone number was missing, expired or already used."""

    code = "INVALID_CLAIM_TICKET"


class TransientStorageError(LedgerError):
    """
    Transaction timeout, serialization failure, deadlock or lost connection.

    The unit of work is all-or-nothing, so the caller may retry the whole
    operation.
    """

    code = "TRANSIENT_STORAGE_FAILURE"

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        # serialization failures and deadlocks: re-running the transaction is expected to succeed
        self.retryable = retryable


class DuplicateRecordError(LedgerError):
    """A uniqueness constraint rejected an insert (e.g. participant phone number)."""

    code = "DUPLICATE_RECORD"
