# backend/reflist/api/errors.py
from __future__ import annotations

from fastapi import HTTPException, status

from reflist.core.errors import (
    ClaimNotAuthorizedError,
    DuplicateRecordError,
    InvalidInputError,
    LedgerError,
    NoEligibleParticipantError,
    TransientStorageError,
)


def ledger_http_error(e: LedgerError) -> HTTPException:
    """Map a ledger error onto the API's {"code", "message"} error detail."""
    if isinstance(e, (InvalidInputError, NoEligibleParticipantError)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(e, TransientStorageError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": e.code, "message": "Temporary storage failure. Please retry."},
            headers={"Retry-After": "1"},
        )
    elif isinstance(e, ClaimNotAuthorizedError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": e.code, "message": "Verify the phone number again to claim."},
        )
    elif isinstance(e, DuplicateRecordError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail={"code": e.code, "message": e.message})
