# backend/reflist/core/security.py
"""
Account authentication: bearer JWTs and the e-mail magic codes that mint them.

Magic codes are kept as bcrypt hashes on the account row, like the phone
verification secrets.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from reflist.core.config import settings

TOKEN_ISSUER = "reflist"
LOGIN_CODE_DIGITS = 6

bearer_scheme = HTTPBearer(auto_error=True)
# For endpoints that behave differently for signed-in callers but do not require it
optional_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _strip_token(token: Optional[str]) -> str:
    """Tolerate pasted tokens: whitespace, surrounding quotes, a leading 'Bearer '."""
    t = (token or "").strip().strip("\"'").strip()
    if t.lower().startswith("bearer "):
        t = t[7:].strip()
    return t


def create_access_token(account_id: uuid.UUID | str, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": str(account_id),
        "iss": TOKEN_ISSUER,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)).timestamp()),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> uuid.UUID:
    """Returns the account id carried in `sub`; 401 on anything malformed, expired or foreign."""
    token = _strip_token(token)
    if not token:
        raise _unauthorized()

    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=TOKEN_ISSUER,
            options={"require_sub": True, "require_exp": True, "require_iss": True},
        )
    except JWTError:
        raise _unauthorized()

    try:
        return uuid.UUID(str(claims.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid token subject")


def generate_login_code() -> str:
    return f"{secrets.randbelow(10 ** LOGIN_CODE_DIGITS):0{LOGIN_CODE_DIGITS}d}"


def hash_login_code(code: str) -> str:
    return bcrypt.hashpw(code.encode(), bcrypt.gensalt(rounds=settings.PHONE_CODE_BCRYPT_ROUNDS)).decode()


def login_code_matches(code: str, code_hash: Optional[str]) -> bool:
    if not code or not code_hash:
        return False
    try:
        return bcrypt.checkpw(code.encode(), code_hash.encode())
    except ValueError:
        # not a bcrypt hash
        return False
