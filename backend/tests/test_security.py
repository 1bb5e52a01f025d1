# tests/test_security.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from jose import jwt

from reflist.core.config import settings
from reflist.core.security import (
    create_access_token,
    decode_access_token,
    generate_login_code,
    hash_login_code,
    login_code_matches,
)


def test_access_token_round_trip_tolerates_pasted_bearer_prefix():
    account_id = uuid.uuid4()
    token = create_access_token(account_id)

    assert decode_access_token(token) == account_id
    assert decode_access_token(f'  "Bearer {token}" ') == account_id


def test_token_from_another_issuer_is_rejected():
    claims = {
        "sub": str(uuid.uuid4()),
        "iss": "someone-else",
        "exp": int((datetime.now(timezone.utc) + timedelta(minutes=5)).timestamp()),
    }
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exc:
        decode_access_token(token)
    assert exc.value.status_code == 401


def test_token_with_non_uuid_subject_is_rejected():
    token = create_access_token("not-a-uuid")

    with pytest.raises(HTTPException) as exc:
        decode_access_token(token)
    assert exc.value.detail == "Invalid token subject"


def test_login_codes_are_stored_hashed():
    code = generate_login_code()
    stored = hash_login_code(code)

    assert len(code) == 6 and code.isdigit()
    assert code not in stored
    assert login_code_matches(code, stored)
    assert not login_code_matches("x" + code[1:], stored)
    assert not login_code_matches(code, None)
    # a plaintext value left over in the column never matches
    assert not login_code_matches(code, code)
