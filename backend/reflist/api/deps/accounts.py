# backend/reflist/api/deps/accounts.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from reflist.api.deps.services import get_uow_factory
from reflist.core.security import bearer_scheme, decode_access_token, optional_bearer_scheme
from reflist.models.account import Account
from reflist.repositories.protocols import UnitOfWorkFactory


async def _load_account(token: str, uow_factory: UnitOfWorkFactory) -> Account:
    account_id = decode_access_token(token)

    async with uow_factory() as uow:
        account = await uow.accounts.get(account_id)

    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account not found")
    if not account.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account inactive")
    return account


async def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> Account:
    """
    Dependency for protected endpoints.
    """
    return await _load_account(credentials.credentials, uow_factory)


async def get_optional_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme),
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> Optional[Account]:
    """Signed-in account when a bearer token is sent; anonymous callers get None."""
    if credentials is None or not credentials.credentials:
        return None
    return await _load_account(credentials.credentials, uow_factory)


async def require_admin(account: Account = Depends(get_current_account)) -> Account:
    if account.is_admin is not True:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return account
