# backend/reflist/services/workspace_provisioning.py
from __future__ import annotations

import re

from loguru import logger

from reflist.models.account import Account
from reflist.models.workspace import Workspace
from reflist.repositories.protocols import UnitOfWork

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")
MAX_SLUG_LENGTH = 48


def slugify(value: str) -> str:
    s = _SLUG_STRIP_RE.sub("-", (value or "").strip().lower()).strip("-")
    return s[:MAX_SLUG_LENGTH].strip("-") or "workspace"


async def ensure_workspace(uow: UnitOfWork, account: Account) -> Workspace:
    """
    Return the account's first workspace, provisioning "<name>'s Workspace"
    when it has none. Idempotent.
    """
    existing = await uow.workspaces.list_for_account(account.id)
    if existing:
        return existing[0]

    base = slugify(account.display_name)
    slug = base
    suffix = 1
    while await uow.workspaces.slug_exists(slug):
        suffix += 1
        slug = f"{base}-{suffix}"

    workspace = await uow.workspaces.create(
        name=f"{account.display_name}'s Workspace",
        slug=slug,
        owner_account_id=account.id,
    )
    logger.info("Provisioned workspace {} ({}) for account {}", workspace.id, slug, account.id)
    return workspace
