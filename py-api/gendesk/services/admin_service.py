"""Account administration available to sessions in admin mode."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from gendesk.errors import AdminRequired, InvalidTransition
from gendesk.models import ASSISTANTS, Account
from gendesk.services.account_repository import AccountRepository
from gendesk.services.session_service import SessionState, close_sessions_for

_LOGGER = logging.getLogger(__name__)

STORAGE_CAPACITY_BYTES = 100 * 1024 * 1024  # 100 MiB
BYTES_PER_MEGABYTE = 1024 * 1024
SORT_KEYS = ("code", "generations", "dataSize", "maxStorageSize")


def require_admin(session: SessionState) -> None:
    if not session.admin_mode:
        raise AdminRequired()


def account_summary(code: str, account: Account) -> Dict[str, Any]:
    return {
        "code": code,
        "generations": account.generations,
        "hasMirra": account.has_mirra,
        "hasDary": account.has_dary,
        "referrerCode": account.referrer_code,
        "dataSize": account.data_size(),
        "maxStorageSize": account.max_storage_size,
        "historyCount": len(account.generation_history),
    }


def list_accounts(
    repo: AccountRepository,
    *,
    search: Optional[str] = None,
    sort: str = "code",
    descending: bool = False,
) -> List[Dict[str, Any]]:
    """Account summaries filtered by a code substring and sorted by one column."""
    if sort not in SORT_KEYS:
        raise InvalidTransition(f"Cannot sort by '{sort}'.", sort=sort)
    needle = (search or "").strip().upper()
    rows = [
        account_summary(code, account)
        for code, account in repo.snapshot().items()
        if not needle or needle in code
    ]
    rows.sort(key=lambda row: row[sort], reverse=descending)
    return rows


def stats(repo: AccountRepository) -> Dict[str, Any]:
    accounts = repo.snapshot()
    total_storage = sum(account.data_size() for account in accounts.values())
    return {
        "totalUsers": len(accounts),
        "totalGenerations": sum(account.generations for account in accounts.values()),
        "mirraOwners": sum(1 for account in accounts.values() if account.has_mirra),
        "daryOwners": sum(1 for account in accounts.values() if account.has_dary),
        "totalStorage": total_storage,
        "storageCapacity": STORAGE_CAPACITY_BYTES,
        "storageUsagePercent": round(total_storage / STORAGE_CAPACITY_BYTES * 100, 2),
    }


def adjust_generations(repo: AccountRepository, code: str, amount: int) -> Account:
    """Add a signed amount to a balance, clamping the result at zero."""
    account = repo.transact(
        code,
        lambda acc: replace(acc, generations=max(0, acc.generations + amount)),
        check_storage=False,
    )
    _LOGGER.info("Admin adjusted generations of %s by %d (now %d)", code, amount, account.generations)
    return account


def set_storage_limit(repo: AccountRepository, code: str, megabytes: float) -> Account:
    if megabytes <= 0:
        raise InvalidTransition("The storage limit must be positive.", megabytes=megabytes)
    limit = int(megabytes * BYTES_PER_MEGABYTE)
    account = repo.transact(code, lambda acc: replace(acc, max_storage_size=limit), check_storage=False)
    _LOGGER.info("Admin set storage limit of %s to %d bytes", code, limit)
    return account


def grant_assistant(repo: AccountRepository, code: str, assistant: str) -> Account:
    """Give an account an assistant; assistants are never revoked."""
    if assistant not in ASSISTANTS:
        raise InvalidTransition(f"Unknown assistant: {assistant}", assistant=assistant)
    account = repo.transact(code, lambda acc: acc.with_assistant(assistant), check_storage=False)
    _LOGGER.info("Admin granted %s to %s", assistant, code)
    return account


def delete_account(repo: AccountRepository, code: str) -> int:
    """Delete an account and log out every session bound to it.

    Returns:
        The number of sessions that were closed.
    """
    repo.require(code)
    repo.delete(code)
    return close_sessions_for(repo, code)
