"""Balance debits/credits and the per-account storage cap.

The ledger does not know what an operation costs; callers compute costs
(see ``gendesk.services.costs``) and the ledger only guarantees that a
balance never goes negative and that an account never outgrows its
``maxStorageSize``.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable

from gendesk.errors import InsufficientBalance, StorageLimitExceeded
from gendesk.models import Account


def debit(account: Account, cost: int) -> Account:
    """Return a copy of ``account`` with ``cost`` generations spent.

    Raises InsufficientBalance (and leaves ``account`` untouched) when the
    balance does not cover the cost.
    """
    if cost < 0:
        raise ValueError("Debit cost must not be negative")
    if account.generations < cost:
        raise InsufficientBalance(required=cost, available=account.generations)
    return replace(account, generations=account.generations - cost)


def credit(account: Account, amount: int) -> Account:
    if amount < 0:
        raise ValueError("Credit amount must not be negative")
    return replace(account, generations=account.generations + amount)


def ensure_balance(account: Account, minimum: int) -> None:
    """Pre-flight check used before contacting the backend."""
    if account.generations < minimum:
        raise InsufficientBalance(required=minimum, available=account.generations)


def apply_if_within_storage_limit(account: Account, mutation: Callable[[Account], Account]) -> Account:
    """Apply ``mutation`` and reject the result if it serializes past its storage cap.

    The input account is never modified, so a rejection leaves the caller
    holding exactly the prior state.
    """
    result = mutation(account)
    if result.max_storage_size:
        size = result.data_size()
        if size > result.max_storage_size:
            raise StorageLimitExceeded(size=size, limit=result.max_storage_size)
    return result
