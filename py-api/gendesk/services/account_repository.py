"""Transactional access to the shared account map."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from gendesk.errors import AccountNotFound
from gendesk.models import Account
from gendesk.services.account_store import AccountStore
from gendesk.services.quota_ledger import apply_if_within_storage_limit
from gendesk.utils.auth import generate_code

_LOGGER = logging.getLogger(__name__)


class AccountRepository:
    """Owns the in-memory account map and writes it through to the store.

    Every mutation runs under one lock: the current entry is read, the
    mutation computes its replacement, the storage cap is enforced and the
    whole map is persisted. Two mutations of the same account therefore
    serialize instead of overwriting each other.
    """

    def __init__(self, store: AccountStore) -> None:
        self.store = store
        self._lock = threading.RLock()
        self._accounts: Dict[str, Account] = store.load()

    def get(self, code: Optional[str]) -> Optional[Account]:
        if not code:
            return None
        with self._lock:
            return self._accounts.get(code)

    def require(self, code: str) -> Account:
        account = self.get(code)
        if account is None:
            raise AccountNotFound(code)
        return account

    def exists(self, code: Optional[str]) -> bool:
        return self.get(code) is not None

    def snapshot(self) -> Dict[str, Account]:
        with self._lock:
            return dict(self._accounts)

    def codes(self) -> List[str]:
        with self._lock:
            return list(self._accounts)

    def serialized(self) -> str:
        with self._lock:
            return self.store.serialize(self._accounts)

    def new_code(self) -> str:
        with self._lock:
            code = generate_code()
            while code in self._accounts:
                code = generate_code()
            return code

    def transact(
        self,
        code: str,
        mutation: Callable[[Account], Account],
        *,
        check_storage: bool = True,
    ) -> Account:
        """Atomically replace one account with ``mutation(account)``."""
        with self._lock:
            account = self.require(code)
            if check_storage:
                updated = apply_if_within_storage_limit(account, mutation)
            else:
                updated = mutation(account)
            self._accounts[code] = updated
            self.store.save(self._accounts)
            return updated

    def transact_many(
        self,
        mutation: Callable[[Dict[str, Account]], Dict[str, Account]],
    ) -> Dict[str, Account]:
        """Atomically apply changes spanning several accounts.

        ``mutation`` receives a copy of the map and returns the entries it
        changed or created. Nothing is written if it raises.
        """
        with self._lock:
            changes = mutation(dict(self._accounts))
            self._accounts.update(changes)
            self.store.save(self._accounts)
            return changes

    def delete(self, code: str) -> bool:
        with self._lock:
            if self._accounts.pop(code, None) is None:
                return False
            self.store.save(self._accounts)
        _LOGGER.info("Deleted account %s", code)
        return True
