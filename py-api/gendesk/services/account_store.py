"""Persistence of the account map and session keys in a string key-value store."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from gendesk.errors import MalformedPersistedData, StorageWriteFailure
from gendesk.models import Account, dumps
from gendesk.services.account_migrations import upgrade_record
from gendesk.storage import CURRENT_USER_CODE_KEY, REFERRAL_CODE_KEY, USER_ACCOUNTS_KEY

_LOGGER = logging.getLogger(__name__)

ACCESS_CODE_PATTERN = re.compile(r"^[A-Z0-9]{10}$")


class AccountStore:
    """Serializes the account map to ``userAccounts`` and tracks the active code.

    Reads never raise: corrupt data yields an empty (or best-effort repaired)
    map. Writes never raise either: failures are logged and the caller's
    in-memory state stays authoritative for the session.
    """

    def __init__(self, kv) -> None:
        self.kv = kv

    def load(self) -> Dict[str, Account]:
        try:
            saved = self.kv.get(USER_ACCOUNTS_KEY)
        except Exception:
            _LOGGER.exception("Could not read user accounts from storage")
            return {}

        if not saved:
            return {}

        try:
            entries = json.loads(saved)
        except (TypeError, ValueError):
            _LOGGER.error("Could not parse user accounts from storage; starting with an empty map")
            return {}

        if not isinstance(entries, list):
            _LOGGER.error("User accounts payload is not a list of pairs; starting with an empty map")
            return {}

        accounts: Dict[str, Account] = {}
        for entry in entries:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2 or not isinstance(entry[0], str):
                _LOGGER.warning("Skipping malformed account entry: %r", entry)
                continue

            code, raw = entry
            repairs: list = []
            try:
                record = upgrade_record(raw, repairs)
                account = Account.from_dict(record)
            except MalformedPersistedData as e:
                _LOGGER.warning("Dropping account %s: %s", code, e)
                continue
            except (ValueError, TypeError, OverflowError) as e:
                _LOGGER.warning("Dropping unreadable account %s: %s", code, e)
                continue

            if repairs:
                _LOGGER.info("Repaired account %s on load: %s", code, "; ".join(repairs))
            accounts[code] = account

        return accounts

    @staticmethod
    def serialize(accounts: Dict[str, Account]) -> str:
        return dumps([[code, account.to_dict()] for code, account in accounts.items()])

    def save(self, accounts: Dict[str, Account]) -> bool:
        try:
            self.kv.set(USER_ACCOUNTS_KEY, self.serialize(accounts))
        except StorageWriteFailure as e:
            _LOGGER.error("Could not save accounts to storage: %s", e.message)
            return False
        except Exception:
            _LOGGER.exception("Could not save accounts to storage")
            return False
        return True

    def load_active_code(self) -> Optional[str]:
        return self._read(CURRENT_USER_CODE_KEY)

    def save_active_code(self, code: Optional[str]) -> None:
        if code:
            self._write(CURRENT_USER_CODE_KEY, code)
        else:
            self._remove(CURRENT_USER_CODE_KEY)

    def load_pending_referral(self) -> Optional[str]:
        return self._read(REFERRAL_CODE_KEY)

    def save_pending_referral(self, code: str) -> None:
        self._write(REFERRAL_CODE_KEY, code)

    def clear_pending_referral(self) -> None:
        self._remove(REFERRAL_CODE_KEY)

    def _read(self, key: str) -> Optional[str]:
        try:
            value: Any = self.kv.get(key)
        except Exception:
            _LOGGER.exception("Could not read %s from storage", key)
            return None
        return value or None

    def _write(self, key: str, value: str) -> None:
        try:
            self.kv.set(key, value)
        except Exception:
            _LOGGER.exception("Could not save %s to storage", key)

    def _remove(self, key: str) -> None:
        try:
            self.kv.delete(key)
        except Exception:
            _LOGGER.exception("Could not remove %s from storage", key)
