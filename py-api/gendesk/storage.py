"""Durable key-value stores and in-memory session state."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from gendesk import database
from gendesk.errors import StorageWriteFailure

_LOGGER = logging.getLogger(__name__)

# Keys of the durable layout.
USER_ACCOUNTS_KEY = "userAccounts"
CURRENT_USER_CODE_KEY = "currentUserCode"
REFERRAL_CODE_KEY = "referralCode"

KV_COLLECTION = "kv_store"

# Active session tokens mapped to their SessionState.
sessions: Dict[str, Any] = {}


class InMemoryKeyValueStore:
    """String-keyed store kept in process memory."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class MongoKeyValueStore:
    """String-keyed store backed by a MongoDB collection of ``{key, value}`` documents."""

    def __init__(self, collection: Optional[Collection] = None) -> None:
        self._collection = collection

    @property
    def collection(self) -> Collection:
        if self._collection is None:
            self._collection = database.get_database()[KV_COLLECTION]
        return self._collection

    def get(self, key: str) -> Optional[str]:
        try:
            document = self.collection.find_one({"key": key})
        except PyMongoError as e:
            _LOGGER.error("Failed to read key %s from MongoDB: %s", key, e)
            return None
        if not document:
            return None
        return document.get("value")

    def set(self, key: str, value: str) -> None:
        try:
            self.collection.update_one({"key": key}, {"$set": {"key": key, "value": value}}, upsert=True)
        except PyMongoError as e:
            raise StorageWriteFailure(f"Could not write key {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.collection.delete_one({"key": key})
        except PyMongoError as e:
            raise StorageWriteFailure(f"Could not delete key {key}: {e}") from e

    def create_indexes(self) -> None:
        self.collection.create_index("key", unique=True)


def create_store():
    """Return the store selected by ``ENABLE_MONGODB``."""
    if database.mongodb_enabled():
        return MongoKeyValueStore()
    return InMemoryKeyValueStore()
