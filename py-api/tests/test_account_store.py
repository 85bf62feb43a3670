"""Loading, repairing and saving the persisted account map."""

from __future__ import annotations

import json

import pytest

from gendesk.errors import MalformedPersistedData, StorageWriteFailure
from gendesk.models import Account, ChatMessage, FavoriteService
from gendesk.services.account_migrations import detect_version, upgrade_record
from gendesk.services.account_store import AccountStore
from gendesk.services.history_service import new_generation_record
from gendesk.storage import CURRENT_USER_CODE_KEY, USER_ACCOUNTS_KEY, InMemoryKeyValueStore


def _store_with(payload) -> AccountStore:
    raw = payload if isinstance(payload, str) else json.dumps(payload)
    return AccountStore(InMemoryKeyValueStore({USER_ACCOUNTS_KEY: raw}))


def test_save_load_round_trip_is_stable():
    accounts = {
        "ABCDE12345": Account(
            generations=12,
            referrer_code="ZZZZZ99999",
            generation_history=[new_generation_record("essay", "Title", "Body")],
            favorite_services=[FavoriteService("essay", 9), FavoriteService("thesis")],
            has_mirra=True,
            mirra_chat_history=[ChatMessage(role="user", text="hi", timestamp=1)],
        ),
        "ZZZZZ99999": Account(generations=0),
    }
    first = AccountStore.serialize(accounts)

    reloaded = _store_with(first).load()

    assert AccountStore.serialize(reloaded) == first
    assert AccountStore.serialize(_store_with(AccountStore.serialize(reloaded)).load()) == first


@pytest.mark.parametrize(
    "garbage",
    [
        "not json at all",
        "{\"a\": 1}",
        "42",
        "null",
        "[[1, 2], [\"ONLY\"], \"x\", [\"BOOL\", true], [\"LIST\", []]]",
    ],
)
def test_load_never_raises_on_garbage(garbage):
    assert _store_with(garbage).load() == {}


@pytest.mark.parametrize(
    "payload",
    [
        '[["ABCDE12345", Infinity]]',
        '[["ABCDE12345", NaN]]',
        '[["ABCDE12345", {"generations": 3, "maxStorageSize": NaN}]]',
        '[["ABCDE12345", {"generations": -Infinity, "generationHistory": '
        '[{"id": "a", "title": "t", "docType": "essay", "timestamp": NaN, "text": "x"}]}]]',
    ],
)
def test_non_finite_numbers_are_repaired_on_load(payload):
    account = _store_with(payload).load()["ABCDE12345"]

    assert account.generations in (0, 3)
    assert account.max_storage_size == 1024 * 1024
    assert account.generation_history == []


def test_load_without_saved_data():
    assert AccountStore(InMemoryKeyValueStore()).load() == {}


def test_bare_integer_balance_is_upgraded():
    accounts = _store_with([["ABCDE12345", 17]]).load()

    account = accounts["ABCDE12345"]
    assert account.generations == 17
    assert account.generation_history == []
    assert account.max_storage_size == 1024 * 1024
    assert account.mirra_settings.memory_enabled is True


def test_partial_records_are_repaired():
    raw = {
        "generations": -3,
        "favoriteServices": ["essay", {"docType": "essay"}, {"docType": "report", "age": 10}, {"age": 3}],
        "generationHistory": [
            {"id": "1", "timestamp": 5, "docType": "essay", "title": "ok", "text": "body"},
            {"id": 2, "title": "broken"},
        ],
        "mirraChatHistory": [{"role": "user", "text": "hi"}, {"role": "system", "text": "nope"}, "junk"],
        "maxStorageSize": "big",
    }

    repairs = []
    record = upgrade_record(raw, repairs)

    assert record["generations"] == 0
    assert record["favoriteServices"] == [{"docType": "essay"}, {"docType": "report", "age": 10}]
    assert [r["id"] for r in record["generationHistory"]] == ["1"]
    assert record["mirraChatHistory"] == [{"role": "user", "text": "hi"}]
    assert record["maxStorageSize"] == 1024 * 1024
    assert record["darySettings"] == {"internetEnabled": True, "memoryEnabled": True}
    assert repairs


def test_unsupported_record_types_are_rejected():
    with pytest.raises(MalformedPersistedData):
        detect_version(True)
    with pytest.raises(MalformedPersistedData):
        detect_version("text")


class _FailingStore(InMemoryKeyValueStore):
    def set(self, key, value):
        raise StorageWriteFailure("disk full")


def test_write_failures_are_swallowed():
    store = AccountStore(_FailingStore())

    assert store.save({"ABCDE12345": Account(generations=1)}) is False
    store.save_active_code("ABCDE12345")
    assert store.load_active_code() is None


def test_active_code_and_pending_referral_keys(kv):
    store = AccountStore(kv)

    store.save_active_code("ABCDE12345")
    store.save_pending_referral("ZZZZZ99999")
    assert kv.get(CURRENT_USER_CODE_KEY) == "ABCDE12345"
    assert store.load_pending_referral() == "ZZZZZ99999"

    store.save_active_code(None)
    store.clear_pending_referral()
    assert store.load_active_code() is None
    assert store.load_pending_referral() is None
