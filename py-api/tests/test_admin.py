"""Admin operations and the session lifecycle they touch."""

from __future__ import annotations

import pytest

from gendesk.errors import AccountNotFound, AdminRequired, InvalidTransition
from gendesk.services import admin_service, session_service
from gendesk.storage import sessions


@pytest.fixture
def accounts(make_account):
    make_account("AAAAA11111", generations=30, has_mirra=True)
    make_account("BBBBB22222", generations=5, has_dary=True)
    make_account("CCCCC33333", generations=80)


def test_require_admin(repo, accounts):
    session = session_service.open_session(repo, "AAAAA11111")

    with pytest.raises(AdminRequired):
        admin_service.require_admin(session)

    session.admin_mode = True
    admin_service.require_admin(session)


def test_list_accounts_search_and_sort(repo, accounts):
    rows = admin_service.list_accounts(repo, sort="generations", descending=True)
    assert [row["code"] for row in rows] == ["CCCCC33333", "AAAAA11111", "BBBBB22222"]

    rows = admin_service.list_accounts(repo, search="bbb")
    assert [row["code"] for row in rows] == ["BBBBB22222"]
    assert rows[0]["hasDary"] is True

    with pytest.raises(InvalidTransition):
        admin_service.list_accounts(repo, sort="password")


def test_stats(repo, accounts):
    stats = admin_service.stats(repo)

    assert stats["totalUsers"] == 3
    assert stats["totalGenerations"] == 115
    assert stats["mirraOwners"] == 1
    assert stats["daryOwners"] == 1
    assert stats["totalStorage"] > 0
    assert stats["storageCapacity"] == admin_service.STORAGE_CAPACITY_BYTES


def test_adjust_generations_clamps_at_zero(repo, accounts):
    assert admin_service.adjust_generations(repo, "BBBBB22222", 10).generations == 15
    assert admin_service.adjust_generations(repo, "BBBBB22222", -100).generations == 0

    with pytest.raises(AccountNotFound):
        admin_service.adjust_generations(repo, "ZZZZZ00000", 1)


def test_storage_limit_and_grants(repo, accounts):
    account = admin_service.set_storage_limit(repo, "AAAAA11111", 2.5)
    assert account.max_storage_size == int(2.5 * 1024 * 1024)

    with pytest.raises(InvalidTransition):
        admin_service.set_storage_limit(repo, "AAAAA11111", 0)

    assert admin_service.grant_assistant(repo, "CCCCC33333", "dary").has_dary is True
    with pytest.raises(InvalidTransition):
        admin_service.grant_assistant(repo, "CCCCC33333", "hal")


def test_delete_account_logs_out_its_sessions(repo, accounts):
    first = session_service.open_session(repo, "BBBBB22222")
    session_service.open_session(repo, "BBBBB22222")
    other = session_service.open_session(repo, "AAAAA11111")

    closed = admin_service.delete_account(repo, "BBBBB22222")

    assert closed == 2
    assert not repo.exists("BBBBB22222")
    assert first.token not in sessions
    assert other.token in sessions


def test_restore_forgets_deleted_account(repo, accounts):
    session_service.open_session(repo, "CCCCC33333")
    assert repo.store.load_active_code() == "CCCCC33333"

    repo.delete("CCCCC33333")

    assert session_service.restore_session(repo) is None
    assert repo.store.load_active_code() is None


def test_logout_clears_active_code(repo, accounts):
    session = session_service.open_session(repo, "AAAAA11111")

    restored = session_service.restore_session(repo)
    assert restored.code == "AAAAA11111"
    assert restored.token != session.token

    session_service.close_session(repo, session)
    assert session.token not in sessions
    assert repo.store.load_active_code() is None
