"""Mirra and Dary conversations: costs, memory, failures and admin unlock."""

from __future__ import annotations

import pytest

from gendesk.errors import AssistantNotOwned, InsufficientBalance, QuotaExceededError, StorageLimitExceeded
from gendesk.models import AssistantSettings
from gendesk.services import assistant_service, session_service


@pytest.fixture
def session(repo, make_account):
    make_account(generations=5, has_mirra=True, has_dary=True)
    return session_service.open_session(repo, "abcde12345")


def test_admin_phrase_unlocks_without_cost_or_backend(repo, backend, session):
    exchange = assistant_service.send_message(repo, backend, session, "mirra", "  ra951599 ")

    assert exchange.admin_unlocked is True
    assert session.admin_mode is True
    assert backend.calls == []
    assert repo.require(session.code).generations == 5
    assert assistant_service.live_chat(session, "mirra") == []


def test_message_is_paid_and_persisted(repo, backend, session):
    backend.queue("sendMessage", {"text": "Your code is {USER_CODE}", "sources": [{"uri": "https://x", "title": "X"}]})

    exchange = assistant_service.send_message(repo, backend, session, "mirra", "What is my code?")

    assert exchange.reply.text == "Your code is ABCDE12345"
    assert exchange.reply.sources[0].uri == "https://x"
    assert exchange.cost == 1
    account = repo.require(session.code)
    assert account.generations == 4
    assert [m.role for m in account.chat_history("mirra")] == ["user", "model"]
    assert [m.text for m in assistant_service.live_chat(session, "mirra")][-1] == "Your code is ABCDE12345"

    payload = backend.calls[0][1]
    assert payload["chatContext"]["assistant"] == "mirra"
    assert payload["message"] == "What is my code?"
    assert payload["attachment"] is None


def test_long_exchange_costs_more(repo, backend, session):
    backend.queue("sendMessage", {"text": "r" * 9000})

    exchange = assistant_service.send_message(repo, backend, session, "dary", "q" * 2000)

    assert exchange.cost == 3
    assert repo.require(session.code).generations == 2


def test_history_only_sent_and_kept_with_memory(repo, backend, session):
    repo.transact(session.code, lambda acc: acc.with_settings("dary", AssistantSettings(memory_enabled=False)))

    assistant_service.send_message(repo, backend, session, "dary", "first")
    assistant_service.send_message(repo, backend, session, "dary", "second")

    assert backend.calls[1][1]["chatContext"]["history"] == []
    assert repo.require(session.code).chat_history("dary") == []
    assert len(assistant_service.live_chat(session, "dary")) == 4


def test_backend_failure_reverts_live_message(repo, backend, session):
    backend.queue("sendMessage", QuotaExceededError("quota exceeded"))

    exchange = assistant_service.send_message(repo, backend, session, "mirra", "hello")

    assert exchange.error == "quota exceeded"
    assert exchange.error_code == "backend_quota_exceeded"
    assert exchange.reply is None
    assert exchange.cost == 0
    assert assistant_service.live_chat(session, "mirra") == []
    assert repo.require(session.code).mirra_chat_history == []
    assert session.chat_loading["mirra"] is False
    assert repo.require(session.code).generations == 5


def test_reply_too_expensive_for_balance_is_not_persisted(repo, backend, make_account):
    make_account("POORR00001", generations=1, has_mirra=True)
    session = session_service.open_session(repo, "POORR00001")
    backend.queue("sendMessage", {"text": "z" * 12000})

    with pytest.raises(InsufficientBalance):
        assistant_service.send_message(repo, backend, session, "mirra", "tell me everything")

    assert repo.require("POORR00001").generations == 1
    assert repo.require("POORR00001").chat_history("mirra") == []
    assert assistant_service.live_chat(session, "mirra") == []


def test_full_storage_rejects_exchange(repo, backend, make_account):
    make_account("FULLL00001", generations=5, has_mirra=True, max_storage_size=300)
    session = session_service.open_session(repo, "FULLL00001")
    backend.queue("sendMessage", {"text": "y" * 500})

    with pytest.raises(StorageLimitExceeded):
        assistant_service.send_message(repo, backend, session, "mirra", "hi")

    assert repo.require("FULLL00001").generations == 5


def test_unowned_assistant_is_rejected(repo, backend, make_account):
    make_account("NOASS00001", generations=5)
    session = session_service.open_session(repo, "NOASS00001")

    with pytest.raises(AssistantNotOwned):
        assistant_service.send_message(repo, backend, session, "dary", "hi")
    assert backend.calls == []


def test_share_records_generation_and_attaches_it(repo, backend, session):
    exchange = assistant_service.share_generation(repo, backend, session, "dary", "essay", "My essay text")

    account = repo.require(session.code)
    record = account.generation_history[0]
    assert record.text == "My essay text"
    assert exchange.user_message.shared_generation_id == record.id
    assert exchange.user_message.text == "Analyze the following content:"
    assert backend.calls[0][1]["attachment"]["id"] == record.id
    assert session.active_assistant == "dary"

    assistant_service.share_generation(repo, backend, session, "dary", "essay", "My essay text", record.id)
    assert len(repo.require(session.code).generation_history) == 1


def test_settings_clear_and_referral_link(repo, backend, session):
    account = assistant_service.toggle_assistant_setting(repo, session, "mirra", "memoryEnabled")
    assert account.settings("mirra").memory_enabled is False

    assistant_service.send_message(repo, backend, session, "mirra", "hi")
    account = assistant_service.clear_assistant_chat(repo, session, "mirra")
    assert account.chat_history("mirra") == []
    assert assistant_service.live_chat(session, "mirra") == []

    message = assistant_service.post_referral_link(repo, session)
    assert "?ref=ABCDE12345" in message.text
    assert assistant_service.live_chat(session, "mirra") == [message]
