"""Conversations with the paid assistants Mirra and Dary."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from gendesk.errors import AssistantNotOwned, BackendError, InsufficientBalance, StorageLimitExceeded
from gendesk.models import ASSISTANTS, CHAT_HISTORY_LIMIT, Account, ChatMessage, GenerationRecord, WebSource
from gendesk.services.account_repository import AccountRepository
from gendesk.services.backend_client import GenerationBackend
from gendesk.services.costs import ASSISTANT_MESSAGE_MINIMUM, assistant_message_cost
from gendesk.services.history_service import (
    append_chat_messages,
    clear_chat_history,
    ensure_generation_recorded,
    record_generation,
    share_message,
    toggle_setting,
)
from gendesk.services.quota_ledger import debit, ensure_balance
from gendesk.services.referral_service import post_referral_message
from gendesk.services.session_service import SessionState
from gendesk.utils.auth import now_millis

_LOGGER = logging.getLogger(__name__)

ADMIN_UNLOCK_PHRASE = os.getenv("ADMIN_UNLOCK_PHRASE", "RA951599")
USER_CODE_PLACEHOLDER = "{USER_CODE}"


@dataclass
class Exchange:
    """Outcome of one message sent to an assistant."""

    user_message: Optional[ChatMessage] = None
    reply: Optional[ChatMessage] = None
    cost: int = 0
    admin_unlocked: bool = False
    account: Optional[Account] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


def _require_assistant(account: Account, assistant: str) -> None:
    if assistant not in ASSISTANTS:
        raise ValueError(f"Unknown assistant: {assistant}")
    if not account.has_assistant(assistant):
        raise AssistantNotOwned(assistant)


def _append_live(session: SessionState, assistant: str, message: ChatMessage) -> None:
    live = session.live_chats.setdefault(assistant, [])
    live.append(message)
    del live[:-CHAT_HISTORY_LIMIT]


def _revert_live(session: SessionState, assistant: str, message: ChatMessage) -> None:
    live = session.live_chats.get(assistant, [])
    if live and live[-1] is message:
        live.pop()


def is_admin_unlock(assistant: str, text: str) -> bool:
    return assistant == "mirra" and text.strip().upper() == ADMIN_UNLOCK_PHRASE.upper()


def send_message(
    repo: AccountRepository,
    backend: GenerationBackend,
    session: SessionState,
    assistant: str,
    text: str,
    *,
    shared_generation_id: Optional[str] = None,
    attachment: Optional[GenerationRecord] = None,
) -> Exchange:
    """Send ``text`` to an assistant and pay for the exchange.

    The unlock phrase sent to Mirra turns on admin mode without touching the
    backend or the balance. Otherwise a balance of at least one generation
    is required up front; the actual cost depends on the reply length and
    is debited afterwards. On any failure the user's message is removed
    from the live log again and nothing is persisted; a backend failure is
    reported through ``Exchange.error`` rather than raised.
    """
    if is_admin_unlock(assistant, text):
        session.admin_mode = True
        _LOGGER.info("Admin mode activated for session of %s", session.code)
        return Exchange(admin_unlocked=True)

    account = repo.require(session.code)
    _require_assistant(account, assistant)
    ensure_balance(account, ASSISTANT_MESSAGE_MINIMUM)

    settings = account.settings(assistant)
    history = account.chat_history(assistant) if settings.memory_enabled else []
    if attachment is None and shared_generation_id:
        attachment = account.find_generation(shared_generation_id)

    user_message = ChatMessage(
        role="user",
        text=text,
        timestamp=now_millis(),
        shared_generation_id=shared_generation_id,
    )
    _append_live(session, assistant, user_message)
    session.chat_loading[assistant] = True
    try:
        response = backend.call(
            "sendMessage",
            {
                "chatContext": {
                    "assistant": assistant,
                    "history": [message.to_dict() for message in history],
                    "settings": settings.to_dict(),
                },
                "message": text,
                "attachment": attachment.to_dict() if attachment else None,
            },
        )
    except BackendError as e:
        _LOGGER.warning("Assistant %s failed for %s: %s", assistant, session.code, e.message)
        _revert_live(session, assistant, user_message)
        return Exchange(error=e.message, error_code=e.code)
    finally:
        session.chat_loading[assistant] = False

    body = response if isinstance(response, dict) else {"text": str(response or "")}
    reply_text = (body.get("text") or "").replace(USER_CODE_PLACEHOLDER, session.code)
    sources = body.get("sources")
    reply = ChatMessage(
        role="model",
        text=reply_text,
        sources=[WebSource(s["uri"], s.get("title", "")) for s in sources if isinstance(s, dict) and s.get("uri")]
        if isinstance(sources, list) and sources
        else None,
        timestamp=now_millis(),
    )
    cost = assistant_message_cost(text, reply_text, attachment.text if attachment else "")

    try:
        account = repo.transact(
            session.code,
            lambda acc: append_chat_messages(debit(acc, cost), assistant, [user_message, reply]),
        )
    except (InsufficientBalance, StorageLimitExceeded) as e:
        _LOGGER.info("Assistant exchange for %s rejected: %s", session.code, e.message)
        _revert_live(session, assistant, user_message)
        raise

    _append_live(session, assistant, reply)
    return Exchange(user_message=user_message, reply=reply, cost=cost, account=account)


def share_generation(
    repo: AccountRepository,
    backend: GenerationBackend,
    session: SessionState,
    assistant: str,
    doc_type: str,
    text: str,
    generation_id: Optional[str] = None,
) -> Exchange:
    """Hand a generated document to an assistant as an attachment of a canned message."""
    account = repo.require(session.code)
    _require_assistant(account, assistant)

    _, record = ensure_generation_recorded(account, doc_type, text, generation_id)
    if account.find_generation(record.id) is None:
        try:
            repo.transact(session.code, lambda acc: record_generation(acc, record))
        except StorageLimitExceeded as e:
            _LOGGER.warning("Shared generation for %s not saved to history: %s", session.code, e.message)

    session.active_assistant = assistant
    message = share_message(record, assistant)
    return send_message(
        repo,
        backend,
        session,
        assistant,
        message.text,
        shared_generation_id=record.id,
        attachment=record,
    )


def toggle_assistant_setting(repo: AccountRepository, session: SessionState, assistant: str, setting: str) -> Account:
    account = repo.require(session.code)
    _require_assistant(account, assistant)
    return repo.transact(session.code, lambda acc: toggle_setting(acc, assistant, setting))


def clear_assistant_chat(repo: AccountRepository, session: SessionState, assistant: str) -> Account:
    account = repo.require(session.code)
    _require_assistant(account, assistant)
    account = repo.transact(session.code, lambda acc: clear_chat_history(acc, assistant), check_storage=False)
    session.live_chats[assistant] = []
    return account


def post_referral_link(repo: AccountRepository, session: SessionState) -> ChatMessage:
    account = repo.require(session.code)
    _require_assistant(account, "mirra")
    _, message = post_referral_message(repo, session.code)
    _append_live(session, "mirra", message)
    return message


def live_chat(session: SessionState, assistant: str) -> List[ChatMessage]:
    return list(session.live_chats.get(assistant, []))
