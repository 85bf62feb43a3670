"""Generation history, assistant chat buffers, favorites and assistant settings.

All functions here are pure: they take an Account and return an updated
copy, leaving persistence (and the storage cap) to ``AccountRepository``.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import List, Optional, Tuple

from gendesk.errors import DuplicateFavorite, FavoritesLimitReached
from gendesk.models import (
    ASSISTANT_SETTINGS,
    CHAT_HISTORY_LIMIT,
    FAVORITES_LIMIT,
    GENERATION_HISTORY_LIMIT,
    Account,
    ChatMessage,
    FavoriteService,
    GenerationRecord,
)
from gendesk.utils.auth import now_millis


def new_generation_record(doc_type: str, title: str, text: str) -> GenerationRecord:
    return GenerationRecord(
        id=uuid.uuid4().hex,
        timestamp=now_millis(),
        doc_type=doc_type,
        title=title,
        text=text,
    )


def record_generation(account: Account, record: GenerationRecord) -> Account:
    """Prepend ``record`` to the history, keeping the newest 20 entries."""
    history = [record] + list(account.generation_history)
    return replace(account, generation_history=history[:GENERATION_HISTORY_LIMIT])


def clear_generation_history(account: Account) -> Account:
    return replace(account, generation_history=[])


def cap_chat_history(history: List[ChatMessage]) -> List[ChatMessage]:
    return list(history[-CHAT_HISTORY_LIMIT:])


def append_chat_message(account: Account, assistant: str, message: ChatMessage) -> Account:
    """Append a chat message to the persisted history when memory is enabled.

    With memory disabled the account is returned unchanged; the message
    only lives in the session's live log.
    """
    if not account.settings(assistant).memory_enabled:
        return account
    history = cap_chat_history(list(account.chat_history(assistant)) + [message])
    return account.with_chat_history(assistant, history)


def append_chat_messages(account: Account, assistant: str, messages: List[ChatMessage]) -> Account:
    for message in messages:
        account = append_chat_message(account, assistant, message)
    return account


def clear_chat_history(account: Account, assistant: str) -> Account:
    return account.with_chat_history(assistant, [])


def toggle_setting(account: Account, assistant: str, setting: str) -> Account:
    if setting not in ASSISTANT_SETTINGS:
        raise ValueError(f"Unknown assistant setting: {setting}")
    return account.with_settings(assistant, account.settings(assistant).toggled(setting))


def add_favorite(account: Account, favorite: FavoriteService) -> Account:
    """Add a favorite service; duplicates and a third entry are rejected."""
    if favorite in account.favorite_services:
        raise DuplicateFavorite()
    if len(account.favorite_services) >= FAVORITES_LIMIT:
        raise FavoritesLimitReached(FAVORITES_LIMIT)
    return replace(account, favorite_services=list(account.favorite_services) + [favorite])


def remove_favorite(account: Account, favorite: FavoriteService) -> Account:
    return replace(account, favorite_services=[f for f in account.favorite_services if f != favorite])


def share_title(doc_type: str, text: str) -> str:
    return f"{doc_type}: {text[:40]}..."


def ensure_generation_recorded(
    account: Account,
    doc_type: str,
    text: str,
    generation_id: Optional[str] = None,
) -> Tuple[Account, GenerationRecord]:
    """Find the generation being shared, recording it first if needed.

    A known ``generation_id`` wins; otherwise an existing record with the
    same text is reused before a new one is created.
    """
    if generation_id:
        existing = account.find_generation(generation_id)
        if existing is not None:
            return account, existing

    existing = next((r for r in account.generation_history if r.text == text), None)
    if existing is not None:
        return account, existing

    record = new_generation_record(doc_type, share_title(doc_type, text), text)
    return record_generation(account, record), record


SHARE_MESSAGES = {
    "mirra": "Hi Mirra! I would like to discuss this content I have just generated.",
    "dary": "Analyze the following content:",
}


def share_message(record: GenerationRecord, assistant: str) -> ChatMessage:
    return ChatMessage(
        role="user",
        text=SHARE_MESSAGES[assistant],
        timestamp=now_millis(),
        shared_generation_id=record.id,
    )
