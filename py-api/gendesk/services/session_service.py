"""Per-session, non-persisted state and the login/logout lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from gendesk.errors import AccountNotFound
from gendesk.models import ASSISTANTS, Account, ChatMessage
from gendesk.services.account_repository import AccountRepository
from gendesk.services.flows.board import FlowBoard
from gendesk.storage import sessions
from gendesk.utils.auth import SESSION_TTL_SECONDS, generate_token, now_seconds

_LOGGER = logging.getLogger(__name__)


@dataclass
class SessionState:
    """What one logged-in browser sees; rebuilt from the Account on login."""

    token: str
    code: str
    expires_at: int
    active_assistant: Optional[str] = None
    admin_mode: bool = False
    board: FlowBoard = field(default_factory=FlowBoard)
    live_chats: Dict[str, List[ChatMessage]] = field(default_factory=dict)
    chat_loading: Dict[str, bool] = field(default_factory=dict)

    def rehydrate(self, account: Account) -> None:
        self.live_chats = {assistant: list(account.chat_history(assistant)) for assistant in ASSISTANTS}
        self.chat_loading = {assistant: False for assistant in ASSISTANTS}

    def to_dict(self, account: Optional[Account] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "token": self.token,
            "accessCode": self.code,
            "expiresAt": self.expires_at * 1000,
            "activeAssistant": self.active_assistant,
            "adminMode": self.admin_mode,
        }
        if account is not None:
            payload.update(
                {
                    "generations": account.generations,
                    "favoriteServices": [f.to_dict() for f in account.favorite_services],
                    "hasMirra": account.has_mirra,
                    "hasDary": account.has_dary,
                    "mirraSettings": account.mirra_settings.to_dict(),
                    "darySettings": account.dary_settings.to_dict(),
                    "dataSize": account.data_size(),
                    "maxStorageSize": account.max_storage_size,
                }
            )
        return payload


def open_session(repo: AccountRepository, code: str) -> SessionState:
    """Log in with an access code and remember it as this device's active account."""
    normalized = (code or "").strip().upper()
    account = repo.get(normalized)
    if account is None:
        raise AccountNotFound(normalized)

    session = SessionState(
        token=generate_token(),
        code=normalized,
        expires_at=now_seconds() + SESSION_TTL_SECONDS,
    )
    session.rehydrate(account)
    sessions[session.token] = session
    repo.store.save_active_code(normalized)
    _LOGGER.info("Session opened for %s", normalized)
    return session


def restore_session(repo: AccountRepository) -> Optional[SessionState]:
    """Re-open a session for the remembered active code, if it still names an account."""
    code = repo.store.load_active_code()
    if not code:
        return None
    if not repo.exists(code):
        _LOGGER.info("Remembered access code %s no longer exists; clearing it", code)
        repo.store.save_active_code(None)
        return None
    return open_session(repo, code)


def close_session(repo: AccountRepository, session: SessionState) -> None:
    sessions.pop(session.token, None)
    session.board.reset()
    if repo.store.load_active_code() == session.code:
        repo.store.save_active_code(None)
    _LOGGER.info("Session closed for %s", session.code)


def close_sessions_for(repo: AccountRepository, code: str) -> int:
    """Log out every session bound to ``code``; used when an account is deleted."""
    closed = 0
    for token, session in list(sessions.items()):
        if session.code == code:
            sessions.pop(token, None)
            session.board.reset()
            closed += 1
    if repo.store.load_active_code() == code:
        repo.store.save_active_code(None)
    return closed
