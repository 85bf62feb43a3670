"""Authentication helpers for access codes and session tokens."""

from __future__ import annotations

import os
import secrets
import time
from typing import Any, Optional, Tuple

from flask import Flask, jsonify, request

from gendesk.storage import sessions

# Session expiry window (seconds).
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(24 * 60 * 60)))

ACCESS_CODE_LENGTH = 10
ACCESS_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def now_seconds() -> int:
    """Return the current UNIX timestamp in seconds."""
    return int(time.time())


def now_millis() -> int:
    """Return the current UNIX timestamp in milliseconds."""
    return int(time.time() * 1000)


def generate_code() -> str:
    """Return a fresh ten character uppercase alphanumeric access code."""
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))


def generate_token(prefix: str = "sess") -> str:
    """Return a random token with the given prefix suitable for in-memory keys."""
    return f"{prefix}_{secrets.token_urlsafe(12)}"


def prune_expired() -> None:
    """Remove stale sessions from in-memory storage."""
    current = now_seconds()
    for token, session in list(sessions.items()):
        if session.expires_at <= current:
            sessions.pop(token, None)


def bearer_token() -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def require_session() -> Tuple[Optional[Any], Optional[Any]]:
    """Validate the Bearer token from the request and return the associated session."""
    token = bearer_token()
    if token is None:
        return None, (jsonify(error="Missing authorization token."), 401)

    session = sessions.get(token)
    if not session:
        return None, (jsonify(error="Invalid or expired session."), 401)

    if session.expires_at <= now_seconds():
        sessions.pop(token, None)
        return None, (jsonify(error="Session expired."), 401)

    return session, None


def optional_session() -> Optional[Any]:
    """Return the caller's session if a valid Bearer token was sent, else None."""
    token = bearer_token()
    if token is None:
        return None
    session = sessions.get(token)
    if not session or session.expires_at <= now_seconds():
        return None
    return session


def register_session_cleanup(app: Flask) -> None:
    """Attach a before-request handler that keeps session state tidy."""

    @app.before_request  # pragma: no cover - trivial wiring
    def _cleanup_state() -> None:
        prune_expired()
