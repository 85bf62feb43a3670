"""/api/auth routes: access-code login, logout and session restore."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from gendesk.services import session_service
from gendesk.services.container import get_services
from gendesk.utils.auth import require_session

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.post("/login")
def login():
    """Validate an access code and issue a session token.

    The access code is the only credential: whoever holds it owns the
    account's balance and history on this device.
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    code = str(payload.get("code", "")).strip().upper()

    if not code:
        return jsonify(error="Code is required."), 400

    repo = get_services().repo
    if not repo.exists(code):
        return jsonify(error="Invalid access code."), 401

    session = session_service.open_session(repo, code)
    current_app.logger.info("Login for %s", code)
    return jsonify(session.to_dict(repo.get(code))), 200


@bp.post("/restore")
def restore():
    """Resume the account remembered as active on this device, if any."""
    repo = get_services().repo
    session = session_service.restore_session(repo)
    if session is None:
        return jsonify(loggedIn=False), 200
    return jsonify(loggedIn=True, **session.to_dict(repo.get(session.code))), 200


@bp.post("/logout")
def logout():
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    session_service.close_session(get_services().repo, session)
    return jsonify(loggedOut=True), 200


@bp.get("/session")
def get_session_info():
    """Return information about the current session token if it is valid."""
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    account = get_services().repo.get(session.code)
    return jsonify(session.to_dict(account)), 200
