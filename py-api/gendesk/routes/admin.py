"""Admin utilities for managing accounts, available once admin mode is unlocked."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from gendesk.services import admin_service
from gendesk.services.container import get_services
from gendesk.utils.auth import require_session

bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _require_admin_session():
    session, error_response = require_session()
    if error_response is not None:
        return None, error_response
    admin_service.require_admin(session)
    return session, None


def _summary(code: str):
    account = get_services().repo.require(code)
    return jsonify(admin_service.account_summary(code, account)), 200


@bp.get("/accounts")
def list_accounts():
    """List accounts, optionally filtered by a code substring and sorted."""
    _, error_response = _require_admin_session()
    if error_response is not None:
        return error_response

    rows = admin_service.list_accounts(
        get_services().repo,
        search=request.args.get("search"),
        sort=request.args.get("sort", "code"),
        descending=request.args.get("order", "asc").lower() == "desc",
    )
    return jsonify(accounts=rows, total_count=len(rows)), 200


@bp.get("/stats")
def get_stats():
    _, error_response = _require_admin_session()
    if error_response is not None:
        return error_response
    return jsonify(admin_service.stats(get_services().repo)), 200


@bp.post("/accounts/<code>/generations")
def adjust_generations(code: str):
    _, error_response = _require_admin_session()
    if error_response is not None:
        return error_response

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    amount = payload.get("amount")
    if not isinstance(amount, int) or isinstance(amount, bool):
        return jsonify(error="amount must be an integer."), 400

    admin_service.adjust_generations(get_services().repo, code.upper(), amount)
    return _summary(code.upper())


@bp.post("/accounts/<code>/storage-limit")
def set_storage_limit(code: str):
    _, error_response = _require_admin_session()
    if error_response is not None:
        return error_response

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    megabytes = payload.get("megabytes")
    if not isinstance(megabytes, (int, float)) or isinstance(megabytes, bool):
        return jsonify(error="megabytes must be a number."), 400

    admin_service.set_storage_limit(get_services().repo, code.upper(), megabytes)
    return _summary(code.upper())


@bp.post("/accounts/<code>/assistants/<assistant>")
def grant_assistant(code: str, assistant: str):
    _, error_response = _require_admin_session()
    if error_response is not None:
        return error_response

    admin_service.grant_assistant(get_services().repo, code.upper(), assistant.lower())
    return _summary(code.upper())


@bp.delete("/accounts/<code>")
def delete_account(code: str):
    session, error_response = _require_admin_session()
    if error_response is not None:
        return error_response

    closed = admin_service.delete_account(get_services().repo, code.upper())
    current_app.logger.info("Admin session of %s deleted account %s", session.code, code.upper())
    return jsonify(deleted=True, closedSessions=closed), 200
