"""/api/assistants routes for the Mirra and Dary conversations."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from gendesk.models import ASSISTANT_SETTINGS, ASSISTANTS
from gendesk.services import assistant_service
from gendesk.services.container import get_services
from gendesk.utils.auth import require_session

bp = Blueprint("assistants", __name__, url_prefix="/api/assistants")


def _unknown_assistant(assistant: str):
    if assistant not in ASSISTANTS:
        return jsonify(error=f"Unknown assistant: {assistant}"), 404
    return None


def _exchange_response(session, exchange):
    account = exchange.account or get_services().repo.get(session.code)
    return (
        jsonify(
            adminMode=session.admin_mode,
            adminUnlocked=exchange.admin_unlocked,
            cost=exchange.cost,
            userMessage=exchange.user_message.to_dict() if exchange.user_message else None,
            reply=exchange.reply.to_dict() if exchange.reply else None,
            generations=account.generations if account else 0,
            error=exchange.error,
            errorCode=exchange.error_code,
        ),
        200,
    )


@bp.get("/<assistant>/messages")
def list_messages(assistant: str):
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    error_response = _unknown_assistant(assistant)
    if error_response is not None:
        return error_response

    account = get_services().repo.require(session.code)
    return (
        jsonify(
            messages=[m.to_dict() for m in assistant_service.live_chat(session, assistant)],
            owned=account.has_assistant(assistant),
            loading=session.chat_loading.get(assistant, False),
            settings=account.settings(assistant).to_dict(),
        ),
        200,
    )


@bp.post("/<assistant>/messages")
def post_message(assistant: str):
    """Send a message; the reply's cost depends on the length of the exchange."""
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    error_response = _unknown_assistant(assistant)
    if error_response is not None:
        return error_response

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    text = str(payload.get("text", ""))
    if not text.strip():
        return jsonify(error="Message text is required."), 400

    services = get_services()
    session.active_assistant = assistant
    exchange = assistant_service.send_message(
        services.repo,
        services.backend,
        session,
        assistant,
        text,
        shared_generation_id=payload.get("sharedGenerationId"),
    )
    return _exchange_response(session, exchange)


@bp.delete("/<assistant>/messages")
def clear_messages(assistant: str):
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    error_response = _unknown_assistant(assistant)
    if error_response is not None:
        return error_response

    account = assistant_service.clear_assistant_chat(get_services().repo, session, assistant)
    return jsonify(cleared=True, dataSize=account.data_size()), 200


@bp.post("/<assistant>/settings/<setting>")
def toggle_setting(assistant: str, setting: str):
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    error_response = _unknown_assistant(assistant)
    if error_response is not None:
        return error_response
    if setting not in ASSISTANT_SETTINGS:
        return jsonify(error=f"Unknown setting: {setting}"), 404

    account = assistant_service.toggle_assistant_setting(get_services().repo, session, assistant, setting)
    return jsonify(settings=account.settings(assistant).to_dict()), 200


@bp.post("/<assistant>/share")
def share(assistant: str):
    """Send a generated document to an assistant, recording it in history first."""
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    error_response = _unknown_assistant(assistant)
    if error_response is not None:
        return error_response

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    doc_type = str(payload.get("docType", "")).strip()
    text = str(payload.get("text", ""))
    if not doc_type or not text.strip():
        return jsonify(error="docType and text are required."), 400

    services = get_services()
    exchange = assistant_service.share_generation(
        services.repo,
        services.backend,
        session,
        assistant,
        doc_type,
        text,
        payload.get("generationId"),
    )
    current_app.logger.info("Generation shared with %s by %s", assistant, session.code)
    return _exchange_response(session, exchange)


@bp.post("/mirra/referral-link")
def referral_link():
    """Post the caller's referral link into the Mirra conversation."""
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    message = assistant_service.post_referral_link(get_services().repo, session)
    return jsonify(message=message.to_dict()), 200
