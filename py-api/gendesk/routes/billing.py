"""/api/billing and /api/referrals routes: simulated purchases and referral capture."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from gendesk.models import ASSISTANTS, PRICING_PACKAGES, find_package
from gendesk.services import referral_service, session_service
from gendesk.services.container import get_services
from gendesk.utils.auth import optional_session

bp = Blueprint("billing", __name__, url_prefix="/api/billing")
referrals_bp = Blueprint("referrals", __name__, url_prefix="/api/referrals")


@bp.get("/packages")
def list_packages():
    return (
        jsonify(
            packages=[package.to_dict() for package in PRICING_PACKAGES],
            assistantGenerations=referral_service.ASSISTANT_PURCHASE_GENERATIONS,
        ),
        200,
    )


@bp.post("/purchase")
def purchase():
    """Buy a generation package.

    Without a session a new account is created and logged in; the response
    then carries the new access code and session token.
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    package = find_package(str(payload.get("package", "")))
    if package is None:
        return jsonify(error="Unknown package."), 400

    repo = get_services().repo
    session = optional_session()
    code, account, created = referral_service.purchase_package(repo, session.code if session else None, package)

    body: Dict[str, Any] = {
        "accessCode": code,
        "created": created,
        "generations": account.generations,
        "package": package.to_dict(),
    }
    if created:
        new_session = session_service.open_session(repo, code)
        body["session"] = new_session.to_dict(account)
        current_app.logger.info("New account %s created by purchase", code)
    return jsonify(body), 200


@bp.post("/assistant")
def purchase_assistant():
    """Buy Mirra or Dary; without a session this registers a new account."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    assistant = str(payload.get("assistant", "")).strip().lower()
    if assistant not in ASSISTANTS:
        return jsonify(error="Unknown assistant."), 400

    repo = get_services().repo
    session = optional_session()
    code, account, created = referral_service.purchase_assistant(repo, session.code if session else None, assistant)

    if created:
        session = session_service.open_session(repo, code)
        current_app.logger.info("New account %s created by assistant purchase", code)
    session.active_assistant = assistant

    body: Dict[str, Any] = session.to_dict(account)
    body.update({"accessCode": code, "created": created})
    if created:
        body["session"] = session.to_dict(account)
    return jsonify(body), 200


@referrals_bp.post("/capture")
def capture_referral():
    """Remember an inbound ?ref= code until the next account is created."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    ref = str(payload.get("ref") or request.args.get("ref") or "").strip()
    if not ref:
        return jsonify(error="ref is required."), 400

    captured = referral_service.capture_referral(get_services().repo, ref)
    return jsonify(captured=captured), 200
