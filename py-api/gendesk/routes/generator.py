"""/api/generator routes driving the guided generation flows."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

from flask import Blueprint, jsonify, request

from gendesk.models import CHILDREN_AGES
from gendesk.services.backend_client import UploadedFile
from gendesk.services.container import get_services
from gendesk.utils.auth import require_session

bp = Blueprint("generator", __name__, url_prefix="/api/generator")


def _action_input() -> Tuple[Dict[str, Any], List[UploadedFile]]:
    """Read action fields from JSON, or from a multipart form with uploaded files.

    Multipart requests may carry the fields as a JSON string in ``data``;
    any other plain form fields are merged on top.
    """
    if request.files or request.form:
        data: Dict[str, Any] = {}
        raw = request.form.get("data")
        if raw:
            try:
                parsed = json.loads(raw)
            except ValueError:
                parsed = None
            if isinstance(parsed, dict):
                data.update(parsed)
        data.update({key: value for key, value in request.form.items() if key != "data"})
        files = [UploadedFile.from_storage(f) for f in request.files.getlist("files") if f and f.filename]
        return data, files
    return request.get_json(silent=True) or {}, []


def _board_response(session, status: int = 200):
    account = get_services().repo.get(session.code)
    return (
        jsonify(
            generator=session.board.to_dict(),
            generations=account.generations if account else 0,
        ),
        status,
    )


@bp.get("/state")
def get_state():
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    return _board_response(session)


@bp.post("/navigate")
def navigate():
    """Select a document type (and age for student types); resets every flow."""
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    doc_type = str(payload.get("docType", ""))
    age = payload.get("age")
    if age is not None and age not in CHILDREN_AGES:
        return jsonify(error=f"Age must be between {CHILDREN_AGES[0]} and {CHILDREN_AGES[-1]}."), 400

    get_services().runner.navigate(session.board, doc_type, age)
    return _board_response(session)


@bp.post("/reset")
def reset():
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    session.board.reset()
    return _board_response(session)


@bp.post("/standard")
def standard():
    """Generate a standard student text in one step."""
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    age = payload.get("age")
    if age is not None and age not in CHILDREN_AGES:
        return jsonify(error=f"Age must be between {CHILDREN_AGES[0]} and {CHILDREN_AGES[-1]}."), 400

    get_services().runner.generate_standard(session.board, session.code, str(payload.get("topic", "")), age)
    return _board_response(session)


@bp.post("/flows/<flow>/start")
def start_flow(flow: str):
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    get_services().runner.start(session.board, session.code, flow)
    return _board_response(session)


@bp.post("/flows/<flow>/actions/<action>")
def flow_action(flow: str, action: str):
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    data, files = _action_input()
    get_services().runner.perform(session.board, session.code, flow, action, data, files)
    return _board_response(session)
