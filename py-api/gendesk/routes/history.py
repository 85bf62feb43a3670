"""/api/history and /api/favorites routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from gendesk.models import CHILDREN_AGES, DocumentType, FavoriteService
from gendesk.services import history_service
from gendesk.services.container import get_services
from gendesk.utils.auth import require_session

bp = Blueprint("history", __name__, url_prefix="/api")


def _favorite_from_request():
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    doc_type = str(payload.get("docType", ""))
    try:
        DocumentType(doc_type)
    except ValueError:
        return None, (jsonify(error=f"Unknown document type: {doc_type}"), 400)
    age = payload.get("age")
    if age is not None and age not in CHILDREN_AGES:
        return None, (jsonify(error="Invalid age."), 400)
    return FavoriteService(doc_type=doc_type, age=age), None


@bp.get("/history")
def list_history():
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    account = get_services().repo.require(session.code)
    return jsonify(history=[record.to_dict() for record in account.generation_history]), 200


@bp.delete("/history")
def clear_history():
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    account = get_services().repo.transact(
        session.code, history_service.clear_generation_history, check_storage=False
    )
    return jsonify(history=[], dataSize=account.data_size()), 200


@bp.get("/favorites")
def list_favorites():
    session, error_response = require_session()
    if error_response is not None:
        return error_response

    account = get_services().repo.require(session.code)
    return jsonify(favorites=[f.to_dict() for f in account.favorite_services]), 200


@bp.post("/favorites")
def add_favorite():
    """Pin a service; at most two favorites, no duplicates."""
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    favorite, error_response = _favorite_from_request()
    if error_response is not None:
        return error_response

    account = get_services().repo.transact(session.code, lambda acc: history_service.add_favorite(acc, favorite))
    return jsonify(favorites=[f.to_dict() for f in account.favorite_services]), 200


@bp.delete("/favorites")
def remove_favorite():
    session, error_response = require_session()
    if error_response is not None:
        return error_response
    favorite, error_response = _favorite_from_request()
    if error_response is not None:
        return error_response

    account = get_services().repo.transact(
        session.code, lambda acc: history_service.remove_favorite(acc, favorite), check_storage=False
    )
    return jsonify(favorites=[f.to_dict() for f in account.favorite_services]), 200
