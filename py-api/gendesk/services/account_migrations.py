"""Versioned upgrade chain for persisted account records.

Schema versions:

* v0 - a bare integer balance (the earliest client stored only the count).
* v1 - an object, possibly partial, with legacy favorites and unvalidated histories.
* v2 - the current normalized layout produced by ``Account.to_dict``.

Each step takes a record of version N and returns version N + 1. Steps are
pure; repairs are reported through the ``repairs`` list so the loader can log
them without surfacing anything to the user.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, List

from gendesk.errors import MalformedPersistedData
from gendesk.models import (
    CHAT_HISTORY_LIMIT,
    DEFAULT_STORAGE_LIMIT_BYTES,
    FAVORITES_LIMIT,
    GENERATION_HISTORY_LIMIT,
)

CURRENT_VERSION = 2


def detect_version(raw: Any) -> int:
    if isinstance(raw, bool):
        raise MalformedPersistedData("Boolean is not an account record.")
    if isinstance(raw, (int, float)):
        return 0
    if isinstance(raw, dict):
        return 1
    raise MalformedPersistedData(f"Unsupported account record type: {type(raw).__name__}")


def _upgrade_v0_to_v1(raw: Any, repairs: List[str]) -> Dict[str, Any]:
    repairs.append("upgraded bare balance to account object")
    return {"generations": raw}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    return _is_int(value)


def _validate_sources(sources: Any) -> List[Dict[str, str]]:
    return [
        {"uri": s["uri"], "title": s["title"]}
        for s in sources
        if isinstance(s, dict) and isinstance(s.get("uri"), str) and isinstance(s.get("title"), str)
    ]


def validate_chat_history(history: Any) -> List[Dict[str, Any]]:
    """Drop malformed messages and keep only known fields."""
    if not isinstance(history, list):
        return []

    messages: List[Dict[str, Any]] = []
    for msg in history:
        if not isinstance(msg, dict):
            continue
        if msg.get("role") not in ("user", "model") or not isinstance(msg.get("text"), str):
            continue
        cleaned: Dict[str, Any] = {"role": msg["role"], "text": msg["text"]}
        if isinstance(msg.get("sources"), list):
            cleaned["sources"] = _validate_sources(msg["sources"])
        if _is_number(msg.get("timestamp")):
            cleaned["timestamp"] = int(msg["timestamp"])
        if isinstance(msg.get("sharedGenerationId"), str):
            cleaned["sharedGenerationId"] = msg["sharedGenerationId"]
        messages.append(cleaned)
    return messages


def validate_generation_history(history: Any) -> List[Dict[str, Any]]:
    if not isinstance(history, list):
        return []
    records = []
    for rec in history:
        if not isinstance(rec, dict):
            continue
        if not (
            isinstance(rec.get("id"), str)
            and isinstance(rec.get("title"), str)
            and isinstance(rec.get("docType"), str)
            and _is_number(rec.get("timestamp"))
            and isinstance(rec.get("text"), str)
        ):
            continue
        records.append(
            {
                "id": rec["id"],
                "timestamp": int(rec["timestamp"]),
                "docType": rec["docType"],
                "title": rec["title"],
                "text": rec["text"],
            }
        )
    return records


def validate_favorite_services(services: Any) -> List[Dict[str, Any]]:
    """Normalize favorites: legacy bare strings become ``{docType}`` objects."""
    if not isinstance(services, list):
        return []

    favorites: List[Dict[str, Any]] = []
    for service in services:
        if isinstance(service, str):
            favorite: Dict[str, Any] = {"docType": service}
        elif isinstance(service, dict) and isinstance(service.get("docType"), str):
            favorite = {"docType": service["docType"]}
            if _is_int(service.get("age")):
                favorite["age"] = service["age"]
        else:
            continue
        if favorite not in favorites:
            favorites.append(favorite)
    return favorites[:FAVORITES_LIMIT]


def _settings(value: Any) -> Dict[str, bool]:
    if not isinstance(value, dict):
        return {"internetEnabled": True, "memoryEnabled": True}
    return {
        "internetEnabled": bool(value.get("internetEnabled", True)),
        "memoryEnabled": bool(value.get("memoryEnabled", True)),
    }


def _upgrade_v1_to_v2(raw: Dict[str, Any], repairs: List[str]) -> Dict[str, Any]:
    generations = raw.get("generations")
    if not _is_number(generations) or generations < 0:
        if generations is not None:
            repairs.append(f"reset invalid balance {generations!r}")
        generations = 0

    record: Dict[str, Any] = {"generations": int(generations)}

    referrer = raw.get("referrerCode")
    if isinstance(referrer, str) and referrer:
        record["referrerCode"] = referrer

    mirra_history = validate_chat_history(raw.get("mirraChatHistory"))
    dary_history = validate_chat_history(raw.get("daryChatHistory"))
    generation_history = validate_generation_history(raw.get("generationHistory"))

    max_storage = raw.get("maxStorageSize")
    if not _is_number(max_storage) or max_storage <= 0:
        max_storage = DEFAULT_STORAGE_LIMIT_BYTES

    record.update(
        {
            "generationHistory": generation_history[:GENERATION_HISTORY_LIMIT],
            "favoriteServices": validate_favorite_services(raw.get("favoriteServices")),
            "maxStorageSize": int(max_storage),
            "hasMirra": bool(raw.get("hasMirra", False)),
            "mirraChatHistory": mirra_history[-CHAT_HISTORY_LIMIT:],
            "mirraSettings": _settings(raw.get("mirraSettings")),
            "hasDary": bool(raw.get("hasDary", False)),
            "daryChatHistory": dary_history[-CHAT_HISTORY_LIMIT:],
            "darySettings": _settings(raw.get("darySettings")),
        }
    )

    for key in ("mirraChatHistory", "daryChatHistory", "generationHistory"):
        original = raw.get(key)
        if isinstance(original, list) and len(original) != len(record[key]):
            repairs.append(f"dropped {len(original) - len(record[key])} entries from {key}")
    return record


UPGRADES: Dict[int, Callable[[Any, List[str]], Any]] = {
    0: _upgrade_v0_to_v1,
    1: _upgrade_v1_to_v2,
}


def upgrade_record(raw: Any, repairs: List[str]) -> Dict[str, Any]:
    """Run ``raw`` through every upgrade step up to ``CURRENT_VERSION``."""
    version = detect_version(raw)
    record = raw
    while version < CURRENT_VERSION:
        record = UPGRADES[version](record, repairs)
        version += 1
    return record
