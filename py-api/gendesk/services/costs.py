"""Generation costs of the individual operations."""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Optional

from gendesk.models import DocumentType

CHARS_PER_GENERATION = 5000

STANDARD_TEXT = 1
NATAL_CHART = 2
HOROSCOPE = 1
BOOK_PLAN = 1
PERSONAL_ANALYSIS = 1
DOCUMENT_ANALYSIS = 2
CHAT_MESSAGE = 1
SWOT_ANALYSIS = 2
COMMERCIAL_PROPOSAL = 2
BUSINESS_PLAN_OUTLINE = 2
MARKETING_COPY = 1
SCRIPT_ANALYSIS = 2
AUDIO_SCRIPT_MINIMUM = 2
ARTICLE_PLAN = 1
SCIENCE_FILE_TASK = 2
CODE_ANALYSIS = 1
FORECASTING = 3
ASSISTANT_MESSAGE_MINIMUM = 1


def file_task_cost(doc_type: str) -> int:
    return 2 if doc_type == DocumentType.DO_HOMEWORK.value else 1


def analysis_cost(doc_type: str) -> int:
    return 3 if doc_type == DocumentType.ANALYSIS_VERIFY.value else 2


def rewriting_cost(original_text: Optional[str], has_file: bool) -> int:
    text_cost = math.ceil(len(original_text) / CHARS_PER_GENERATION) if original_text else 0
    file_cost = 1 if has_file else 0
    return max(1, text_cost + file_cost)


def audio_script_cost(duration_minutes: float) -> int:
    return max(AUDIO_SCRIPT_MINIMUM, math.ceil(duration_minutes / 5) * 2)


def sections_cost(sections: Iterable[Any]) -> int:
    """Multi-section plans cost one generation per section."""
    return len(list(sections))


def thesis_cost(sections: Iterable[Dict[str, Any]]) -> int:
    return sum(int(s.get("pagesToGenerate") or 0) for s in sections if s.get("contentType") == "generate")


def assistant_message_cost(message: str, reply: str, attachment_text: str = "") -> int:
    total_chars = len(message) + len(reply) + len(attachment_text)
    return max(ASSISTANT_MESSAGE_MINIMUM, math.ceil(total_chars / CHARS_PER_GENERATION))
