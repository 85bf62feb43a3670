"""Text extraction and document metric utilities."""

from __future__ import annotations

import logging
import math
from io import BytesIO
from typing import List

from pypdf import PdfReader

_LOGGER = logging.getLogger(__name__)

MAX_STORED_TEXT_LENGTH = 20_000
CHARS_PER_TOKEN = 4
WORDS_PER_PAGE = 500

TEXT_MIME_PREFIXES = ("text/",)
TEXT_EXTENSIONS = (".txt", ".md", ".csv", ".json", ".py", ".js", ".ts", ".html", ".xml")


def token_count(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def page_count(text: str) -> float:
    """Approximate printed pages, at 500 words per page, to one decimal."""
    words = len(text.split())
    return round(words / WORDS_PER_PAGE, 1)


def extract_pdf_text(raw_bytes: bytes) -> str:
    """Extract text from a PDF file while guarding against parser errors."""
    try:
        reader = PdfReader(BytesIO(raw_bytes))
    except Exception:
        _LOGGER.warning("Unable to initialize PdfReader for uploaded file", exc_info=True)
        return ""

    collected: List[str] = []
    for page in reader.pages:
        try:
            page_text = page.extract_text() or ""
        except Exception:
            _LOGGER.warning("Failed to extract text from a PDF page", exc_info=True)
            page_text = ""

        if page_text:
            collected.append(page_text)

    combined = "\n".join(collected).strip()
    if combined:
        return combined[:MAX_STORED_TEXT_LENGTH]
    return ""


def extract_text_from_upload(raw_bytes: bytes, filename: str, mimetype: str) -> str:
    """Extract text content from user uploads for downstream prompts.

    PDFs go through pypdf, plain-text formats are decoded as UTF-8; anything
    else (images, office documents) yields an empty string.
    """
    lowered = (filename or "").lower()
    mime = (mimetype or "").lower()

    if mime == "application/pdf" or lowered.endswith(".pdf"):
        return extract_pdf_text(raw_bytes)

    if mime.startswith(TEXT_MIME_PREFIXES) or lowered.endswith(TEXT_EXTENSIONS):
        return raw_bytes.decode("utf-8", errors="ignore")[:MAX_STORED_TEXT_LENGTH]

    return ""
