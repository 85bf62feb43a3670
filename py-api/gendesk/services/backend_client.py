"""Client for the remote generation backend."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from gendesk.errors import BackendError, InvalidCredentialError, QuotaExceededError

_LOGGER = logging.getLogger(__name__)

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")
BACKEND_TIMEOUT_SECONDS = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "120"))

INVALID_CREDENTIAL_MARKERS = ("API_KEY_INVALID", "API key not valid")
QUOTA_MARKERS = ("quota", "RESOURCE_EXHAUSTED", "rate limit")


@dataclass(frozen=True)
class UploadedFile:
    """A user upload forwarded to the backend."""

    name: str
    content: bytes
    mime_type: str = "application/octet-stream"

    @classmethod
    def from_storage(cls, storage) -> "UploadedFile":
        """Build from a werkzeug ``FileStorage``."""
        return cls(
            name=storage.filename or "upload",
            content=storage.read(),
            mime_type=storage.mimetype or "application/octet-stream",
        )


def classify_backend_error(message: str, status: Optional[int] = None) -> BackendError:
    """Map a failure message/status onto the backend error taxonomy."""
    if status == 429 or any(marker.lower() in message.lower() for marker in QUOTA_MARKERS):
        return QuotaExceededError(message, status=status)
    if status in (401, 403) or any(marker in message for marker in INVALID_CREDENTIAL_MARKERS):
        return InvalidCredentialError(message, status=status)
    return BackendError(message, status=status)


class GenerationBackend:
    """Interface of every backend: one call per named operation."""

    def call(self, operation: str, payload: Dict[str, Any], files: Optional[List[UploadedFile]] = None) -> Any:
        raise NotImplementedError


class HttpGenerationBackend(GenerationBackend):
    """Talks to ``{base_url}/api/json`` and ``{base_url}/api/files``."""

    def __init__(
        self,
        base_url: str = BACKEND_URL,
        *,
        timeout: float = BACKEND_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def call(self, operation: str, payload: Dict[str, Any], files: Optional[List[UploadedFile]] = None) -> Any:
        try:
            if files:
                response = self.session.post(
                    f"{self.base_url}/api/files",
                    data={"operation": operation, "payload": json.dumps(payload, ensure_ascii=False)},
                    files=[("files", (f.name, f.content, f.mime_type)) for f in files],
                    timeout=self.timeout,
                )
            else:
                response = self.session.post(
                    f"{self.base_url}/api/json",
                    json={"operation": operation, "payload": payload},
                    timeout=self.timeout,
                )
        except requests.exceptions.RequestException as e:
            _LOGGER.error("Backend request %s failed: %s", operation, e)
            raise BackendError(f"Generation service unavailable: {e}") from e

        return self._handle_response(operation, response)

    @staticmethod
    def _handle_response(operation: str, response: requests.Response) -> Any:
        if not response.ok:
            message = response.text or f"Backend error: {response.status_code} {response.reason}"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("error"):
                message = str(body["error"])
            _LOGGER.warning("Backend operation %s returned %s: %s", operation, response.status_code, message)
            raise classify_backend_error(message, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Backend returned invalid JSON for {operation}") from e


def create_backend() -> GenerationBackend:
    """Return the backend selected by ``GENERATION_BACKEND`` (``http`` or ``openai``)."""
    kind = os.getenv("GENERATION_BACKEND", "http").strip().lower()
    if kind == "openai":
        from gendesk.services.openai_service import OpenAIGenerationBackend

        return OpenAIGenerationBackend()
    return HttpGenerationBackend()
