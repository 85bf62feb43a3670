"""Backend error classification and the HTTP / OpenAI generation backends."""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
import requests

from gendesk.errors import BackendError, InvalidCredentialError, QuotaExceededError
from gendesk.services.backend_client import HttpGenerationBackend, UploadedFile, classify_backend_error
from gendesk.services.openai_service import OpenAIGenerationBackend


def _response(status: int, body) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    return response


class _Session:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.parametrize(
    "message,status,expected",
    [
        ("Too many requests", 429, QuotaExceededError),
        ("You exceeded your current quota", 500, QuotaExceededError),
        ("RESOURCE_EXHAUSTED", None, QuotaExceededError),
        ("API key not valid. Please pass a valid API key.", 400, InvalidCredentialError),
        ("forbidden", 403, InvalidCredentialError),
        ("Internal error", 500, BackendError),
    ],
)
def test_classify_backend_error(message, status, expected):
    error = classify_backend_error(message, status)

    assert type(error) is expected
    assert error.message == message


def test_json_operations_post_operation_and_payload():
    session = _Session(_response(200, {"docType": "essay", "text": "Done"}))
    backend = HttpGenerationBackend("http://backend/", session=session)

    result = backend.call("generateText", {"topic": "Autumn"})

    assert result == {"docType": "essay", "text": "Done"}
    url, kwargs = session.requests[0]
    assert url == "http://backend/api/json"
    assert kwargs["json"] == {"operation": "generateText", "payload": {"topic": "Autumn"}}


def test_file_operations_use_multipart():
    session = _Session(_response(200, {"text": "ok"}))
    backend = HttpGenerationBackend("http://backend", session=session)

    backend.call("analyzeUserDocuments", {"prompt": "p"}, [UploadedFile("a.txt", b"abc", "text/plain")])

    url, kwargs = session.requests[0]
    assert url == "http://backend/api/files"
    assert kwargs["data"]["operation"] == "analyzeUserDocuments"
    assert json.loads(kwargs["data"]["payload"]) == {"prompt": "p"}
    assert kwargs["files"] == [("files", ("a.txt", b"abc", "text/plain"))]


def test_error_bodies_are_classified():
    session = _Session(_response(429, {"error": "quota exhausted"}))

    with pytest.raises(QuotaExceededError) as excinfo:
        HttpGenerationBackend("http://backend", session=session).call("generateText", {})

    assert excinfo.value.message == "quota exhausted"
    assert excinfo.value.status == 429


def test_network_failures_become_backend_errors():
    session = _Session(error=requests.exceptions.ConnectionError("refused"))

    with pytest.raises(BackendError):
        HttpGenerationBackend("http://backend", session=session).call("generateText", {})


def test_invalid_json_is_a_backend_error():
    session = _Session(_response(200, b"<html>"))

    with pytest.raises(BackendError):
        HttpGenerationBackend("http://backend", session=session).call("generateText", {})


class _FakeResponses:
    def __init__(self, output_text: str):
        self.output_text = output_text
        self.prompts = []

    def create(self, **kwargs):
        self.prompts.append(kwargs["input"])
        return SimpleNamespace(output_text=self.output_text)


def test_openai_backend_parses_plans():
    responses = _FakeResponses('```json\n{"title": "T", "chapters": [{"title": "One"}]}\n```')
    backend = OpenAIGenerationBackend(client=SimpleNamespace(responses=responses), model="test-model")

    plan = backend.call("generateBookPlan", {"genre": "fantasy"})

    assert plan == {"title": "T", "chapters": [{"title": "One"}]}
    assert '"chapters"' in responses.prompts[0]


def test_openai_backend_includes_attached_text():
    responses = _FakeResponses("Summary")
    backend = OpenAIGenerationBackend(client=SimpleNamespace(responses=responses))

    result = backend.call(
        "analyzeUserDocuments", {"prompt": "Summarize"}, [UploadedFile("notes.txt", b"secret notes", "text/plain")]
    )

    assert result["text"] == "Summary"
    assert "ATTACHED FILE notes.txt:" in responses.prompts[0]
    assert "secret notes" in responses.prompts[0]


def test_openai_backend_rejects_unparseable_plan():
    backend = OpenAIGenerationBackend(client=SimpleNamespace(responses=_FakeResponses("no json here")))

    with pytest.raises(BackendError):
        backend.call("generateArticlePlan", {"topic": "x"})
