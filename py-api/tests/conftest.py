"""Shared pytest fixtures: in-memory MongoDB, key-value stores, a scripted backend and a Flask client."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import mongomock
import pytest

# Ensure the application package is importable during tests.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gendesk import database, storage  # noqa: E402
from gendesk.models import Account  # noqa: E402
from gendesk.services.account_repository import AccountRepository  # noqa: E402
from gendesk.services.account_store import AccountStore  # noqa: E402
from gendesk.services.backend_client import GenerationBackend, UploadedFile  # noqa: E402
from gendesk.services.flows.runner import FlowRunner  # noqa: E402


@pytest.fixture(autouse=True)
def mongo_db(monkeypatch: pytest.MonkeyPatch):
    """Provide an isolated in-memory MongoDB database for each test."""
    test_db_name = "test_gendesk"
    monkeypatch.setenv("ENABLE_MONGODB", "true")
    monkeypatch.setenv("MONGODB_DATABASE", test_db_name)

    client = mongomock.MongoClient()
    db = client[test_db_name]

    monkeypatch.setattr(database, "get_mongo_client", lambda: client)
    monkeypatch.setattr(database, "get_database", lambda: db)

    yield db

    client.drop_database(test_db_name)


@pytest.fixture(autouse=True)
def clear_sessions():
    storage.sessions.clear()
    yield
    storage.sessions.clear()


class FakeBackend(GenerationBackend):
    """Scripted backend: queued responses per operation, recording every call.

    A queued exception is raised; a queued callable is called with the
    payload and its return value is the response. Operations with nothing
    queued answer ``{"text": "<operation> result"}``.
    """

    def __init__(self) -> None:
        self.responses: Dict[str, List[Any]] = {}
        self.calls: List[Tuple[str, Dict[str, Any], List[UploadedFile]]] = []

    def queue(self, operation: str, *responses: Any) -> None:
        self.responses.setdefault(operation, []).extend(responses)

    def call(self, operation: str, payload: Dict[str, Any], files: Optional[List[UploadedFile]] = None) -> Any:
        self.calls.append((operation, payload, list(files or [])))
        queued = self.responses.get(operation)
        if not queued:
            return {"text": f"{operation} result"}
        response = queued.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(payload)
        return response

    @property
    def operations(self) -> List[str]:
        return [operation for operation, _, _ in self.calls]


@pytest.fixture
def kv():
    return storage.InMemoryKeyValueStore()


@pytest.fixture
def repo(kv):
    return AccountRepository(AccountStore(kv))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def runner(repo, backend):
    return FlowRunner(repo, backend, section_delay=0, sleep=lambda seconds: None)


@pytest.fixture
def make_account(repo):
    """Create an account directly in the repository and return its code."""

    def _make(code: str = "ABCDE12345", **fields: Any) -> str:
        repo.transact_many(lambda accounts: {code: Account(**fields)})
        return code

    return _make


@pytest.fixture
def app(kv, backend):
    from gendesk.main import create_app
    from gendesk.services.container import EXTENSION_KEY

    flask_app = create_app(store=kv, backend=backend)
    flask_app.config["TESTING"] = True
    flask_app.extensions[EXTENSION_KEY].runner.sleep = lambda seconds: None
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_repo(app):
    from gendesk.services.container import EXTENSION_KEY

    return app.extensions[EXTENSION_KEY].repo


@pytest.fixture
def login(client, app_repo):
    """Create an account in the app's repository, log in and return auth headers."""

    def _login(code: str = "ABCDE12345", **fields: Any) -> Dict[str, str]:
        fields.setdefault("generations", 10)
        app_repo.transact_many(lambda accounts: {code: Account(**fields)})
        response = client.post("/api/auth/login", json={"code": code})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.get_json()['token']}"}

    return _login
