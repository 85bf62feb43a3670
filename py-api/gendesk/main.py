"""Flask application setup and blueprint wiring."""

from __future__ import annotations

from flask import Flask
from flask_cors import CORS
from pymongo.errors import PyMongoError

from gendesk.routes import register_routes
from gendesk.services.account_repository import AccountRepository
from gendesk.services.account_store import AccountStore
from gendesk.services.backend_client import create_backend
from gendesk.services.container import EXTENSION_KEY, Services
from gendesk.services.flows.runner import FlowRunner
from gendesk.storage import MongoKeyValueStore, create_store
from gendesk.utils.auth import register_session_cleanup

UPLOAD_LIMIT_BYTES = 5 * 1024 * 1024  # 5 MB per request


def create_app(store=None, backend=None) -> Flask:
    """Configure and return the Flask application instance.

    ``store`` is the key-value store holding the account map and ``backend``
    the generation backend; both default to what the environment selects.
    """
    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    app.config["MAX_CONTENT_LENGTH"] = UPLOAD_LIMIT_BYTES

    kv = store if store is not None else create_store()
    if isinstance(kv, MongoKeyValueStore):
        try:
            kv.create_indexes()
            app.logger.info("MongoDB indexes created successfully")
        except PyMongoError as e:
            app.logger.warning(f"Failed to create MongoDB indexes: {e}")

    repo = AccountRepository(AccountStore(kv))
    backend = backend if backend is not None else create_backend()
    app.extensions[EXTENSION_KEY] = Services(repo=repo, backend=backend, runner=FlowRunner(repo, backend))

    register_session_cleanup(app)
    register_routes(app)

    return app


app = create_app()
