"""Blueprint registration helper."""

from __future__ import annotations

from flask import Flask, current_app, jsonify

from gendesk.errors import GenDeskError

from .admin import bp as admin_bp
from .assistants import bp as assistants_bp
from .auth import bp as auth_bp
from .billing import bp as billing_bp
from .billing import referrals_bp
from .generator import bp as generator_bp
from .history import bp as history_bp


def register_routes(app: Flask) -> None:
    """Register all application blueprints on the provided Flask app."""
    app.register_blueprint(auth_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(referrals_bp)
    app.register_blueprint(generator_bp)
    app.register_blueprint(assistants_bp)
    app.register_blueprint(history_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(GenDeskError)
    def handle_gendesk_error(error: GenDeskError):
        current_app.logger.info("%s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.get("/")
    def index():
        return jsonify(message="Hello from GenDesk Flask API"), 200
