"""Per-application service wiring shared by the blueprints."""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from gendesk.services.account_repository import AccountRepository
from gendesk.services.backend_client import GenerationBackend
from gendesk.services.flows.runner import FlowRunner

EXTENSION_KEY = "gendesk"


@dataclass
class Services:
    repo: AccountRepository
    backend: GenerationBackend
    runner: FlowRunner


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
