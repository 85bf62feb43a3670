"""Service layer modules for the GenDesk API."""

from . import (
    account_repository,
    account_store,
    admin_service,
    assistant_service,
    backend_client,
    history_service,
    quota_ledger,
    referral_service,
    session_service,
)

__all__ = [
    "account_repository",
    "account_store",
    "admin_service",
    "assistant_service",
    "backend_client",
    "history_service",
    "quota_ledger",
    "referral_service",
    "session_service",
]
