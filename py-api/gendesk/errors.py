"""Error taxonomy shared by services and routes."""

from __future__ import annotations

from typing import Any, Dict, Optional


class GenDeskError(Exception):
    """Base class for user-facing, recoverable errors."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class InsufficientBalance(GenDeskError):
    status_code = 402
    code = "insufficient_balance"

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"Not enough generations. Required: {required}, available: {available}.",
            required=required,
            available=available,
        )
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int:
        return self.required - self.available


class StorageLimitExceeded(GenDeskError):
    status_code = 413
    code = "storage_limit_exceeded"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            "Storage limit reached. Please clear your history or contact support.",
            size=size,
            limit=limit,
        )
        self.size = size
        self.limit = limit


class BackendError(GenDeskError):
    """The remote generation backend failed."""

    status_code = 502
    code = "backend_error"

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class QuotaExceededError(BackendError):
    status_code = 429
    code = "backend_quota_exceeded"


class InvalidCredentialError(BackendError):
    status_code = 503
    code = "backend_invalid_credentials"


class MalformedPersistedData(GenDeskError):
    """Raised inside the loader for a record that cannot be repaired; never surfaced."""

    code = "malformed_persisted_data"


class StorageWriteFailure(GenDeskError):
    """Raised by key-value stores; swallowed at the account store boundary."""

    status_code = 500
    code = "storage_write_failure"


class AccountNotFound(GenDeskError):
    status_code = 404
    code = "account_not_found"

    def __init__(self, code: str) -> None:
        super().__init__("Invalid access code.", accessCode=code)


class AssistantNotOwned(GenDeskError):
    status_code = 403
    code = "assistant_not_owned"

    def __init__(self, assistant: str) -> None:
        super().__init__(f"Assistant '{assistant}' has not been purchased.", assistant=assistant)


class AssistantAlreadyOwned(GenDeskError):
    status_code = 409
    code = "assistant_already_owned"

    def __init__(self, assistant: str) -> None:
        super().__init__(f"You already have the assistant '{assistant}'.", assistant=assistant)


class DuplicateFavorite(GenDeskError):
    status_code = 409
    code = "duplicate_favorite"

    def __init__(self) -> None:
        super().__init__("This service is already in your favorites.")


class FavoritesLimitReached(GenDeskError):
    status_code = 409
    code = "favorites_limit_reached"

    def __init__(self, limit: int) -> None:
        super().__init__(f"You can add at most {limit} favorite services.", limit=limit)


class InvalidTransition(GenDeskError):
    status_code = 409
    code = "invalid_transition"


class InvalidReferralCode(GenDeskError):
    code = "invalid_referral_code"

    def __init__(self, value: str) -> None:
        super().__init__("Referral codes are 10 uppercase letters or digits.", ref=value)


class AdminRequired(GenDeskError):
    status_code = 403
    code = "admin_required"

    def __init__(self) -> None:
        super().__init__("Admin mode is not active for this session.")
