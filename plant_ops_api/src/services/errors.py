from __future__ import annotations

from typing import Any, Optional


class DomainError(ValueError):
    """
    Base class for business errors raised by services.

    The API layer maps each subclass to an HTTP status via `status_code` and
    renders it with the standard error envelope.
    """

    status_code: int = 400
    error_type: str = "domain_error"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(DomainError):
    status_code = 404
    error_type = "not_found"


class ConflictError(DomainError):
    status_code = 409
    error_type = "conflict"


class EditLimitExceededError(DomainError):
    """Raised when a non-admin user has used up the allowed number of edits."""
    status_code = 403
    error_type = "edit_limit_exceeded"


class BusinessRuleError(DomainError):
    status_code = 422
    error_type = "business_rule_violation"
