"""Error hierarchy shared by the store, the lifecycle engine and the API layer."""
from __future__ import annotations

from typing import Any, Optional


class ExpenseFlowError(Exception):
    """Base error; carries a stable code and the HTTP status the API maps it to."""

    error_code: str = "EXPENSE_FLOW_ERROR"
    http_status: int = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(ExpenseFlowError):
    """A submitted field is missing or malformed."""

    error_code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}", {"field": field})
        self.field = field


class AuthenticationError(ExpenseFlowError):
    error_code = "AUTHENTICATION_REQUIRED"
    http_status = 401


class PermissionDeniedError(ExpenseFlowError):
    error_code = "INSUFFICIENT_PERMISSION"
    http_status = 403


class NotFoundError(ExpenseFlowError):
    error_code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, key: Any):
        super().__init__(f"{entity} not found: {key}", {"entity": entity, "key": key})
        self.entity = entity
        self.key = key


class ConflictError(ExpenseFlowError):
    error_code = "CONFLICT"
    http_status = 409


class InvalidTransitionError(ExpenseFlowError):
    """Raised when deciding an expense that is no longer pending."""

    error_code = "ALREADY_DECIDED"
    http_status = 409

    def __init__(self, expense_id: int, current_status: str, requested_status: str):
        super().__init__(
            f"Expense {expense_id} is already {current_status}; cannot move to {requested_status}",
            {"expense_id": expense_id, "current_status": current_status, "requested_status": requested_status},
        )
        self.expense_id = expense_id
        self.current_status = current_status
        self.requested_status = requested_status


class ExternalSinkError(ExpenseFlowError):
    """A ledger, notifier, inbox or file host call failed."""

    error_code = "EXTERNAL_SINK_ERROR"
    http_status = 502

    def __init__(self, sink: str, message: str):
        super().__init__(f"{sink}: {message}", {"sink": sink})
        self.sink = sink
