from .auth import AuthService, CredentialStore, InMemoryCredentialStore
from .dispatch import DispatchReport, ExpenseDispatcher, LedgerSink, Notifier
from .errors import (
    AuthenticationError,
    ConflictError,
    ExpenseFlowError,
    ExternalSinkError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .ingestion import InboxIngestor, InboxMessage, InboxSource
from .lifecycle import ExpenseSubmission, FileHost, LifecycleEngine
from .mileage import calculate_amount, get_mileage_rate
from .models import Attachment, Expense, ExpenseStats, SubmitterSnapshot, SystemSetting, User
from .reconciliation import Reconciler
from .repositories import InMemoryRecordStore, RecordStore, SqliteRecordStore
from .services import ExpenseService

__all__ = [
    "Attachment",
    "AuthService",
    "AuthenticationError",
    "ConflictError",
    "CredentialStore",
    "DispatchReport",
    "Expense",
    "ExpenseDispatcher",
    "ExpenseFlowError",
    "ExpenseService",
    "ExpenseStats",
    "ExpenseSubmission",
    "ExternalSinkError",
    "FileHost",
    "InMemoryCredentialStore",
    "InMemoryRecordStore",
    "InboxIngestor",
    "InboxMessage",
    "InboxSource",
    "InvalidTransitionError",
    "LedgerSink",
    "LifecycleEngine",
    "NotFoundError",
    "Notifier",
    "PermissionDeniedError",
    "Reconciler",
    "RecordStore",
    "SqliteRecordStore",
    "SubmitterSnapshot",
    "SystemSetting",
    "User",
    "ValidationError",
    "calculate_amount",
    "get_mileage_rate",
]
