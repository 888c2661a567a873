from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

Role = Literal["employee", "approver", "admin"]
ExpenseStatus = Literal["pending", "approved", "rejected"]
Verdict = Literal["approved", "rejected"]

ROLES: tuple[str, ...] = ("employee", "approver", "admin")
EXPENSE_STATUSES: tuple[str, ...] = ("pending", "approved", "rejected")
DECIDER_ROLES: frozenset[str] = frozenset({"approver", "admin"})

SUGGESTED_CATEGORIES: tuple[str, ...] = (
    "Meals & Entertainment",
    "Transportation",
    "Lodging",
    "Travel",
    "Mileage",
    "Office Supplies",
    "Software",
    "Other",
)


@dataclass(frozen=True)
class User:
    id: int
    email: str
    name: str
    department: Optional[str]
    role: Role
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class SubmitterSnapshot:
    """Submitter attributes copied onto an expense when it is created."""

    employee_id: int
    employee_name: str
    employee_email: str
    department: Optional[str]

    @classmethod
    def from_user(cls, user: User) -> "SubmitterSnapshot":
        return cls(
            employee_id=user.id,
            employee_name=user.name,
            employee_email=user.email,
            department=user.department,
        )


@dataclass(frozen=True)
class NewExpense:
    submitter: SubmitterSnapshot
    amount: Decimal
    description: str
    category: str
    expense_date: date
    submission_date: datetime
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None
    email_id: Optional[str] = None
    form_submission_id: Optional[str] = None


@dataclass(frozen=True)
class Expense:
    id: int
    employee_id: int
    employee_name: str
    employee_email: str
    department: Optional[str]
    amount: Decimal
    description: str
    category: str
    expense_date: date
    submission_date: datetime
    status: ExpenseStatus = "pending"
    approved_by: Optional[int] = None
    approved_by_name: Optional[str] = None
    approval_date: Optional[datetime] = None
    approval_note: Optional[str] = None
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None
    email_id: Optional[str] = None
    form_submission_id: Optional[str] = None
    sheets_row_number: Optional[int] = None
    notification_sent: bool = False

    @property
    def is_decided(self) -> bool:
        return self.status != "pending"


# Fields a partial update may touch; id, submitter snapshot and submission_date never change.
UPDATABLE_EXPENSE_FIELDS = frozenset(
    {
        "amount",
        "description",
        "category",
        "expense_date",
        "status",
        "approved_by",
        "approved_by_name",
        "approval_date",
        "approval_note",
        "receipt_url",
        "receipt_file_name",
        "email_id",
        "form_submission_id",
        "sheets_row_number",
        "notification_sent",
    }
)

UPDATABLE_USER_FIELDS = frozenset({"email", "name", "department", "role", "is_active"})


@dataclass(frozen=True)
class SystemSetting:
    key: str
    value: str
    updated_at: datetime


@dataclass(frozen=True)
class ExpenseStats:
    pending_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    total_amount: Decimal = Decimal("0.00")

    @property
    def total_count(self) -> int:
        return self.pending_count + self.approved_count + self.rejected_count


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content_type: str
    content: bytes = field(repr=False)
