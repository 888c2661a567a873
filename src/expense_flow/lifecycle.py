"""Expense state machine: pending -> approved | rejected.

``submit`` creates pending expenses and ``decide`` moves them to a terminal
status. Both persist first and fan out afterwards; the returned expense is
the record as written to the store, before any sink outcome is known.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional, Protocol, Union

from expense_flow.dispatch import ExpenseDispatcher
from expense_flow.errors import InvalidTransitionError, PermissionDeniedError, ValidationError
from expense_flow.mileage import calculate_amount, get_mileage_rate, quantize_amount, to_decimal
from expense_flow.models import (
    DECIDER_ROLES,
    Attachment,
    Expense,
    NewExpense,
    SubmitterSnapshot,
    User,
    utc_now,
)
from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)

VERDICTS = ("approved", "rejected")


class FileHost(Protocol):
    async def upload(self, filename: str, mime_type: str, content: bytes) -> str: ...


@dataclass(frozen=True)
class ExpenseSubmission:
    """Financial fields as entered by the submitter, before validation."""

    description: Optional[str] = None
    category: Optional[str] = None
    expense_date: Union[date, str, None] = None
    amount: Union[Decimal, str, int, float, None] = None
    mileage_distance: Union[Decimal, str, int, float, None] = None
    mileage_start: Optional[str] = None
    mileage_end: Optional[str] = None
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None

    @property
    def is_mileage(self) -> bool:
        return any(
            value not in (None, "")
            for value in (self.mileage_distance, self.mileage_start, self.mileage_end)
        )


def parse_expense_date(value: Union[date, str, None]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or not str(value).strip():
        raise ValidationError("expense_date", "is required")
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise ValidationError("expense_date", f"not a calendar date: {text!r}") from exc


class LifecycleEngine:
    def __init__(
        self,
        store: RecordStore,
        dispatcher: ExpenseDispatcher,
        file_host: Optional[FileHost] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.file_host = file_host
        self.clock = clock

    def _resolve_amount(self, submission: ExpenseSubmission) -> Decimal:
        if submission.amount not in (None, ""):
            try:
                amount = to_decimal(submission.amount)
            except ValueError as exc:
                raise ValidationError("amount", "must be a decimal number") from exc
            if not amount.is_finite():
                raise ValidationError("amount", "must be a finite number")
            try:
                amount = quantize_amount(amount)
            except ValueError as exc:
                raise ValidationError("amount", "is too large") from exc
            # Sub-cent amounts round to 0.00 here.
            if amount <= 0:
                raise ValidationError("amount", "must be at least 0.01")
            return amount

        if not submission.is_mileage:
            raise ValidationError("amount", "is required")
        for field_name in ("mileage_distance", "mileage_start", "mileage_end"):
            value = getattr(submission, field_name)
            if value is None or not str(value).strip():
                raise ValidationError(field_name, "is required for a mileage claim")
        rate = get_mileage_rate(self.store)
        try:
            return calculate_amount(submission.mileage_distance, rate)
        except ValueError as exc:
            raise ValidationError("mileage_distance", str(exc)) from exc

    def validate(self, submission: ExpenseSubmission) -> tuple[Decimal, date]:
        amount = self._resolve_amount(submission)
        if not (submission.description or "").strip():
            raise ValidationError("description", "must not be empty")
        expense_date = parse_expense_date(submission.expense_date)
        if not (submission.category or "").strip():
            raise ValidationError("category", "is required")
        return amount, expense_date

    async def _host_attachment(self, attachment: Attachment, expense_email: str) -> Optional[str]:
        if self.file_host is None:
            logger.warning("No file host configured; dropping receipt %s", attachment.filename)
            return None
        try:
            return await self.file_host.upload(attachment.filename, attachment.content_type, attachment.content)
        except Exception:
            logger.exception(
                "Receipt upload failed for %s from %s",
                attachment.filename,
                expense_email,
                extra={"sink": "file_host"},
            )
            return None

    async def submit(
        self,
        submitter: SubmitterSnapshot,
        submission: ExpenseSubmission,
        *,
        email_id: Optional[str] = None,
        form_submission_id: Optional[str] = None,
        attachment: Optional[Attachment] = None,
    ) -> Expense:
        amount, expense_date = self.validate(submission)

        receipt_url = submission.receipt_url or None
        receipt_file_name = submission.receipt_file_name or None
        if attachment is not None:
            hosted_url = await self._host_attachment(attachment, submitter.employee_email)
            if hosted_url:
                receipt_url = hosted_url
                receipt_file_name = attachment.filename

        expense = self.store.create_expense(
            NewExpense(
                submitter=submitter,
                amount=amount,
                description=submission.description.strip(),
                category=submission.category.strip(),
                expense_date=expense_date,
                submission_date=self.clock(),
                receipt_url=receipt_url,
                receipt_file_name=receipt_file_name,
                email_id=email_id,
                form_submission_id=form_submission_id,
            )
        )
        logger.info(
            "Expense %s submitted by %s for %s",
            expense.id,
            expense.employee_email,
            expense.amount,
            extra={"expense_id": expense.id, "user_id": expense.employee_id, "status": expense.status},
        )
        await self.dispatcher.expense_created(expense)
        return expense

    async def decide(
        self,
        expense_id: int,
        verdict: str,
        decider: User,
        note: Optional[str] = None,
    ) -> Expense:
        if verdict not in VERDICTS:
            raise ValidationError("status", f"must be one of {', '.join(VERDICTS)}")
        if decider.role not in DECIDER_ROLES:
            raise PermissionDeniedError(
                "Insufficient permissions to decide expenses",
                {"user_id": decider.id, "role": decider.role},
            )

        current = self.store.get_expense(expense_id)
        if current.status != "pending":
            raise InvalidTransitionError(expense_id, current.status, verdict)

        expense = self.store.update_expense(
            expense_id,
            status=verdict,
            approved_by=decider.id,
            approved_by_name=decider.name,
            approval_date=self.clock(),
            approval_note=note or None,
            notification_sent=False,
        )
        logger.info(
            "Expense %s %s by %s",
            expense.id,
            verdict,
            decider.email,
            extra={"expense_id": expense.id, "user_id": decider.id, "status": verdict},
        )
        await self.dispatcher.expense_decided(expense)
        return expense
