"""Fan-out of expense lifecycle events to the ledger and the notifier.

The two sinks are siblings: each is attempted on its own and a failure in
one is logged and reported, never raised, so it can neither block the other
sink nor fail the submit/decide call that triggered it. Nothing is retried
here; ``expense_flow.reconciliation`` is the recovery path.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Protocol

from expense_flow.models import DECIDER_ROLES, Expense, User
from expense_flow.notifications import decision_message, submission_message
from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)

SinkOutcome = Literal["ok", "failed", "skipped"]

LEDGER_COLUMNS: tuple[str, ...] = (
    "id",
    "employeeName",
    "employeeEmail",
    "department",
    "amount",
    "description",
    "category",
    "expenseDate",
    "submissionDate",
    "status",
    "approvedByName",
    "approvalDate",
    "approvalNote",
    "receiptUrl",
    "sourceId",
)
DECISION_COLUMNS: tuple[str, ...] = ("status", "approvedByName", "approvalDate", "approvalNote")

SHEETS_ENABLED = "sheets_enabled"
NOTIFICATIONS_ENABLED = "notifications_enabled"


class LedgerSink(Protocol):
    async def append(self, row: dict[str, Any]) -> int: ...

    async def update(self, row_reference: int, partial_row: dict[str, Any]) -> None: ...


class Notifier(Protocol):
    async def send(self, to_address: str, subject: str, body: str) -> None: ...


@dataclass(frozen=True)
class DispatchReport:
    expense_id: int
    event: str
    ledger: SinkOutcome
    notifier: SinkOutcome


def setting_enabled(store: RecordStore, key: str, default: bool = True) -> bool:
    raw = store.get_setting(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def ledger_row(expense: Expense) -> dict[str, Any]:
    values = [
        expense.id,
        expense.employee_name,
        expense.employee_email,
        expense.department or "",
        str(expense.amount),
        expense.description,
        expense.category,
        expense.expense_date.isoformat(),
        expense.submission_date.date().isoformat(),
        expense.status,
        expense.approved_by_name or "",
        expense.approval_date.date().isoformat() if expense.approval_date else "",
        expense.approval_note or "",
        expense.receipt_url or "",
        expense.email_id or expense.form_submission_id or "",
    ]
    return dict(zip(LEDGER_COLUMNS, values))


def decision_row(expense: Expense) -> dict[str, Any]:
    row = ledger_row(expense)
    return {column: row[column] for column in DECISION_COLUMNS}


class ExpenseDispatcher:
    def __init__(
        self,
        store: RecordStore,
        ledger: Optional[LedgerSink] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.notifier = notifier

    async def expense_created(self, expense: Expense) -> DispatchReport:
        ledger_outcome = await self.append_to_ledger(expense)
        notifier_outcome = await self._notify_approvers(expense)
        return self._report(expense, "created", ledger_outcome, notifier_outcome)

    async def expense_decided(self, expense: Expense) -> DispatchReport:
        ledger_outcome = await self._update_ledger(expense)
        notifier_outcome = await self.notify_submitter(expense)
        return self._report(expense, "decided", ledger_outcome, notifier_outcome)

    async def append_to_ledger(self, expense: Expense) -> SinkOutcome:
        try:
            if not self._enabled(self.ledger, SHEETS_ENABLED):
                return "skipped"
            row_reference = await self.ledger.append(ledger_row(expense))
        except Exception:
            logger.exception(
                "Ledger append failed for expense %s",
                expense.id,
                extra={"expense_id": expense.id, "sink": "ledger"},
            )
            return "failed"
        if not row_reference or row_reference <= 0:
            logger.warning(
                "Ledger returned no row for expense %s",
                expense.id,
                extra={"expense_id": expense.id, "sink": "ledger"},
            )
            return "failed"
        try:
            self.store.update_expense(expense.id, sheets_row_number=row_reference)
        except Exception:
            logger.exception(
                "Ledger row %s written but not stored for expense %s; the next sync appends it again",
                row_reference,
                expense.id,
                extra={"expense_id": expense.id, "sink": "ledger"},
            )
            return "failed"
        logger.info(
            "Appended expense %s to ledger row %s",
            expense.id,
            row_reference,
            extra={"expense_id": expense.id, "sink": "ledger"},
        )
        return "ok"

    async def _update_ledger(self, expense: Expense) -> SinkOutcome:
        try:
            if not self._enabled(self.ledger, SHEETS_ENABLED):
                return "skipped"
            if not expense.sheets_row_number:
                logger.warning(
                    "No ledger row for expense %s; decision not written",
                    expense.id,
                    extra={"expense_id": expense.id, "sink": "ledger"},
                )
                return "skipped"
            await self.ledger.update(expense.sheets_row_number, decision_row(expense))
        except Exception:
            logger.exception(
                "Ledger update failed for expense %s",
                expense.id,
                extra={"expense_id": expense.id, "sink": "ledger"},
            )
            return "failed"
        return "ok"

    def approvers(self) -> list[User]:
        return [u for u in self.store.list_users() if u.role in DECIDER_ROLES and u.is_active]

    async def _notify_approvers(self, expense: Expense) -> SinkOutcome:
        try:
            if not self._enabled(self.notifier, NOTIFICATIONS_ENABLED):
                return "skipped"
            approvers = self.approvers()
        except Exception:
            logger.exception("Could not load approvers", extra={"expense_id": expense.id, "sink": "notifier"})
            return "failed"
        if not approvers:
            logger.warning("No approvers found to notify", extra={"expense_id": expense.id, "sink": "notifier"})
            return "skipped"

        message = submission_message(expense)
        failures = 0
        for approver in approvers:
            try:
                await self.notifier.send(approver.email, message.subject, message.body)
            except Exception:
                failures += 1
                logger.exception(
                    "Submission notice to %s failed for expense %s",
                    approver.email,
                    expense.id,
                    extra={"expense_id": expense.id, "sink": "notifier"},
                )
        if failures:
            return "failed"
        return self._mark_notified(expense)

    async def notify_submitter(self, expense: Expense) -> SinkOutcome:
        try:
            if not self._enabled(self.notifier, NOTIFICATIONS_ENABLED):
                return "skipped"
            message = decision_message(expense)
            await self.notifier.send(expense.employee_email, message.subject, message.body)
        except Exception:
            logger.exception(
                "Decision notice failed for expense %s",
                expense.id,
                extra={"expense_id": expense.id, "sink": "notifier", "status": expense.status},
            )
            return "failed"
        return self._mark_notified(expense)

    def _enabled(self, sink: object, key: str) -> bool:
        return sink is not None and setting_enabled(self.store, key)

    def _mark_notified(self, expense: Expense) -> SinkOutcome:
        try:
            self.store.update_expense(expense.id, notification_sent=True)
        except Exception:
            logger.exception(
                "Notice sent but flag not stored for expense %s",
                expense.id,
                extra={"expense_id": expense.id, "sink": "notifier"},
            )
            return "failed"
        return "ok"

    @staticmethod
    def _report(expense: Expense, event: str, ledger: SinkOutcome, notifier: SinkOutcome) -> DispatchReport:
        level = logging.WARNING if "failed" in (ledger, notifier) else logging.INFO
        logger.log(
            level,
            "Dispatched %s event for expense %s (ledger=%s, notifier=%s)",
            event,
            expense.id,
            ledger,
            notifier,
            extra={"expense_id": expense.id, "status": expense.status},
        )
        return DispatchReport(expense_id=expense.id, event=event, ledger=ledger, notifier=notifier)
