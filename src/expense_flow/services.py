from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from expense_flow.errors import PermissionDeniedError, ValidationError
from expense_flow.ingestion import IngestReport, InboxIngestor
from expense_flow.lifecycle import ExpenseSubmission, LifecycleEngine
from expense_flow.mileage import get_mileage_rate
from expense_flow.models import EXPENSE_STATUSES, Attachment, Expense, ExpenseStats, SubmitterSnapshot, User
from expense_flow.reconciliation import Reconciler, ResendReport, SyncReport
from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)


def compute_stats(expenses: list[Expense]) -> ExpenseStats:
    counts = {status: 0 for status in EXPENSE_STATUSES}
    total = Decimal("0.00")
    for expense in expenses:
        counts[expense.status] += 1
        if expense.status == "approved":
            total += expense.amount
    return ExpenseStats(
        pending_count=counts["pending"],
        approved_count=counts["approved"],
        rejected_count=counts["rejected"],
        total_amount=total,
    )


class ExpenseService:
    """Application service behind the HTTP routes and the operations scripts."""

    def __init__(
        self,
        store: RecordStore,
        engine: LifecycleEngine,
        reconciler: Reconciler,
        ingestor: Optional[InboxIngestor] = None,
    ):
        self.store = store
        self.engine = engine
        self.reconciler = reconciler
        self.ingestor = ingestor

    async def create_expense(
        self,
        user: User,
        submission: ExpenseSubmission,
        attachment: Optional[Attachment] = None,
    ) -> Expense:
        return await self.engine.submit(SubmitterSnapshot.from_user(user), submission, attachment=attachment)

    async def decide_expense(
        self,
        expense_id: int,
        verdict: str,
        decider: User,
        note: Optional[str] = None,
    ) -> Expense:
        return await self.engine.decide(expense_id, verdict, decider, note)

    def get_expense(self, expense_id: int) -> Expense:
        return self.store.get_expense(expense_id)

    def list_expenses(
        self,
        requester: User,
        status: Optional[str] = None,
        employee_id: Optional[int] = None,
    ) -> list[Expense]:
        if status:
            if status not in EXPENSE_STATUSES:
                raise ValidationError("status", f"must be one of {', '.join(EXPENSE_STATUSES)}")
            return self.store.list_expenses_by_status(status)
        if employee_id is not None and employee_id == requester.id:
            return self.store.list_expenses_by_employee(employee_id)
        return self.store.list_expenses()

    def get_stats(self) -> ExpenseStats:
        return compute_stats(self.store.list_expenses())

    def get_mileage_rate(self) -> Decimal:
        return get_mileage_rate(self.store)

    async def trigger_ledger_resync(self, requester: User) -> SyncReport:
        self._require_admin(requester)
        return await self.reconciler.sync_unsynced()

    async def trigger_notification_resend(self, requester: User) -> ResendReport:
        self._require_admin(requester)
        return await self.reconciler.resend_notifications()

    async def trigger_inbox_ingest(self, requester: User) -> IngestReport:
        self._require_admin(requester)
        if self.ingestor is None:
            logger.warning("Inbox ingestion requested but no inbox is configured")
            return IngestReport()
        return await self.ingestor.ingest()

    @staticmethod
    def _require_admin(user: User) -> None:
        if user.role != "admin":
            raise PermissionDeniedError("Admin access required", {"user_id": user.id, "role": user.role})
