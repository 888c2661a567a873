from __future__ import annotations

import logging
from dataclasses import dataclass, field

from expense_flow.dispatch import ExpenseDispatcher
from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    appended: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: int = 0


@dataclass
class ResendReport:
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


class Reconciler:
    """Manually triggered catch-up for records a failed sink left behind."""

    def __init__(self, store: RecordStore, dispatcher: ExpenseDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def sync_unsynced(self) -> SyncReport:
        report = SyncReport()
        for expense in self.store.list_expenses():
            if expense.sheets_row_number:
                report.skipped += 1
                continue
            outcome = await self.dispatcher.append_to_ledger(expense)
            if outcome == "ok":
                report.appended.append(expense.id)
            elif outcome == "failed":
                report.failed.append(expense.id)
            else:
                report.skipped += 1
        logger.info(
            "Ledger sync appended %d, failed %d, skipped %d",
            len(report.appended),
            len(report.failed),
            report.skipped,
        )
        return report

    async def resend_notifications(self) -> ResendReport:
        report = ResendReport()
        for expense in self.store.list_expenses():
            if expense.notification_sent or not expense.is_decided:
                continue
            outcome = await self.dispatcher.notify_submitter(expense)
            if outcome == "ok":
                report.sent.append(expense.id)
            elif outcome == "failed":
                report.failed.append(expense.id)
        logger.info("Resent %d decision notices, %d failed", len(report.sent), len(report.failed))
        return report
