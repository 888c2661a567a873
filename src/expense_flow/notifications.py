"""Plain-text notification messages for submission and decision events."""
from __future__ import annotations

from dataclasses import dataclass

from expense_flow.models import Expense

SYSTEM_NAME = "ExpenseFlow"


@dataclass(frozen=True)
class NotificationMessage:
    subject: str
    body: str


def submission_message(expense: Expense) -> NotificationMessage:
    lines = [
        "A new expense report has been submitted and is awaiting your approval.",
        "",
        "Expense Details:",
        f"- Employee: {expense.employee_name}",
        f"- Department: {expense.department or 'Unknown'}",
        f"- Amount: ${expense.amount}",
        f"- Date: {expense.expense_date.isoformat()}",
        f"- Description: {expense.description}",
        f"- Category: {expense.category}",
        "",
        f"Please log in to the {SYSTEM_NAME} system to review and approve this expense.",
    ]
    if expense.receipt_url:
        lines.extend(["", f"Receipt: {expense.receipt_url}"])
    lines.extend(["", "Best regards,", f"{SYSTEM_NAME} System"])
    return NotificationMessage(
        subject=f"New Expense Report Submitted - ${expense.amount}",
        body="\n".join(lines),
    )


def decision_message(expense: Expense) -> NotificationMessage:
    approved = expense.status == "approved"
    lines = [
        f"Your expense report has been {expense.status}.",
        "",
        "Expense Details:",
        f"- Amount: ${expense.amount}",
        f"- Date: {expense.expense_date.isoformat()}",
        f"- Description: {expense.description}",
        f"- Status: {expense.status.upper()}",
        f"- {'Approved' if approved else 'Reviewed'} by: {expense.approved_by_name or ''}",
        f"- {'Approval' if approved else 'Review'} Date: "
        + (expense.approval_date.date().isoformat() if expense.approval_date else ""),
    ]
    if expense.approval_note:
        lines.extend(["", f"Note: {expense.approval_note}"])
    lines.append("")
    if approved:
        lines.append("Your expense will be processed for reimbursement according to company policy.")
    else:
        lines.append("If you have questions about this decision, please contact your manager or the finance team.")
    lines.extend(["", "Best regards,", f"{SYSTEM_NAME} System"])
    return NotificationMessage(
        subject=f"Expense Report {'Approved' if approved else 'Rejected'} - ${expense.amount}",
        body="\n".join(lines),
    )
