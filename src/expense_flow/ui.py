from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from typing import Any

from expense_flow.models import Expense, ExpenseStats, User


def format_amount(amount: Decimal) -> str:
    return f"${amount:.2f}"


def initials(name: str) -> str:
    return "".join(part[0] for part in name.split() if part).upper()


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def present_expense(expense: Expense) -> dict[str, Any]:
    payload = {key: _jsonable(value) for key, value in asdict(expense).items()}
    payload["formatted_amount"] = format_amount(expense.amount)
    payload["formatted_date"] = expense.expense_date.isoformat()
    payload["initials"] = initials(expense.employee_name)
    return payload


def present_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "department": user.department,
    }


def present_stats(stats: ExpenseStats) -> dict[str, Any]:
    return {
        "pending_count": stats.pending_count,
        "approved_count": stats.approved_count,
        "rejected_count": stats.rejected_count,
        "total_amount": format_amount(stats.total_amount),
    }
