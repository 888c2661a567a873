from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Protocol

from expense_flow.errors import ConflictError, NotFoundError
from expense_flow.models import (
    UPDATABLE_EXPENSE_FIELDS,
    UPDATABLE_USER_FIELDS,
    Expense,
    NewExpense,
    Role,
    SystemSetting,
    User,
    utc_now,
)


class RecordStore(Protocol):
    """Repository over users, expenses and system settings.

    Expense listings are ordered by submission date, most recent first, with
    the id as a tie-break so every listing shares one total order.
    """

    def get_user(self, user_id: int) -> User: ...

    def get_user_by_email(self, email: str) -> User: ...

    def find_user_by_email(self, email: str) -> Optional[User]: ...

    def create_user(
        self,
        email: str,
        name: str,
        department: Optional[str] = None,
        role: Role = "employee",
        is_active: bool = True,
    ) -> User: ...

    def update_user(self, user_id: int, **changes: Any) -> User: ...

    def list_users(self, role: Optional[str] = None) -> list[User]: ...

    def get_expense(self, expense_id: int) -> Expense: ...

    def list_expenses(self) -> list[Expense]: ...

    def list_expenses_by_status(self, status: str) -> list[Expense]: ...

    def list_expenses_by_employee(self, employee_id: int) -> list[Expense]: ...

    def create_expense(self, draft: NewExpense) -> Expense: ...

    def update_expense(self, expense_id: int, **changes: Any) -> Expense: ...

    def get_setting(self, key: str) -> Optional[str]: ...

    def set_setting(self, key: str, value: str) -> SystemSetting: ...

    def list_settings(self) -> list[SystemSetting]: ...


def _check_fields(entity: str, changes: dict[str, Any], allowed: frozenset[str]) -> None:
    invalid = set(changes) - allowed
    if invalid:
        raise ValueError(f"Invalid {entity} fields: {sorted(invalid)}")


def _newest_first(expenses: list[Expense]) -> list[Expense]:
    return sorted(expenses, key=lambda e: (e.submission_date, e.id), reverse=True)


class InMemoryRecordStore:
    """Process-local store used for development and tests."""

    def __init__(self) -> None:
        self._users: dict[int, User] = {}
        self._expenses: dict[int, Expense] = {}
        self._settings: dict[str, SystemSetting] = {}
        self._next_user_id = 1
        self._next_expense_id = 1

    def get_user(self, user_id: int) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    def get_user_by_email(self, email: str) -> User:
        user = self.find_user_by_email(email)
        if user is None:
            raise NotFoundError("user", email)
        return user

    def find_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self._users.values() if u.email == email), None)

    def create_user(
        self,
        email: str,
        name: str,
        department: Optional[str] = None,
        role: Role = "employee",
        is_active: bool = True,
    ) -> User:
        if self.find_user_by_email(email) is not None:
            raise ConflictError(f"User already exists with email {email}", {"email": email})
        user = User(
            id=self._next_user_id,
            email=email,
            name=name,
            department=department,
            role=role,
            is_active=is_active,
            created_at=utc_now(),
        )
        self._next_user_id += 1
        self._users[user.id] = user
        return user

    def update_user(self, user_id: int, **changes: Any) -> User:
        _check_fields("user", changes, UPDATABLE_USER_FIELDS)
        user = self.get_user(user_id)
        new_email = changes.get("email")
        if new_email is not None and new_email != user.email and self.find_user_by_email(new_email):
            raise ConflictError(f"User already exists with email {new_email}", {"email": new_email})
        updated = replace(user, **changes)
        self._users[user_id] = updated
        return updated

    def list_users(self, role: Optional[str] = None) -> list[User]:
        users = sorted(self._users.values(), key=lambda u: u.id)
        if role is not None:
            users = [u for u in users if u.role == role]
        return users

    def get_expense(self, expense_id: int) -> Expense:
        expense = self._expenses.get(expense_id)
        if expense is None:
            raise NotFoundError("expense", expense_id)
        return expense

    def list_expenses(self) -> list[Expense]:
        return _newest_first(list(self._expenses.values()))

    def list_expenses_by_status(self, status: str) -> list[Expense]:
        return _newest_first([e for e in self._expenses.values() if e.status == status])

    def list_expenses_by_employee(self, employee_id: int) -> list[Expense]:
        return _newest_first([e for e in self._expenses.values() if e.employee_id == employee_id])

    def create_expense(self, draft: NewExpense) -> Expense:
        expense = Expense(
            id=self._next_expense_id,
            employee_id=draft.submitter.employee_id,
            employee_name=draft.submitter.employee_name,
            employee_email=draft.submitter.employee_email,
            department=draft.submitter.department,
            amount=draft.amount,
            description=draft.description,
            category=draft.category,
            expense_date=draft.expense_date,
            submission_date=draft.submission_date,
            receipt_url=draft.receipt_url,
            receipt_file_name=draft.receipt_file_name,
            email_id=draft.email_id,
            form_submission_id=draft.form_submission_id,
        )
        self._next_expense_id += 1
        self._expenses[expense.id] = expense
        return expense

    def update_expense(self, expense_id: int, **changes: Any) -> Expense:
        _check_fields("expense", changes, UPDATABLE_EXPENSE_FIELDS)
        updated = replace(self.get_expense(expense_id), **changes)
        self._expenses[expense_id] = updated
        return updated

    def get_setting(self, key: str) -> Optional[str]:
        setting = self._settings.get(key)
        return setting.value if setting else None

    def set_setting(self, key: str, value: str) -> SystemSetting:
        setting = SystemSetting(key=key, value=value, updated_at=utc_now())
        self._settings[key] = setting
        return setting

    def list_settings(self) -> list[SystemSetting]:
        return sorted(self._settings.values(), key=lambda s: s.key)


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        # Fixed width keeps ORDER BY on the text column chronological.
        return value.isoformat(timespec="microseconds")
    if isinstance(value, date):
        return value.isoformat()
    return value


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        department=row["department"],
        role=row["role"],
        is_active=bool(row["is_active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_expense(row: sqlite3.Row) -> Expense:
    return Expense(
        id=row["id"],
        employee_id=row["employee_id"],
        employee_name=row["employee_name"],
        employee_email=row["employee_email"],
        department=row["department"],
        amount=Decimal(row["amount"]),
        description=row["description"],
        category=row["category"],
        expense_date=date.fromisoformat(row["expense_date"]),
        submission_date=datetime.fromisoformat(row["submission_date"]),
        status=row["status"],
        approved_by=row["approved_by"],
        approved_by_name=row["approved_by_name"],
        approval_date=_parse_datetime(row["approval_date"]),
        approval_note=row["approval_note"],
        receipt_url=row["receipt_url"],
        receipt_file_name=row["receipt_file_name"],
        email_id=row["email_id"],
        form_submission_id=row["form_submission_id"],
        sheets_row_number=row["sheets_row_number"],
        notification_sent=bool(row["notification_sent"]),
    )


class SqliteRecordStore:
    """Durable store over the schema in migrations/sqlite."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_user(self, user_id: int) -> User:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError("user", user_id)
        return _row_to_user(row)

    def get_user_by_email(self, email: str) -> User:
        user = self.find_user_by_email(email)
        if user is None:
            raise NotFoundError("user", email)
        return user

    def find_user_by_email(self, email: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return _row_to_user(row) if row else None

    def create_user(
        self,
        email: str,
        name: str,
        department: Optional[str] = None,
        role: Role = "employee",
        is_active: bool = True,
    ) -> User:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    """
                    INSERT INTO users(email, name, department, role, is_active, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (email, name, department, role, int(is_active), _normalize_value(utc_now())),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"User already exists with email {email}", {"email": email}) from exc
        return self.get_user(int(cursor.lastrowid))

    def update_user(self, user_id: int, **changes: Any) -> User:
        _check_fields("user", changes, UPDATABLE_USER_FIELDS)
        self.get_user(user_id)
        if changes:
            assignments = ", ".join(f"{field} = ?" for field in changes)
            values = [_normalize_value(changes[field]) for field in changes]
            values.append(user_id)
            try:
                with self.conn:
                    self.conn.execute(f"UPDATE users SET {assignments} WHERE id = ?", values)
            except sqlite3.IntegrityError as exc:
                raise ConflictError(f"User already exists with email {changes.get('email')}") from exc
        return self.get_user(user_id)

    def list_users(self, role: Optional[str] = None) -> list[User]:
        if role is None:
            rows = self.conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        else:
            rows = self.conn.execute("SELECT * FROM users WHERE role = ? ORDER BY id", (role,)).fetchall()
        return [_row_to_user(row) for row in rows]

    def get_expense(self, expense_id: int) -> Expense:
        row = self.conn.execute("SELECT * FROM expenses WHERE id = ?", (expense_id,)).fetchone()
        if row is None:
            raise NotFoundError("expense", expense_id)
        return _row_to_expense(row)

    def list_expenses(self) -> list[Expense]:
        rows = self.conn.execute("SELECT * FROM expenses ORDER BY submission_date DESC, id DESC").fetchall()
        return [_row_to_expense(row) for row in rows]

    def list_expenses_by_status(self, status: str) -> list[Expense]:
        rows = self.conn.execute(
            "SELECT * FROM expenses WHERE status = ? ORDER BY submission_date DESC, id DESC",
            (status,),
        ).fetchall()
        return [_row_to_expense(row) for row in rows]

    def list_expenses_by_employee(self, employee_id: int) -> list[Expense]:
        rows = self.conn.execute(
            "SELECT * FROM expenses WHERE employee_id = ? ORDER BY submission_date DESC, id DESC",
            (employee_id,),
        ).fetchall()
        return [_row_to_expense(row) for row in rows]

    def create_expense(self, draft: NewExpense) -> Expense:
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO expenses(
                    employee_id, employee_name, employee_email, department, amount, description,
                    category, expense_date, submission_date, receipt_url, receipt_file_name,
                    email_id, form_submission_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    draft.submitter.employee_id,
                    draft.submitter.employee_name,
                    draft.submitter.employee_email,
                    draft.submitter.department,
                    _normalize_value(draft.amount),
                    draft.description,
                    draft.category,
                    _normalize_value(draft.expense_date),
                    _normalize_value(draft.submission_date),
                    draft.receipt_url,
                    draft.receipt_file_name,
                    draft.email_id,
                    draft.form_submission_id,
                ),
            )
        return self.get_expense(int(cursor.lastrowid))

    def update_expense(self, expense_id: int, **changes: Any) -> Expense:
        _check_fields("expense", changes, UPDATABLE_EXPENSE_FIELDS)
        self.get_expense(expense_id)
        if changes:
            assignments = ", ".join(f"{field} = ?" for field in changes)
            values = [_normalize_value(changes[field]) for field in changes]
            values.append(expense_id)
            with self.conn:
                self.conn.execute(f"UPDATE expenses SET {assignments} WHERE id = ?", values)
        return self.get_expense(expense_id)

    def get_setting(self, key: str) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM system_settings WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set_setting(self, key: str, value: str) -> SystemSetting:
        updated_at = utc_now()
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO system_settings(key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key)
                DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, _normalize_value(updated_at)),
            )
        return SystemSetting(key=key, value=value, updated_at=updated_at)

    def list_settings(self) -> list[SystemSetting]:
        rows = self.conn.execute("SELECT key, value, updated_at FROM system_settings ORDER BY key").fetchall()
        return [
            SystemSetting(key=row["key"], value=row["value"], updated_at=datetime.fromisoformat(row["updated_at"]))
            for row in rows
        ]
