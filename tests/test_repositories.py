from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from expense_flow.errors import ConflictError, NotFoundError
from expense_flow.models import NewExpense, SubmitterSnapshot

BASE = datetime(2025, 6, 20, 12, 0, tzinfo=timezone.utc)


def _draft(user, minutes: int, amount: str = "10.00") -> NewExpense:
    return NewExpense(
        submitter=SubmitterSnapshot.from_user(user),
        amount=Decimal(amount),
        description=f"Expense {minutes}",
        category="Other",
        expense_date=date(2025, 6, 20),
        submission_date=BASE + timedelta(minutes=minutes),
    )


def test_users_are_unique_by_email_and_missing_ids_are_explicit(store):
    user = store.create_user(email="sarah@agency.com", name="Sarah Miller", department="Marketing")

    assert store.get_user(user.id) == user
    assert store.get_user_by_email("sarah@agency.com").id == user.id
    assert store.find_user_by_email("Sarah@agency.com") is None
    with pytest.raises(ConflictError):
        store.create_user(email="sarah@agency.com", name="Someone Else")
    with pytest.raises(NotFoundError):
        store.get_user(999)
    with pytest.raises(NotFoundError):
        store.get_user_by_email("nobody@agency.com")


def test_update_user_merges_given_fields_only(store):
    user = store.create_user(email="michael@agency.com", name="Michael Johnson", department="Engineering")

    updated = store.update_user(user.id, role="approver")

    assert updated.role == "approver"
    assert updated.name == "Michael Johnson"
    assert updated.department == "Engineering"
    assert [u.id for u in store.list_users(role="approver")] == [user.id]


def test_create_expense_assigns_ids_and_defaults(store):
    user = store.create_user(email="sarah@agency.com", name="Sarah Miller")

    first = store.create_expense(_draft(user, 0, "156.50"))
    second = store.create_expense(_draft(user, 1))

    assert second.id > first.id
    assert first.status == "pending"
    assert first.amount == Decimal("156.50")
    assert first.notification_sent is False
    assert first.approved_by is None and first.approval_date is None
    assert first.sheets_row_number is None
    assert store.get_expense(first.id) == first


def test_update_expense_is_partial_and_guards_fields(store):
    user = store.create_user(email="sarah@agency.com", name="Sarah Miller")
    expense = store.create_expense(_draft(user, 0))

    updated = store.update_expense(expense.id, sheets_row_number=7)

    assert updated.sheets_row_number == 7
    assert updated.description == expense.description
    assert updated.submission_date == expense.submission_date
    with pytest.raises(ValueError):
        store.update_expense(expense.id, submission_date=BASE)
    with pytest.raises(NotFoundError):
        store.update_expense(404, notification_sent=True)
    with pytest.raises(NotFoundError):
        store.get_expense(404)


def test_listings_are_newest_first_and_status_filter_keeps_order(store):
    sarah = store.create_user(email="sarah@agency.com", name="Sarah Miller")
    michael = store.create_user(email="michael@agency.com", name="Michael Johnson")
    expenses = [
        store.create_expense(_draft(sarah, 5)),
        store.create_expense(_draft(michael, 1)),
        store.create_expense(_draft(sarah, 9)),
        store.create_expense(_draft(michael, 3)),
    ]
    store.update_expense(expenses[1].id, status="approved")

    all_ids = [e.id for e in store.list_expenses()]
    pending_ids = [e.id for e in store.list_expenses_by_status("pending")]

    assert all_ids == [expenses[2].id, expenses[0].id, expenses[3].id, expenses[1].id]
    assert pending_ids == [i for i in all_ids if i != expenses[1].id]
    assert [e.id for e in store.list_expenses_by_employee(sarah.id)] == [expenses[2].id, expenses[0].id]


def test_empty_tables_list_as_empty_sequences(store):
    assert store.list_expenses() == []
    assert store.list_expenses_by_status("approved") == []
    assert store.list_expenses_by_employee(1) == []
    assert store.list_users() == []
    assert store.list_settings() == []


def test_settings_upsert_by_key(store):
    assert store.get_setting("mileage_rate") is None

    store.set_setting("mileage_rate", "0.68")
    store.set_setting("mileage_rate", "0.72")

    assert store.get_setting("mileage_rate") == "0.72"
    assert [s.key for s in store.list_settings()] == ["mileage_rate"]
