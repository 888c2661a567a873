from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from expense_flow.db import apply_sqlite_migration, connect_sqlite
from expense_flow.errors import ExternalSinkError
from expense_flow.ingestion import InboxMessage
from expense_flow.repositories import SqliteRecordStore

MIGRATION = Path(__file__).resolve().parents[1] / "migrations" / "sqlite" / "001_initial_schema.sql"


def make_sqlite_store() -> SqliteRecordStore:
    conn = connect_sqlite()
    apply_sqlite_migration(conn, MIGRATION)
    return SqliteRecordStore(conn)


class FakeLedger:
    def __init__(self, fail_append: bool = False, fail_update: bool = False):
        self.rows: dict[int, dict[str, Any]] = {}
        self.append_calls = 0
        self.update_calls: list[tuple[int, dict[str, Any]]] = []
        self.fail_append = fail_append
        self.fail_update = fail_update

    async def append(self, row: dict[str, Any]) -> int:
        self.append_calls += 1
        if self.fail_append:
            raise ExternalSinkError("ledger", "spreadsheet unavailable")
        row_number = len(self.rows) + 2
        self.rows[row_number] = dict(row)
        return row_number

    async def update(self, row_reference: int, partial_row: dict[str, Any]) -> None:
        self.update_calls.append((row_reference, dict(partial_row)))
        if self.fail_update:
            raise ExternalSinkError("ledger", "spreadsheet unavailable")
        self.rows[row_reference].update(partial_row)


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    async def send(self, to_address: str, subject: str, body: str) -> None:
        if self.fail:
            raise ExternalSinkError("notifier", "mail relay down")
        self.sent.append((to_address, subject, body))


class FakeInbox:
    def __init__(self, messages: list[InboxMessage], fail_mark_read: bool = False):
        self.messages = {m.message_id: m for m in messages}
        self.read: set[str] = set()
        self.fail_mark_read = fail_mark_read

    async def list_unread_matching(self, address_pattern: str) -> list[str]:
        return [mid for mid in self.messages if mid not in self.read]

    async def fetch(self, message_id: str) -> InboxMessage:
        return self.messages[message_id]

    async def mark_read(self, message_id: str) -> None:
        if self.fail_mark_read:
            raise ExternalSinkError("inbox", "modify failed")
        self.read.add(message_id)


class FakeFileHost:
    def __init__(self, fail: bool = False):
        self.uploads: list[tuple[str, str, bytes]] = []
        self.fail = fail

    async def upload(self, filename: str, mime_type: str, content: bytes) -> str:
        if self.fail:
            raise ExternalSinkError("file_host", "upload failed")
        self.uploads.append((filename, mime_type, content))
        return f"https://files.example.com/{filename}"


class TickingClock:
    """Returns strictly increasing timestamps so submission order is unambiguous."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2025, 6, 23, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value
