from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from expense_flow.dispatch import LEDGER_COLUMNS
from expense_flow.errors import ExternalSinkError

HEADER_LABELS: dict[str, str] = {
    "id": "ID",
    "employeeName": "Employee Name",
    "employeeEmail": "Employee Email",
    "department": "Department",
    "amount": "Amount",
    "description": "Description",
    "category": "Category",
    "expenseDate": "Expense Date",
    "submissionDate": "Submission Date",
    "status": "Status",
    "approvedByName": "Approved By",
    "approvalDate": "Approval Date",
    "approvalNote": "Approval Note",
    "receiptUrl": "Receipt URL",
    "sourceId": "Email ID",
}

COLUMN_LETTERS: dict[str, str] = {
    column: get_column_letter(index) for index, column in enumerate(LEDGER_COLUMNS, start=1)
}


@dataclass
class WorkbookLedger:
    """Expense ledger kept in an .xlsx workbook, one row per expense, headers on row 1."""

    workbook_path: Path
    sheet_name: str = "Expenses"

    def __post_init__(self) -> None:
        self.workbook_path = Path(self.workbook_path)
        self._lock = asyncio.Lock()

    async def append(self, row: dict[str, Any]) -> int:
        async with self._lock:
            return await asyncio.to_thread(self._append, row)

    async def update(self, row_reference: int, partial_row: dict[str, Any]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._update, row_reference, partial_row)

    def _open(self) -> tuple[Workbook, Worksheet]:
        if self.workbook_path.exists():
            workbook = load_workbook(self.workbook_path)
        else:
            workbook = Workbook()
            workbook.active.title = self.sheet_name
        if self.sheet_name in workbook.sheetnames:
            sheet = workbook[self.sheet_name]
        else:
            sheet = workbook.create_sheet(self.sheet_name)
        self._ensure_headers(sheet)
        return workbook, sheet

    @staticmethod
    def _ensure_headers(sheet: Worksheet) -> None:
        if sheet["A1"].value is not None:
            return
        for column, letter in COLUMN_LETTERS.items():
            sheet[f"{letter}1"] = HEADER_LABELS[column]

    def _save(self, workbook: Workbook) -> None:
        self.workbook_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(self.workbook_path)

    def _append(self, row: dict[str, Any]) -> int:
        unknown = set(row) - set(LEDGER_COLUMNS)
        if unknown:
            raise ExternalSinkError("ledger", f"Unknown ledger columns: {sorted(unknown)}")
        workbook, sheet = self._open()
        sheet.append([row.get(column, "") for column in LEDGER_COLUMNS])
        row_number = sheet.max_row
        self._save(workbook)
        return row_number

    def _update(self, row_reference: int, partial_row: dict[str, Any]) -> None:
        unknown = set(partial_row) - set(LEDGER_COLUMNS)
        if unknown:
            raise ExternalSinkError("ledger", f"Unknown ledger columns: {sorted(unknown)}")
        workbook, sheet = self._open()
        if row_reference < 2 or row_reference > sheet.max_row:
            raise ExternalSinkError("ledger", f"Row {row_reference} is not a ledger row")
        for column, value in partial_row.items():
            sheet[f"{COLUMN_LETTERS[column]}{row_reference}"] = value
        self._save(workbook)


def read_ledger_rows(path: Path | str, sheet_name: str = "Expenses") -> list[dict[str, Any]]:
    """Utility for validation/testing: ledger rows below the header, keyed by column."""
    workbook = load_workbook(path)
    sheet = workbook[sheet_name]
    rows = []
    for values in sheet.iter_rows(min_row=2, max_col=len(LEDGER_COLUMNS), values_only=True):
        rows.append(dict(zip(LEDGER_COLUMNS, values)))
    return rows
