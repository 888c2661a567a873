import asyncio
from pathlib import Path
import tempfile
import unittest

from openpyxl import load_workbook

from backend.services.sheets_ledger import WorkbookLedger, read_ledger_rows
from expense_flow.errors import ExternalSinkError


def _row(expense_id: int, status: str = "pending") -> dict:
    return {
        "id": expense_id,
        "employeeName": "Sarah Miller",
        "employeeEmail": "sarah@agency.com",
        "department": "Marketing",
        "amount": "156.50",
        "description": "Team lunch",
        "category": "Meals & Entertainment",
        "expenseDate": "2025-06-20",
        "submissionDate": "2025-06-23",
        "status": status,
    }


class WorkbookLedgerTestCase(unittest.TestCase):
    def test_append_writes_headers_once_and_returns_row_numbers(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "ledger" / "expenses.xlsx"
            ledger = WorkbookLedger(path)

            first = asyncio.run(ledger.append(_row(1)))
            second = asyncio.run(ledger.append(_row(2)))

            self.assertEqual((first, second), (2, 3))
            sheet = load_workbook(path)["Expenses"]
            self.assertEqual(sheet["A1"].value, "ID")
            self.assertEqual(sheet["J1"].value, "Status")
            self.assertEqual(sheet.max_row, 3)
            rows = read_ledger_rows(path)
            self.assertEqual([r["id"] for r in rows], [1, 2])
            self.assertEqual(rows[0]["amount"], "156.50")

    def test_update_touches_only_given_columns(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "expenses.xlsx"
            ledger = WorkbookLedger(path)
            row_number = asyncio.run(ledger.append(_row(7)))

            asyncio.run(
                ledger.update(
                    row_number,
                    {"status": "approved", "approvedByName": "Finance Manager", "approvalNote": "Within policy"},
                )
            )

            row = read_ledger_rows(path)[0]
            self.assertEqual(row["status"], "approved")
            self.assertEqual(row["approvedByName"], "Finance Manager")
            self.assertEqual(row["approvalNote"], "Within policy")
            self.assertEqual(row["description"], "Team lunch")

    def test_bad_rows_raise_sink_errors(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ledger = WorkbookLedger(Path(tmpdir) / "expenses.xlsx")
            asyncio.run(ledger.append(_row(1)))

            with self.assertRaises(ExternalSinkError):
                asyncio.run(ledger.append({"id": 2, "mood": "happy"}))
            with self.assertRaises(ExternalSinkError):
                asyncio.run(ledger.update(1, {"status": "approved"}))
            with self.assertRaises(ExternalSinkError):
                asyncio.run(ledger.update(99, {"status": "approved"}))
