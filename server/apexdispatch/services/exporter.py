import csv
import io
import os
import threading
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from apexdispatch.exceptions import LedgerError
from apexdispatch.models import Order
from apexdispatch.services.ledger import KEY_COLUMN, LEDGER_COLUMNS, ledger_row


def orders_csv(orders: Iterable[Order]) -> bytes:
    """All orders as CSV, one row per order in ledger column order."""
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(LEDGER_COLUMNS)
    for order in orders:
        writer.writerow(ledger_row(order))
    return out.getvalue().encode("utf-8")


class WorkbookLedger:
    """
    Local .xlsx ledger with the same row layout as the Google sheet.
    Used when no spreadsheet id is configured. Row 1 is the header.
    """

    def __init__(self, path: str, sheet_name: str = "Заявки"):
        self._path = path
        self._sheet = sheet_name
        self._lock = threading.Lock()
        if not os.path.exists(path):
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
            wb = Workbook()
            ws = wb.active
            ws.title = sheet_name
            ws.append(list(LEDGER_COLUMNS))
            self._save(wb)

    def _open(self):
        try:
            wb = load_workbook(self._path)
            return wb, wb[self._sheet]
        except (OSError, KeyError, InvalidFileException) as e:
            raise LedgerError(f"Cannot open ledger workbook {self._path}: {e}") from e

    def _save(self, wb) -> None:
        try:
            wb.save(self._path)
        except OSError as e:
            raise LedgerError(f"Cannot save ledger workbook {self._path}: {e}") from e

    def append_row(self, values: Sequence[Any]) -> None:
        with self._lock:
            wb, ws = self._open()
            ws.append(list(values))
            self._save(wb)

    def find_row_by_key(self, key: str) -> Optional[int]:
        with self._lock:
            _, ws = self._open()
            col = KEY_COLUMN + 1
            for row_index, (value,) in enumerate(
                ws.iter_rows(min_row=2, min_col=col, max_col=col, values_only=True), start=2
            ):
                if value == key:
                    return row_index
        return None

    def update_row(self, row_index: int, fields: Mapping[int, Any]) -> None:
        with self._lock:
            wb, ws = self._open()
            for col, value in fields.items():
                ws.cell(row=row_index, column=col + 1, value=value)
            self._save(wb)

    def scan_column(self, col: int) -> List[Any]:
        with self._lock:
            _, ws = self._open()
            return [
                value
                for (value,) in ws.iter_rows(min_row=2, min_col=col + 1, max_col=col + 1, values_only=True)
            ]
