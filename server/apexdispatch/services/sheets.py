"""Google Sheets ledger via the Sheets v4 API (service-account credentials)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from openpyxl.utils import get_column_letter

from apexdispatch.exceptions import LedgerError
from apexdispatch.services.ledger import KEY_COLUMN, LEDGER_COLUMNS

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def _col(index: int) -> str:
    return get_column_letter(index + 1)


class GoogleSheetsLedger:
    """Row 1 of the sheet is a header; data starts at row 2."""

    def __init__(
        self,
        spreadsheet_id: str,
        credentials_info: Optional[Dict[str, Any]] = None,
        sheet_name: str = "Заявки",
        service: Any = None,
    ) -> None:
        if service is None:
            if not credentials_info:
                raise LedgerError("Google Sheets credentials not configured.")
            creds = service_account.Credentials.from_service_account_info(credentials_info, scopes=SCOPES)
            service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        self._values = service.spreadsheets().values()
        self._spreadsheet_id = spreadsheet_id
        self._sheet = sheet_name.replace("'", "''")

    def _range(self, a1: str) -> str:
        return f"'{self._sheet}'!{a1}"

    @staticmethod
    def _execute(request: Any) -> Dict[str, Any]:
        try:
            return request.execute() or {}
        except (HttpError, OSError) as exc:
            raise LedgerError(f"Google Sheets call failed: {exc}") from exc

    def append_row(self, values: Sequence[Any]) -> None:
        last = _col(len(LEDGER_COLUMNS) - 1)
        self._execute(
            self._values.append(
                spreadsheetId=self._spreadsheet_id,
                range=self._range(f"A:{last}"),
                valueInputOption="USER_ENTERED",
                body={"values": [list(values)]},
            )
        )

    def find_row_by_key(self, key: str) -> Optional[int]:
        col = _col(KEY_COLUMN)
        res = self._execute(
            self._values.get(spreadsheetId=self._spreadsheet_id, range=self._range(f"{col}:{col}"))
        )
        for row_index, row in enumerate(res.get("values", []), start=1):
            if row and row[0] == key:
                return row_index
        return None

    def update_row(self, row_index: int, fields: Mapping[int, Any]) -> None:
        data = [
            {"range": self._range(f"{_col(col)}{row_index}"), "values": [[value]]}
            for col, value in sorted(fields.items())
        ]
        self._execute(
            self._values.batchUpdate(
                spreadsheetId=self._spreadsheet_id,
                body={"valueInputOption": "USER_ENTERED", "data": data},
            )
        )

    def scan_column(self, col: int) -> List[Any]:
        letter = _col(col)
        res = self._execute(
            self._values.get(spreadsheetId=self._spreadsheet_id, range=self._range(f"{letter}2:{letter}"))
        )
        return [row[0] if row else "" for row in res.get("values", [])]
