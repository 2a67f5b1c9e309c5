from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from apexdispatch.config import Settings
from apexdispatch.exceptions import LedgerError, TransportError
from apexdispatch.models import MessageRef
from apexdispatch.services.coordinator import OrderCoordinator
from apexdispatch.utils import channel_link

START = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, when: datetime) -> None:
        self.current = when


class FakeGateway:
    """Records every call; methods named in ``failing`` raise TransportError."""

    def __init__(self) -> None:
        self.broadcasts: List[Dict[str, Any]] = []
        self.retracted: List[MessageRef] = []
        self.notified: List[tuple] = []
        self.acks: List[tuple] = []
        self.failing: set = set()
        self._message_id = 100

    def _check(self, method: str) -> None:
        if method in self.failing:
            raise TransportError(f"{method} unavailable")

    async def broadcast(self, channel: str, text: str, actions: Sequence[Any]) -> MessageRef:
        self._check("broadcast")
        self._message_id += 1
        self.broadcasts.append({"channel": channel, "text": text, "actions": list(actions)})
        return MessageRef(chat_id=channel, message_id=self._message_id, link=channel_link(channel, self._message_id))

    async def retract(self, ref: MessageRef) -> None:
        self._check("retract")
        self.retracted.append(ref)

    async def notify(self, address: str, text: str) -> None:
        self._check("notify")
        self.notified.append((address, text))

    async def ack_action(self, token: str, text: str) -> None:
        self._check("ack_action")
        self.acks.append((token, text))

    async def file_url(self, file_id: str) -> str:
        self._check("file_url")
        return f"https://files.example/{file_id}.jpg"

    def sent_to(self, address: str) -> List[str]:
        return [text for to, text in self.notified if to == address]


class FakeLedger:
    """In-memory TabularLedger; ``fail`` makes every call raise LedgerError."""

    def __init__(self) -> None:
        self.rows: List[List[Any]] = []
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise LedgerError("sheet offline")

    def append_row(self, values: Sequence[Any]) -> None:
        self._check()
        self.rows.append(list(values))

    def find_row_by_key(self, key: str) -> Optional[int]:
        self._check()
        for i, row in enumerate(self.rows):
            if row[1] == key:
                return i
        return None

    def update_row(self, row_index: int, fields: Mapping[int, Any]) -> None:
        self._check()
        for col, value in fields.items():
            self.rows[row_index][col] = value

    def scan_column(self, col: int) -> List[Any]:
        self._check()
        return [row[col] for row in self.rows]

    def row_for(self, order_id: str) -> Optional[List[Any]]:
        index = self.find_row_by_key(order_id)
        return None if index is None else self.rows[index]


def job_request(**overrides) -> Dict[str, Any]:
    request = {
        "manager": "Ольга",
        "customerName": "Иван Петров",
        "customerPhone": "+79001234567",
        "customerAddress": "Москва, ул. Ленина 5",
        "customerFlat": "кв. 12",
        "area": 54,
        "cleaningType": "Генеральная",
        "difficulty": 3,
        "pets": "кот",
        "equipment": "пылесос",
        "chemistry": "своя",
        "worksDescription": "Окна, кухня, санузел",
        "orderTotal": 7500,
        "masterPay": 4500,
        "orderDate": "2025-06-03",
        "orderTime": "14:00",
    }
    request.update(overrides)
    return request


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def settings(monkeypatch, tmp_path) -> Settings:
    monkeypatch.setenv("REGION_CHANNELS", "Москва=@apexclean_moscow;Санкт-Петербург=@apexclean_spb;Казань=@apexclean_kazan")
    monkeypatch.setenv("DEFAULT_REGION", "Москва")
    monkeypatch.setenv("MANAGER_CHANNEL", "@apexclean_managers")
    monkeypatch.setenv("ORDER_TIMEZONE", "Europe/Moscow")
    monkeypatch.setenv("REMINDERS_CANCEL_ON_COMPLETE", "false")
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "")
    monkeypatch.setenv("GOOGLE_SHEET_ID", "")
    monkeypatch.setenv("LEDGER_XLSX_PATH", str(tmp_path / "ledger.xlsx"))
    monkeypatch.setenv("REMINDER_POLL_SECONDS", "3600")
    return Settings()


@pytest.fixture
async def coordinator(anyio_backend, settings, gateway, ledger, clock):
    coord = OrderCoordinator(settings, gateway, ledger, clock)
    yield coord
    await coord.aclose()
