"""Best-effort mirroring of orders into the external tabular ledger.

The ledger is addressed by column position only, so ``LEDGER_COLUMNS`` is a
wire format: reordering it breaks every existing sheet.

``LedgerSync`` never blocks or fails an order transition. Each call runs as a
background task; calls for the same order are chained so an update cannot
overtake the append that creates its row, while different orders proceed
independently.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Set

from apexdispatch.models import ORDER_STATUSES, Order

logger = logging.getLogger(__name__)

LEDGER_COLUMNS = (
    "timestamp",
    "orderId",
    "creator",
    "customerName",
    "phone",
    "address",
    "unit",
    "area",
    "cleaningType",
    "difficulty",
    "status",
    "date",
    "time",
    "total",
    "pay",
    "pets",
    "equipment",
    "chemistry",
    "description",
    "workerName",
    "takenAt",
    "completedAt",
)
COLUMN_INDEX = {name: i for i, name in enumerate(LEDGER_COLUMNS)}
KEY_COLUMN = COLUMN_INDEX["orderId"]
STATUS_COLUMN = COLUMN_INDEX["status"]


class TabularLedger(Protocol):
    """Synchronous row store. Row indexes are opaque values returned by ``find_row_by_key``."""

    def append_row(self, values: Sequence[Any]) -> None: ...

    def find_row_by_key(self, key: str) -> Optional[int]: ...

    def update_row(self, row_index: int, fields: Mapping[int, Any]) -> None: ...

    def scan_column(self, col: int) -> List[Any]: ...


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def ledger_row(order: Order) -> List[Any]:
    c, j, s = order.customer, order.job, order.schedule
    values = {
        "timestamp": order.created_at,
        "orderId": order.id,
        "creator": order.creator,
        "customerName": c.name,
        "phone": c.phone,
        "address": c.address,
        "unit": c.unit,
        "area": j.area,
        "cleaningType": j.cleaning_type,
        "difficulty": j.difficulty,
        "status": order.status,
        "date": s.date,
        "time": s.time,
        "total": j.total,
        "pay": j.pay,
        "pets": j.pets,
        "equipment": j.equipment,
        "chemistry": j.chemistry,
        "description": j.description,
        "workerName": order.assigned_worker.name if order.assigned_worker else None,
        "takenAt": order.taken_at,
        "completedAt": order.completed_at,
    }
    return [_cell(values[name]) for name in LEDGER_COLUMNS]


class LedgerSync:
    def __init__(self, ledger: TabularLedger) -> None:
        self._ledger = ledger
        self._tails: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()

    # --- Fire path ---
    def append(self, order: Order) -> asyncio.Task:
        row = ledger_row(order)
        return self._submit(order.id, "append", self._ledger.append_row, row)

    def update(self, order_id: str, fields: Mapping[str, Any]) -> asyncio.Task:
        cells = {COLUMN_INDEX[k]: _cell(v) for k, v in fields.items() if k in COLUMN_INDEX}
        return self._submit(order_id, "update", self._update_row, order_id, cells)

    def _update_row(self, order_id: str, cells: Mapping[int, Any]) -> None:
        if not cells:
            return
        row = self._ledger.find_row_by_key(order_id)
        if row is None:
            logger.warning("[%s] ledger row not found; update skipped", order_id)
            return
        self._ledger.update_row(row, cells)

    def _submit(self, order_id: str, label: str, fn: Callable[..., None], *args: Any) -> asyncio.Task:
        previous = self._tails.get(order_id)
        task = asyncio.create_task(self._run(order_id, label, previous, fn, *args))
        self._tails[order_id] = task
        self._inflight.add(task)
        task.add_done_callback(lambda t: self._forget(order_id, t))
        return task

    def _forget(self, order_id: str, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if self._tails.get(order_id) is task:
            del self._tails[order_id]

    async def _run(
        self,
        order_id: str,
        label: str,
        previous: Optional[asyncio.Task],
        fn: Callable[..., None],
        *args: Any,
    ) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await asyncio.to_thread(fn, *args)
        except Exception as exc:  # noqa: BLE001
            logger.error("[%s] ledger %s failed: %s", order_id, label, exc)

    async def drain(self) -> None:
        """Wait for every in-flight ledger call to finish."""
        while self._inflight:
            await asyncio.wait(list(self._inflight))

    # --- Reads ---
    async def status_counts(self) -> Dict[str, int]:
        """Counts by status as the ledger sees them (may lag the store)."""
        values = await asyncio.to_thread(self._ledger.scan_column, STATUS_COLUMN)
        counts = {status: 0 for status in ORDER_STATUSES}
        for v in values:
            if v in counts:
                counts[v] += 1
        counts["total"] = len(values)
        return counts
