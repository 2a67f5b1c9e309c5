"""Time-relative reminders for taken orders.

Fire times are fixed at claim time from the order's schedule; message content
is read from the store when a reminder fires, so corrected contact details
are what the worker sees. Entries live in a heap keyed by fire time and are
driven by ``run_pending`` against an injectable clock.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from apexdispatch.models import Order
from apexdispatch.services import messages
from apexdispatch.services.clock import Clock, SystemClock
from apexdispatch.services.gateway import MessagingGateway
from apexdispatch.services.store import OrderStore
from apexdispatch.services.workers import WorkerDirectory

logger = logging.getLogger(__name__)

REMINDER_24H = "24h"
REMINDER_2H = "2h"

REMINDERS: Dict[str, Tuple[timedelta, Callable[[Order], str]]] = {
    REMINDER_24H: (timedelta(hours=24), messages.format_reminder_24h),
    REMINDER_2H: (timedelta(hours=2), messages.format_reminder_2h),
}


@dataclass(frozen=True)
class Reminder:
    fire_at: datetime
    order_id: str
    kind: str


class NotificationScheduler:
    def __init__(
        self,
        store: OrderStore,
        directory: WorkerDirectory,
        gateway: MessagingGateway,
        clock: Optional[Clock] = None,
        tz: str = "Europe/Moscow",
    ) -> None:
        self._store = store
        self._directory = directory
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._tz = ZoneInfo(tz)
        self._heap: List[Tuple[datetime, int, Reminder]] = []
        self._seq = itertools.count()

    def fire_times(self, order: Order) -> List[Reminder]:
        start = order.schedule.at(self._tz)
        return [Reminder(start - offset, order.id, kind) for kind, (offset, _) in REMINDERS.items()]

    async def arm(self, order: Order) -> List[Reminder]:
        """Arm both reminders; ones whose time has already passed fire right away."""
        now = self._clock.now()
        due: List[Reminder] = []
        for reminder in self.fire_times(order):
            if reminder.fire_at <= now:
                due.append(reminder)
            else:
                heapq.heappush(self._heap, (reminder.fire_at, next(self._seq), reminder))
                logger.info("[%s] %s reminder armed for %s", order.id, reminder.kind, reminder.fire_at.isoformat())
        for reminder in due:
            logger.info("[%s] %s reminder window already passed; firing now", order.id, reminder.kind)
            await self._fire(reminder)
        return self.pending(order.id)

    def pending(self, order_id: Optional[str] = None) -> List[Reminder]:
        entries = sorted(self._heap)
        return [r for _, _, r in entries if order_id is None or r.order_id == order_id]

    def cancel(self, order_id: str) -> int:
        kept = [entry for entry in self._heap if entry[2].order_id != order_id]
        removed = len(self._heap) - len(kept)
        if removed:
            heapq.heapify(kept)
            self._heap = kept
            logger.info("[%s] cancelled %d reminder(s)", order_id, removed)
        return removed

    async def run_pending(self) -> int:
        """Fire every reminder due at the current clock time. Returns how many fired."""
        now = self._clock.now()
        due: List[Reminder] = []
        while self._heap and self._heap[0][0] <= now:
            due.append(heapq.heappop(self._heap)[2])
        for reminder in due:
            await self._fire(reminder)
        return len(due)

    async def run_forever(self, interval: float = 30.0) -> None:
        while True:
            try:
                await self.run_pending()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Reminder loop error: %s", exc)
            await asyncio.sleep(interval)

    async def _fire(self, reminder: Reminder) -> None:
        try:
            order = await self._store.get(reminder.order_id)
            if order is None or order.assigned_worker is None:
                logger.warning("[%s] %s reminder has no assigned worker; skipped", reminder.order_id, reminder.kind)
                return
            address = self._directory.address_for(order.assigned_worker.id)
            if not address:
                logger.warning(
                    "[%s] worker %s not registered; %s reminder skipped",
                    order.id,
                    order.assigned_worker.id,
                    reminder.kind,
                )
                return
            _, render = REMINDERS[reminder.kind]
            await self._gateway.notify(address, render(order))
            logger.info("[%s] %s reminder delivered", order.id, reminder.kind)
        except Exception as exc:  # noqa: BLE001
            logger.error("[%s] %s reminder delivery failed: %s", reminder.order_id, reminder.kind, exc)
