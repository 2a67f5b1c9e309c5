"""Proof-of-work photo intake: stage classification, order resolution, completion."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from apexdispatch.exceptions import InvalidStateError, NotFoundError, TransportError
from apexdispatch.models import COMPLETED, Order
from apexdispatch.utils import find_order_id
from apexdispatch.services import messages
from apexdispatch.services.classify import classify_stage
from apexdispatch.services.gateway import MessagingGateway
from apexdispatch.services.ledger import LedgerSync
from apexdispatch.services.scheduler import NotificationScheduler
from apexdispatch.services.store import OrderStore

logger = logging.getLogger(__name__)

RECORDED = "recorded"
COMPLETED_OUTCOME = "completed"
IGNORED = "ignored"
NO_ORDER = "no_order"


@dataclass
class PhotoReceipt:
    outcome: str
    stage: Optional[str] = None
    order: Optional[Order] = None


class PhotoWorkflow:
    def __init__(
        self,
        store: OrderStore,
        ledger: LedgerSync,
        gateway: MessagingGateway,
        scheduler: NotificationScheduler,
        *,
        manager_channel: str = "",
        cancel_reminders: bool = False,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._gateway = gateway
        self._scheduler = scheduler
        self._manager_channel = manager_channel
        self._cancel_reminders = cancel_reminders

    async def record(self, order_id: str, stage: str, ref: str, worker_id: Optional[str] = None) -> Order:
        """Record one staged photo against a taken order (HTTP path)."""
        if worker_id is not None:
            current = await self._store.get(order_id)
            if current is None:
                raise NotFoundError(f"Order {order_id} not found")
            if current.assigned_worker and current.assigned_worker.id != worker_id:
                raise InvalidStateError(f"Order {order_id} is assigned to another worker")
        order = await self._store.record_photo(order_id, stage, ref)
        logger.info("[%s] photo %s recorded", order_id, stage)
        if order.status == COMPLETED:
            await self._on_completed(order)
        return order

    async def submit(
        self,
        worker_id: str,
        caption: Optional[str],
        resolve_ref: Callable[[], Awaitable[str]],
    ) -> PhotoReceipt:
        """Chat path: classify by caption, then attach to the sender's taken order.

        Unclassifiable captions are dropped silently. ``resolve_ref`` is only
        called once the photo is known to be wanted; its ``TransportError``
        propagates so the caller can tell the worker to resend.
        """
        stage = classify_stage(caption)
        if stage is None:
            return PhotoReceipt(IGNORED)
        orders = await self._store.taken_by(worker_id)
        if not orders:
            return PhotoReceipt(NO_ORDER, stage)
        mentioned = find_order_id(caption)
        target = next((o for o in orders if o.id == mentioned), orders[0])
        ref = await resolve_ref()
        try:
            order = await self.record(target.id, stage, ref)
        except InvalidStateError:
            # completed by a concurrent submission between lookup and record
            return PhotoReceipt(NO_ORDER, stage)
        return PhotoReceipt(COMPLETED_OUTCOME if order.status == COMPLETED else RECORDED, stage, order)

    async def _on_completed(self, order: Order) -> None:
        self._ledger.update(order.id, {"status": COMPLETED, "completedAt": order.completed_at})
        if self._cancel_reminders:
            self._scheduler.cancel(order.id)
        if self._manager_channel:
            try:
                await self._gateway.notify(self._manager_channel, messages.format_completion_notice(order))
            except TransportError as exc:
                logger.error("[%s] could not notify managers: %s", order.id, exc)
