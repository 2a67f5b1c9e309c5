"""Order lifecycle coordinator: wires the store, arbiter, photo intake, reminders and ledger.

Routers stay thin and call into this service; it raises domain exceptions
(``ValidationError``, ``NotFoundError``, ``InvalidStateError``) and swallows
transport and ledger failures after logging them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Set

from apexdispatch.config import Settings
from apexdispatch.exceptions import InvalidStateError, NotFoundError, TransportError
from apexdispatch.models import PENDING, MessageRef, Order, Worker, WorkerRef
from apexdispatch.services import messages
from apexdispatch.services.claims import ClaimArbiter
from apexdispatch.services.clock import Clock, SystemClock
from apexdispatch.services.dispatch import DispatchRouter
from apexdispatch.services.gateway import MessagingGateway
from apexdispatch.services.ledger import LedgerSync, TabularLedger
from apexdispatch.services.photos import PhotoWorkflow
from apexdispatch.services.scheduler import NotificationScheduler
from apexdispatch.services.store import ClaimResult, OrderStore
from apexdispatch.services.workers import WorkerDirectory

logger = logging.getLogger(__name__)


@dataclass
class CreatedOrder:
    order: Order
    broadcast: Optional[MessageRef] = None

    @property
    def broadcast_link(self) -> Optional[str]:
        return self.broadcast.link if self.broadcast else None


class OrderCoordinator:
    def __init__(
        self,
        settings: Settings,
        gateway: MessagingGateway,
        ledger: TabularLedger,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.router = DispatchRouter(settings.REGION_CHANNELS, settings.DEFAULT_REGION)
        self.store = OrderStore(self.router, self.clock)
        self.workers = WorkerDirectory(self.clock)
        self.ledger = LedgerSync(ledger)
        self.scheduler = NotificationScheduler(
            self.store, self.workers, gateway, self.clock, tz=settings.ORDER_TIMEZONE
        )
        self._offering: Set[str] = set()
        self.claims = ClaimArbiter(self.store, self.workers, gateway, self.scheduler, self.ledger)
        self.photos = PhotoWorkflow(
            self.store,
            self.ledger,
            gateway,
            self.scheduler,
            manager_channel=settings.MANAGER_CHANNEL,
            cancel_reminders=settings.REMINDERS_CANCEL_ON_COMPLETE,
        )

    # --- Orders ---
    async def create_order(self, request: Mapping[str, Any]) -> CreatedOrder:
        order = await self.store.create(request)
        self.ledger.append(order)
        self._offering.add(order.id)
        return await self._offer(order)

    async def rebroadcast(self, order_id: str) -> CreatedOrder:
        order = await self.get_order(order_id)
        if order.status != PENDING:
            raise InvalidStateError(f"Order {order_id} is {order.status}; only pending orders are offered")
        # no await between the check and the add
        if order.broadcast_ref is not None or order_id in self._offering:
            raise InvalidStateError(f"Order {order_id} already has an outstanding offer")
        self._offering.add(order_id)
        return await self._offer(order)

    async def _offer(self, order: Order) -> CreatedOrder:
        try:
            ref = await self._broadcast(order)
            if ref is None:
                return CreatedOrder(order=order)
            return await self._attach_offer(order, ref)
        finally:
            self._offering.discard(order.id)

    async def _broadcast(self, order: Order) -> Optional[MessageRef]:
        channel = self.router.channel_for(order.region)
        try:
            return await self.gateway.broadcast(
                channel, messages.format_offer(order), messages.offer_actions(order.id)
            )
        except TransportError as exc:
            logger.error("[%s] broadcast to %s failed: %s", order.id, channel, exc)
            return None

    async def _attach_offer(self, order: Order, ref: MessageRef) -> CreatedOrder:
        try:
            order = await self.store.record_broadcast(order.id, ref)
        except InvalidStateError:
            # claimed while the offer was in flight; nothing will retract it otherwise
            logger.info("[%s] taken before its offer was recorded; retracting", order.id)
            try:
                await self.gateway.retract(ref)
            except TransportError as exc:
                logger.error("[%s] could not retract offer: %s", order.id, exc)
            return CreatedOrder(order=await self.get_order(order.id), broadcast=ref)
        return CreatedOrder(order=order, broadcast=ref)

    async def claim_order(self, order_id: str, worker: WorkerRef) -> ClaimResult:
        return await self.claims.claim(order_id, worker)

    async def reject_order(self, order_id: str, worker: WorkerRef) -> Optional[Order]:
        """Acknowledged only: the order stays pending and claimable."""
        order = await self.store.get(order_id)
        logger.info("[%s] rejected by %s (no state change)", order_id, worker.id)
        return order

    async def submit_photo(self, order_id: str, stage: str, ref: str, worker_id: Optional[str] = None) -> Order:
        return await self.photos.record(order_id, stage, ref, worker_id=worker_id)

    async def amend_contact(self, order_id: str, fields: Mapping[str, Any]) -> Order:
        order = await self.store.amend_contact(order_id, fields)
        c = order.customer
        self.ledger.update(order_id, {"phone": c.phone, "address": c.address, "unit": c.unit})
        return order

    async def get_order(self, order_id: str) -> Order:
        order = await self.store.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def list_orders(self) -> List[Order]:
        """Newest first; ties fall back to reverse creation order."""
        orders = sorted(await self.store.all(), key=lambda o: o.created_at)
        return orders[::-1]

    async def stats(self, source: str = "store") -> Dict[str, int]:
        if source == "ledger":
            return await self.ledger.status_counts()
        return await self.store.counts()

    # --- Workers ---
    def register_worker(self, worker_id: str, address: str, name: str = "") -> Worker:
        worker = self.workers.register(worker_id, address, name)
        logger.info("Registered worker %s", worker_id)
        return worker

    async def aclose(self) -> None:
        await self.ledger.drain()

