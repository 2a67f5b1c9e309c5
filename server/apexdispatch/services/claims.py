"""Exactly-once claim resolution.

Every claim entry point (inline button, WhatsApp command, HTTP call) goes
through ``ClaimArbiter.claim``, which delegates the decision to the store's
single compare-and-set. Side effects run only after that transition has
committed and can never undo it.
"""
from __future__ import annotations

import logging

from apexdispatch.models import TAKEN, ClaimOutcome, WorkerRef
from apexdispatch.services import messages
from apexdispatch.services.gateway import MessagingGateway
from apexdispatch.services.ledger import LedgerSync
from apexdispatch.services.scheduler import NotificationScheduler
from apexdispatch.services.store import ClaimResult, OrderStore
from apexdispatch.services.workers import WorkerDirectory

logger = logging.getLogger(__name__)


class ClaimArbiter:
    def __init__(
        self,
        store: OrderStore,
        directory: WorkerDirectory,
        gateway: MessagingGateway,
        scheduler: NotificationScheduler,
        ledger: LedgerSync,
    ) -> None:
        self._store = store
        self._directory = directory
        self._gateway = gateway
        self._scheduler = scheduler
        self._ledger = ledger

    async def claim(self, order_id: str, worker: WorkerRef) -> ClaimResult:
        result = await self._store.attempt_claim(order_id, worker)
        if result.outcome is ClaimOutcome.CONFLICT:
            logger.info("[%s] claim by %s lost: already taken", order_id, worker.id)
        elif result.outcome is ClaimOutcome.NOT_FOUND:
            logger.info("[%s] claim by %s for unknown order", order_id, worker.id)
        else:
            await self._after_claim(result, worker)
        return result

    async def _after_claim(self, result: ClaimResult, worker: WorkerRef) -> None:
        order = result.order
        self._ledger.update(order.id, {"status": TAKEN, "workerName": worker.name, "takenAt": order.taken_at})

        if result.previous_ref is not None:
            try:
                await self._gateway.retract(result.previous_ref)
            except Exception as exc:  # noqa: BLE001
                logger.error("[%s] could not retract offer: %s", order.id, exc)

        address = self._directory.address_for(worker.id)
        if address:
            try:
                await self._gateway.notify(address, messages.format_full_info(order))
                result.notified = True
            except Exception as exc:  # noqa: BLE001
                logger.error("[%s] could not send order brief to %s: %s", order.id, worker.id, exc)
        else:
            logger.warning("[%s] worker %s is not registered; order brief not sent", order.id, worker.id)

        try:
            await self._scheduler.arm(order)
        except Exception as exc:  # noqa: BLE001
            logger.error("[%s] could not arm reminders: %s", order.id, exc)
