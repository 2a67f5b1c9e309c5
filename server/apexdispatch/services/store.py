"""In-memory order authority and its lifecycle state machine.

Every mutation runs under a single ``asyncio.Lock`` and contains no await
points once the lock is held, so each call is one indivisible transition.
Callers only ever see deep copies; nothing outside this module mutates an
``Order``.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from apexdispatch.exceptions import InvalidStateError, NotFoundError, ValidationError
from apexdispatch.models import (
    COMPLETED,
    COMPLETION_STAGE,
    CONTACT_FIELDS,
    ORDER_STATUSES,
    PENDING,
    PHOTO_STAGES,
    REQUIRED_FIELDS,
    TAKEN,
    ClaimOutcome,
    MessageRef,
    Order,
    Schedule,
    WorkerRef,
    new_order,
)
from apexdispatch.services.clock import Clock, SystemClock
from apexdispatch.services.dispatch import DispatchRouter

logger = logging.getLogger(__name__)

ORDER_ID_PREFIX = "CLN-"


@dataclass
class ClaimResult:
    outcome: ClaimOutcome
    order: Optional[Order] = None
    previous_ref: Optional[MessageRef] = None
    notified: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is ClaimOutcome.SUCCESS


class OrderStore:
    def __init__(self, router: DispatchRouter, clock: Optional[Clock] = None) -> None:
        self._router = router
        self._clock = clock or SystemClock()
        self._orders: Dict[str, Order] = {}
        self._last_id_ms = 0
        self._lock = asyncio.Lock()

    # --- Helpers (call with the lock held) ---
    def _next_id(self) -> str:
        ms = int(self._clock.now().timestamp() * 1000)
        self._last_id_ms = max(ms, self._last_id_ms + 1)
        return f"{ORDER_ID_PREFIX}{self._last_id_ms}"

    def _stamp(self, floor: Optional[datetime]) -> datetime:
        now = self._clock.now()
        return max(now, floor) if floor else now

    def _require(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def _validate(request: Mapping[str, Any]) -> None:
        missing = [k for k in REQUIRED_FIELDS if not str(request.get(k) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        schedule = Schedule(date=str(request["orderDate"]).strip(), time=str(request["orderTime"]).strip())
        try:
            schedule.at()
        except ValueError as exc:
            raise ValidationError(f"Invalid order date/time: {exc}") from exc

    # --- Transitions ---
    async def create(self, request: Mapping[str, Any]) -> Order:
        self._validate(request)
        region = self._router.resolve(request.get("customerAddress"))
        async with self._lock:
            order = new_order(self._next_id(), region, request, self._clock.now())
            self._orders[order.id] = order
            logger.info("[%s] created (region=%s)", order.id, region)
            return copy.deepcopy(order)

    async def record_broadcast(self, order_id: str, ref: MessageRef) -> Order:
        async with self._lock:
            order = self._require(order_id)
            if order.status != PENDING:
                raise InvalidStateError(f"Order {order_id} is {order.status}, not pending")
            order.broadcast_ref = ref
            return copy.deepcopy(order)

    async def attempt_claim(self, order_id: str, worker: WorkerRef) -> ClaimResult:
        """Compare-and-set ``pending -> taken``.

        Losing the race is an expected outcome, reported as ``CONFLICT``
        rather than raised.
        """
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return ClaimResult(ClaimOutcome.NOT_FOUND)
            if order.status != PENDING:
                return ClaimResult(ClaimOutcome.CONFLICT, order=copy.deepcopy(order))
            previous = order.broadcast_ref
            order.status = TAKEN
            order.assigned_worker = worker
            order.taken_at = self._stamp(order.created_at)
            order.broadcast_ref = None
            logger.info("[%s] taken by %s", order_id, worker.id)
            return ClaimResult(ClaimOutcome.SUCCESS, order=copy.deepcopy(order), previous_ref=previous)

    async def record_photo(self, order_id: str, stage: str, ref: str) -> Order:
        """Upsert ``photos[stage]``; the ``after`` stage also completes the order."""
        if stage not in PHOTO_STAGES:
            raise ValidationError(f"Unknown photo stage {stage!r}")
        async with self._lock:
            order = self._require(order_id)
            if order.status != TAKEN:
                raise InvalidStateError(f"Order {order_id} is {order.status}; photos need a taken order")
            order.photos[stage] = ref
            if stage == COMPLETION_STAGE:
                order.status = COMPLETED
                order.completed_at = self._stamp(order.taken_at)
                logger.info("[%s] completed", order_id)
            return copy.deepcopy(order)

    async def amend_contact(self, order_id: str, fields: Mapping[str, Any]) -> Order:
        """Correct customer phone/address/unit. Region stays as first resolved."""
        unknown = set(fields) - set(CONTACT_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be amended: {', '.join(sorted(unknown))}")
        changes = {
            attr: str(fields[key]).strip()
            for key, attr in (("customerPhone", "phone"), ("customerAddress", "address"), ("customerFlat", "unit"))
            if fields.get(key) is not None
        }
        if any(not changes[attr] for attr in ("phone", "address") if attr in changes):
            raise ValidationError("Customer phone and address cannot be blank")
        async with self._lock:
            order = self._require(order_id)
            order.customer = replace(order.customer, **changes)
            return copy.deepcopy(order)

    # --- Reads ---
    async def get(self, order_id: str) -> Optional[Order]:
        async with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    async def all(self) -> List[Order]:
        async with self._lock:
            return [copy.deepcopy(o) for o in self._orders.values()]

    async def taken_by(self, worker_id: str) -> List[Order]:
        """Orders currently taken by ``worker_id``, earliest claim first."""
        async with self._lock:
            found = [
                o for o in self._orders.values()
                if o.status == TAKEN and o.assigned_worker and o.assigned_worker.id == worker_id
            ]
            found.sort(key=lambda o: o.taken_at)
            return [copy.deepcopy(o) for o in found]

    async def counts(self) -> Dict[str, int]:
        async with self._lock:
            counts = {status: 0 for status in ORDER_STATUSES}
            for o in self._orders.values():
                counts[o.status] += 1
            counts["total"] = len(self._orders)
            return counts
