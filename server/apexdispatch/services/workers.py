"""Worker registry: platform identity -> deliverable notification address."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from apexdispatch.exceptions import ValidationError
from apexdispatch.models import Worker
from apexdispatch.services.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class WorkerDirectory:
    """Workers are never removed; re-registering replaces the address (new device)."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or SystemClock()
        self._workers: Dict[str, Worker] = {}

    def register(self, worker_id: str, address: str, name: str = "") -> Worker:
        if not worker_id or not address:
            raise ValidationError("Worker id and notification address are required")
        existing = self._workers.get(worker_id)
        if existing and existing.address != address:
            logger.info("Worker %s moved notifications to %s", worker_id, address)
        worker = Worker(
            id=worker_id,
            address=address,
            name=name or (existing.name if existing else ""),
            registered_at=existing.registered_at if existing else self._clock.now(),
        )
        self._workers[worker_id] = worker
        return worker

    def get(self, worker_id: str) -> Optional[Worker]:
        return self._workers.get(worker_id)

    def address_for(self, worker_id: str) -> Optional[str]:
        worker = self._workers.get(worker_id)
        return worker.address if worker else None

    def all(self) -> List[Worker]:
        return list(self._workers.values())
