import logging
from datetime import datetime, timezone

import pytest

from apexdispatch.models import WorkerRef
from apexdispatch.services.scheduler import REMINDER_2H, REMINDER_24H

from conftest import job_request

# 2025-06-03 14:00 Europe/Moscow == 11:00 UTC
JOB_START = datetime(2025, 6, 3, 11, 0, tzinfo=timezone.utc)
ANNA = WorkerRef("101", "Анна")


async def _claimed(coordinator, clock, when):
    coordinator.register_worker(ANNA.id, ANNA.id, ANNA.name)
    created = await coordinator.create_order(job_request())
    clock.set(when)
    await coordinator.claim_order(created.order.id, ANNA)
    return created.order.id


def _reminders(gateway):
    return [text for text in gateway.sent_to(ANNA.id) if text.startswith("⏰")]


@pytest.mark.anyio
async def test_claim_30h_ahead_arms_both_reminders(coordinator, gateway, clock):
    order_id = await _claimed(coordinator, clock, datetime(2025, 6, 2, 5, 0, tzinfo=timezone.utc))

    pending = coordinator.scheduler.pending(order_id)
    assert [(r.kind, r.fire_at) for r in pending] == [
        (REMINDER_24H, datetime(2025, 6, 2, 11, 0, tzinfo=timezone.utc)),
        (REMINDER_2H, datetime(2025, 6, 3, 9, 0, tzinfo=timezone.utc)),
    ]
    assert _reminders(gateway) == []

    clock.set(datetime(2025, 6, 2, 10, 59, tzinfo=timezone.utc))
    assert await coordinator.scheduler.run_pending() == 0

    clock.set(datetime(2025, 6, 2, 11, 0, tzinfo=timezone.utc))
    assert await coordinator.scheduler.run_pending() == 1
    assert "завтра в 14:00" in _reminders(gateway)[0]

    clock.set(datetime(2025, 6, 3, 9, 30, tzinfo=timezone.utc))
    assert await coordinator.scheduler.run_pending() == 1
    assert "Через 2 часа" in _reminders(gateway)[1]
    assert coordinator.scheduler.pending() == []


@pytest.mark.anyio
async def test_claim_inside_both_windows_fires_immediately(coordinator, gateway, clock):
    order_id = await _claimed(coordinator, clock, datetime(2025, 6, 3, 10, 0, tzinfo=timezone.utc))

    assert coordinator.scheduler.pending(order_id) == []
    assert len(_reminders(gateway)) == 2


@pytest.mark.anyio
async def test_reminder_reads_contact_at_fire_time(coordinator, gateway, clock):
    order_id = await _claimed(coordinator, clock, datetime(2025, 6, 2, 5, 0, tzinfo=timezone.utc))
    await coordinator.amend_contact(order_id, {"customerPhone": "+79995554433"})

    clock.set(JOB_START)
    assert await coordinator.scheduler.run_pending() == 2
    assert "+79995554433" in _reminders(gateway)[-1]


@pytest.mark.anyio
async def test_reminder_goes_to_the_current_address(coordinator, gateway, clock):
    order_id = await _claimed(coordinator, clock, datetime(2025, 6, 2, 5, 0, tzinfo=timezone.utc))
    coordinator.register_worker(ANNA.id, "whatsapp:+79001112233")

    clock.set(JOB_START)
    await coordinator.scheduler.run_pending()
    assert len(gateway.sent_to("whatsapp:+79001112233")) == 2
    assert order_id in gateway.sent_to("whatsapp:+79001112233")[0]


@pytest.mark.anyio
async def test_delivery_failure_is_logged_not_raised(coordinator, gateway, clock, caplog):
    order_id = await _claimed(coordinator, clock, datetime(2025, 6, 2, 5, 0, tzinfo=timezone.utc))
    gateway.failing.add("notify")

    clock.set(JOB_START)
    with caplog.at_level(logging.ERROR):
        assert await coordinator.scheduler.run_pending() == 2
    assert f"[{order_id}] 24h reminder delivery failed" in caplog.text
    assert coordinator.scheduler.pending() == []


@pytest.mark.anyio
async def test_reminders_outlive_completion_by_default(coordinator, clock):
    order_id = await _claimed(coordinator, clock, datetime(2025, 6, 2, 5, 0, tzinfo=timezone.utc))
    await coordinator.submit_photo(order_id, "after", "ref-after")
    assert len(coordinator.scheduler.pending(order_id)) == 2


@pytest.mark.anyio
async def test_cancel_drops_only_that_orders_reminders(coordinator, clock):
    first = await _claimed(coordinator, clock, datetime(2025, 6, 2, 5, 0, tzinfo=timezone.utc))
    second = await _claimed(coordinator, clock, datetime(2025, 6, 2, 5, 0, tzinfo=timezone.utc))
    assert coordinator.scheduler.cancel(first) == 2
    assert coordinator.scheduler.pending(first) == []
    assert len(coordinator.scheduler.pending(second)) == 2
