import csv
import io
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from apexdispatch.main import create_app
from apexdispatch.services.coordinator import OrderCoordinator
from apexdispatch.services.ledger import COLUMN_INDEX, LEDGER_COLUMNS

from conftest import job_request


@pytest.fixture
def coord(settings, gateway, ledger, clock):
    return OrderCoordinator(settings, gateway, ledger, clock)


@pytest.fixture
def client(coord, settings):
    with TestClient(create_app(coord, settings)) as c:
        yield c


def _create(client, **overrides):
    r = client.post("/api/create-order", json=job_request(**overrides))
    assert r.status_code == 200, r.text
    return r.json()["orderId"]


def _take(client, order_id, master_id="101", name="Анна"):
    return client.post("/api/take-order", json={"orderId": order_id, "masterId": master_id, "masterName": name})


def test_order_lifecycle_end_to_end(client, coord, gateway, ledger, clock):
    r = client.post("/api/create-order", json=job_request())
    assert r.status_code == 200
    body = r.json()
    order_id = body["orderId"]
    assert body["success"] is True
    assert body["broadcastLink"] == "https://t.me/apexclean_moscow/101"
    assert gateway.broadcasts[0]["channel"] == "@apexclean_moscow"
    assert [a.token for a in gateway.broadcasts[0]["actions"]] == [f"take_{order_id}", f"reject_{order_id}"]

    clock.advance(minutes=10)
    r = _take(client, order_id)
    assert r.status_code == 200
    assert r.json()["success"] is True and r.json()["outcome"] == "success"

    r = _take(client, order_id, master_id="202", name="Борис")
    assert r.status_code == 409
    assert r.json() == {"success": False, "outcome": "conflict", "orderId": order_id, "notified": False}

    clock.advance(hours=3)
    r = client.post(
        "/api/upload-photo",
        json={"orderId": order_id, "type": "after", "photoUrl": "https://files.example/a.jpg", "masterId": "101"},
    )
    assert r.status_code == 200
    assert r.json()["status"] == "completed"

    order = client.get(f"/api/orders/{order_id}").json()
    assert order["status"] == "completed"
    assert order["assignedWorker"] == {"id": "101", "name": "Анна"}
    assert order["photos"] == {"after": "https://files.example/a.jpg"}
    created = datetime.fromisoformat(order["createdAt"])
    taken = datetime.fromisoformat(order["takenAt"])
    completed = datetime.fromisoformat(order["completedAt"])
    assert created <= taken <= completed

    client.portal.call(coord.aclose)
    row = ledger.row_for(order_id)
    assert row[COLUMN_INDEX["status"]] == "completed"
    assert row[COLUMN_INDEX["workerName"]] == "Анна"

    assert client.get("/api/stats").json() == {"pending": 0, "taken": 0, "completed": 1, "total": 1}


def test_region_routing_for_other_city(client, gateway):
    _create(client, customerAddress="Санкт-Петербург, Невский пр. 20")
    assert gateway.broadcasts[-1]["channel"] == "@apexclean_spb"


def test_missing_required_field_is_400(client):
    payload = job_request()
    del payload["customerPhone"]
    r = client.post("/api/create-order", json=payload)
    assert r.status_code == 400
    assert r.json()["success"] is False

    r = client.post("/api/create-order", json=job_request(customerName="   "))
    assert r.status_code == 400
    assert "customerName" in r.json()["error"]
    assert client.get("/api/orders").json() == []


def test_invalid_date_is_400(client):
    r = client.post("/api/create-order", json=job_request(orderDate="завтра"))
    assert r.status_code == 400


def test_take_unknown_order_is_404(client):
    r = _take(client, "CLN-404")
    assert r.status_code == 404
    assert r.json()["outcome"] == "not_found"


def test_photo_on_pending_order_is_409(client):
    order_id = _create(client)
    r = client.post("/api/upload-photo", json={"orderId": order_id, "type": "before", "photoUrl": "u"})
    assert r.status_code == 409
    assert r.json()["success"] is False


def test_photo_with_unknown_stage_is_400(client):
    order_id = _create(client)
    _take(client, order_id)
    r = client.post("/api/upload-photo", json={"orderId": order_id, "type": "during", "photoUrl": "u"})
    assert r.status_code == 400


def test_photo_for_unknown_order_is_404(client):
    r = client.post("/api/upload-photo", json={"orderId": "CLN-404", "type": "after", "photoUrl": "u"})
    assert r.status_code == 404


def test_get_unknown_order_is_404(client):
    r = client.get("/api/orders/CLN-404")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "Order CLN-404 not found"}


def test_failed_broadcast_then_rebroadcast(client, gateway):
    gateway.failing.add("broadcast")
    r = client.post("/api/create-order", json=job_request())
    assert r.status_code == 200
    order_id = r.json()["orderId"]
    assert r.json()["broadcastLink"] is None
    assert client.get(f"/api/orders/{order_id}").json()["broadcastRef"] is None

    gateway.failing.clear()
    r = client.post(f"/api/orders/{order_id}/rebroadcast")
    assert r.status_code == 200
    assert r.json()["broadcastLink"].startswith("https://t.me/apexclean_moscow/")

    r = client.post(f"/api/orders/{order_id}/rebroadcast")
    assert r.status_code == 409


def test_contact_correction(client, coord, ledger):
    order_id = _create(client)
    r = client.patch(f"/api/orders/{order_id}/contact", json={"customerPhone": "+79995554433"})
    assert r.status_code == 200
    assert r.json()["customer"]["phone"] == "+79995554433"
    assert r.json()["region"] == "Москва"

    client.portal.call(coord.aclose)
    assert ledger.row_for(order_id)[COLUMN_INDEX["phone"]] == "+79995554433"

    r = client.patch(f"/api/orders/{order_id}/contact", json={"customerAddress": ""})
    assert r.status_code == 400


def test_list_and_export(client):
    first = _create(client)
    second = _create(client)

    listed = client.get("/api/orders").json()
    assert [o["id"] for o in listed] == [second, first]

    r = client.get("/api/orders/export.csv")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    rows = list(csv.reader(io.StringIO(r.text)))
    assert rows[0] == list(LEDGER_COLUMNS)
    assert [row[1] for row in rows[1:]] == [first, second]


def test_stats_from_ledger(client, coord):
    order_id = _create(client)
    _create(client)
    _take(client, order_id)
    client.portal.call(coord.aclose)
    r = client.get("/api/stats", params={"source": "ledger"})
    assert r.json() == {"pending": 1, "taken": 1, "completed": 0, "total": 2}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_numeric_worker_ids_are_accepted(client):
    order_id = _create(client)
    r = client.post("/api/take-order", json={"orderId": order_id, "masterId": 101, "masterName": "Анна"})
    assert r.status_code == 200, r.text
    assert client.get(f"/api/orders/{order_id}").json()["assignedWorker"] == {"id": "101", "name": "Анна"}

    r = client.post(
        "/api/upload-photo",
        json={"orderId": order_id, "type": "before", "photoUrl": "u", "masterId": 101},
    )
    assert r.status_code == 200, r.text
