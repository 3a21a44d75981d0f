"""Test the rental API routes."""
from datetime import timedelta

import pytest
import pytest_asyncio
from conftest import NOW, Line, RecordingSink
from httpx import ASGITransport, AsyncClient

from api.main import app
from verticals.rental.audit import SafeAuditSink
from verticals.rental.errors import StoreUnavailableError
from verticals.rental.router import get_audit_sink, get_store


class DownStore:
    async def read_snapshot(self, transaction_id):
        raise StoreUnavailableError("connection refused")

    async def commit(self, transaction_id, mutation):
        raise StoreUnavailableError("connection refused")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest_asyncio.fixture
async def client(store, sink):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_audit_sink] = lambda: SafeAuditSink(sink)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


def return_body(transaction_id, item_id, quantity, description="Baik - tidak ada kerusakan"):
    return {
        "transaction_id": transaction_id,
        "items": [{"item_id": item_id, "conditions": [{"description": description, "quantity": quantity}]}],
        "actual_return_time": (NOW + timedelta(days=2)).isoformat(),
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_get_transaction(client, seed):
    seeded = await seed(Line(ordered=2))
    response = await client.get(f"/api/rentals/transactions/{seeded.transaction_id}")
    assert response.status_code == 200
    assert response.json()["items"][0]["ordered_quantity"] == 2

    missing = await client.get("/api/rentals/transactions/missing")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_pickup_summary_route(client, seed):
    seeded = await seed(Line(ordered=4, picked_up=2))
    response = await client.get(f"/api/rentals/transactions/{seeded.transaction_id}/pickup-summary")
    assert response.status_code == 200
    assert response.json()["pickup_percentage"] == 50


@pytest.mark.asyncio
async def test_pickup_records_actor(client, seed, sink):
    seeded = await seed(Line(ordered=2))
    response = await client.post(
        "/api/rentals/pickups",
        json={"transaction_id": seeded.transaction_id, "items": [{"item_id": seeded.item_ids[0], "quantity": 2}]},
        headers={"X-User-ID": "cashier-3"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"]["pickup_summary"]["picked_up_quantity"] == 2
    assert sink.events[-1].actor == "cashier-3"


@pytest.mark.asyncio
async def test_invalid_pickup_is_422_with_findings(client, seed):
    seeded = await seed(Line(ordered=2, picked_up=2))
    response = await client.post(
        "/api/rentals/pickups",
        json={"transaction_id": seeded.transaction_id, "items": [{"item_id": seeded.item_ids[0], "quantity": 1}]},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["failure"] == "validation"
    assert "ITEM_ALREADY_FULLY_PICKED_UP" in [f["code"] for f in body["findings"]]


@pytest.mark.asyncio
async def test_pickup_validate_route(client, seed):
    seeded = await seed(Line(ordered=3))
    response = await client.post(
        "/api/rentals/pickups/validate",
        json={"transaction_id": seeded.transaction_id, "items": [{"item_id": seeded.item_ids[0], "quantity": 1}]},
    )
    assert response.status_code == 200
    assert response.json()["result"]["valid"] is True


@pytest.mark.asyncio
async def test_repeated_return_is_409(client, seed):
    seeded = await seed(Line(ordered=1, picked_up=1))
    body = return_body(seeded.transaction_id, seeded.item_ids[0], 1)

    first = await client.post("/api/rentals/returns", json=body)
    second = await client.post("/api/rentals/returns", json=body)

    assert first.status_code == 200
    assert first.json()["result"]["closed"] is True
    assert second.status_code == 409
    assert [f["code"] for f in second.json()["findings"]] == ["ALREADY_RETURNED"]


@pytest.mark.asyncio
async def test_return_preview_route(client, seed):
    seeded = await seed(Line(ordered=1, picked_up=1))
    response = await client.post(
        "/api/rentals/returns/preview",
        json=return_body(seeded.transaction_id, seeded.item_ids[0], 1),
    )
    assert response.status_code == 200
    assert response.json()["result"]["penalties"]["total_penalty"] == "0.00"


@pytest.mark.asyncio
async def test_unknown_transaction_is_404(client):
    response = await client.post(
        "/api/rentals/pickups",
        json={"transaction_id": "missing", "items": [{"item_id": "x", "quantity": 1}]},
    )
    assert response.status_code == 404
    assert response.json()["findings"][0]["code"] == "TRANSACTION_NOT_FOUND"


@pytest.mark.asyncio
async def test_malformed_body_rejected(client):
    response = await client.post(
        "/api/rentals/returns",
        json={"transaction_id": "t1", "items": [{"item_id": "x", "conditions": [{"description": "ok", "quantity": 1}]}]},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_store_outage_is_503(client):
    app.dependency_overrides[get_store] = lambda: DownStore()
    response = await client.post(
        "/api/rentals/pickups",
        json={"transaction_id": "t1", "items": [{"item_id": "x", "quantity": 1}]},
    )
    assert response.status_code == 503
    assert response.json()["retryable"] is True


@pytest.mark.asyncio
async def test_retried_partial_return_is_409(client, seed):
    seeded = await seed(Line(ordered=1, picked_up=1), Line(ordered=1, picked_up=1))
    body = return_body(seeded.transaction_id, seeded.item_ids[0], 1)

    first = await client.post("/api/rentals/returns", json=body)
    retry = await client.post("/api/rentals/returns", json=body)

    assert first.status_code == 200
    assert first.json()["result"]["closed"] is False
    assert retry.status_code == 409
    assert retry.json()["failure"] == "conflict"
