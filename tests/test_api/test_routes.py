"""HTTP-level tests: caller headers, status codes and error bodies.

The app runs in-process through httpx's ASGI transport. Its lifespan is not
started, so the session dependency is pointed at the per-test SQLite file.
"""

from __future__ import annotations

import uuid

import httpx
import pytest

from devmarket.api.deps import get_db_session, get_payout_provider
from devmarket.main import create_app
from devmarket.services.payout_service import SimulatedPayoutProvider

BUYER = {"X-Caller-Id": "buyer-1", "X-Caller-Role": "buyer"}
SELLER = {"X-Caller-Id": "seller-1", "X-Caller-Role": "seller"}
ADMIN = {"X-Caller-Id": "admin-1", "X-Caller-Role": "admin"}

REQUEST_BODY = {
    "title": "Slack approval workflow",
    "description": "Route purchase approvals through Slack.",
    "category": "n8n",
    "budget_min": 100_000,
    "budget_max": 300_000,
    "timeline": "2 weeks",
}


@pytest.fixture
async def client(session_factory):
    app = create_app()

    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_payout_provider] = SimulatedPayoutProvider
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _post_request(client) -> dict:
    response = await client.post("/api/v1/requests", json=REQUEST_BODY, headers=BUYER)
    assert response.status_code == 201, response.text
    return response.json()


async def _propose(client, request_id: str, price: int = 200_000) -> httpx.Response:
    response = await client.post(
        f"/api/v1/requests/{request_id}/proposals",
        json={"price": price, "timeline": "10 days", "description": "Done this before."},
        headers=SELLER,
    )
    return response


class TestCallerIdentity:
    async def test_missing_headers(self, client) -> None:
        response = await client.post("/api/v1/requests", json=REQUEST_BODY)
        assert response.status_code == 403
        assert response.json()["error"] == "UNAUTHENTICATED"

    async def test_unknown_role(self, client) -> None:
        headers = {"X-Caller-Id": "x", "X-Caller-Role": "superuser"}
        response = await client.post("/api/v1/requests", json=REQUEST_BODY, headers=headers)
        assert response.status_code == 403

    async def test_admin_only_routes(self, client) -> None:
        response = await client.post(
            f"/api/v1/payments/escrows/{uuid.uuid4()}/funded",
            json={"payment_reference": "pay_1"},
            headers=BUYER,
        )
        assert response.status_code == 403


class TestRequestFlow:
    async def test_create_and_fetch(self, client) -> None:
        created = await _post_request(client)
        assert created["status"] == "OPEN"
        assert created["buyer_id"] == "buyer-1"

        fetched = await client.get(f"/api/v1/requests/{created['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["title"] == REQUEST_BODY["title"]

        listing = await client.get("/api/v1/requests", params={"category": "n8n"})
        assert listing.json()["total"] == 1

    async def test_inverted_budget(self, client) -> None:
        body = {**REQUEST_BODY, "budget_min": 400_000}
        response = await client.post("/api/v1/requests", json=body, headers=BUYER)
        assert response.status_code == 422
        assert response.json() == {
            "error": "VALIDATION_ERROR",
            "message": "budget_min must not exceed budget_max",
            "field": "budget_min",
        }

    async def test_unknown_request(self, client) -> None:
        response = await client.get(f"/api/v1/requests/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_price_out_of_range(self, client) -> None:
        created = await _post_request(client)
        response = await _propose(client, created["id"], price=50_000)
        assert response.status_code == 422
        assert response.json()["message"] == "price out of range"

    async def test_duplicate_proposal(self, client) -> None:
        created = await _post_request(client)
        assert (await _propose(client, created["id"])).status_code == 201
        response = await _propose(client, created["id"])
        assert response.status_code == 409
        assert response.json()["message"] == "duplicate proposal"

    async def test_select_then_fund_and_release(self, client) -> None:
        created = await _post_request(client)
        proposal = (await _propose(client, created["id"])).json()

        selected = await client.post(
            f"/api/v1/requests/{created['id']}/select",
            json={"proposal_id": proposal["id"]},
            headers=BUYER,
        )
        assert selected.status_code == 200
        escrow = selected.json()["escrow"]
        assert escrow["amount"] == 200_000

        # Selecting again loses: the request is no longer open.
        again = await client.post(
            f"/api/v1/requests/{created['id']}/select",
            json={"proposal_id": proposal["id"]},
            headers=BUYER,
        )
        assert again.status_code == 409

        funded = await client.post(
            f"/api/v1/payments/escrows/{escrow['id']}/funded",
            json={"payment_reference": "pay_1"},
            headers=ADMIN,
        )
        assert funded.json()["status"] == "FUNDED"
        released = await client.post(f"/api/v1/payments/escrows/{escrow['id']}/released", headers=ADMIN)
        assert released.json()["status"] == "RELEASED"

        final = await client.get(f"/api/v1/requests/{created['id']}")
        assert final.json()["status"] == "COMPLETED"

    async def test_failed_handler_rolls_back(self, client) -> None:
        created = await _post_request(client)
        response = await client.post(f"/api/v1/requests/{created['id']}/cancel", headers=SELLER)
        assert response.status_code == 403
        assert (await client.get(f"/api/v1/requests/{created['id']}")).json()["status"] == "OPEN"


class TestSettlementRoutes:
    async def test_run_and_pay_out(self, client) -> None:
        body = {
            "seller_id": "seller-1",
            "period_start": "2026-03-01T00:00:00Z",
            "period_end": "2026-04-01T00:00:00Z",
        }
        created = await client.post("/api/v1/settlements", json=body, headers=ADMIN)
        assert created.status_code == 201
        settlement_id = created.json()["id"]

        duplicate = await client.post("/api/v1/settlements", json=body, headers=ADMIN)
        assert duplicate.status_code == 409

        paid = await client.post(
            f"/api/v1/settlements/{settlement_id}/payout",
            json={"destination_account_ref": "acct-1"},
            headers=ADMIN,
        )
        assert paid.status_code == 200
        assert paid.json()["settlement"]["status"] == "PAID"

        own = await client.get("/api/v1/sellers/seller-1/settlements", headers=SELLER)
        assert [s["id"] for s in own.json()] == [settlement_id]
        other = await client.get("/api/v1/sellers/seller-1/settlements", headers=BUYER)
        assert other.status_code == 403


class TestHealth:
    async def test_health_reports_database(self, client, engine, monkeypatch) -> None:
        monkeypatch.setattr("devmarket.api.routes.health._get_engine", lambda: engine)
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "healthy"
        assert response.headers["X-Request-ID"]
