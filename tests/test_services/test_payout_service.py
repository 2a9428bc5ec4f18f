"""Tests for payout dispatch and the HTTP payout provider."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from devmarket.domain.enums import SettlementStatus
from devmarket.domain.exceptions import ConflictError, ExternalDependencyError
from devmarket.infrastructure.database import OutboxRepository
from devmarket.schemas.settlement import OrderPaidInput
from devmarket.services.payment_capture_service import PaymentCaptureService
from devmarket.services.payout_service import (
    HttpPayoutProvider,
    PayoutService,
    SimulatedPayoutProvider,
    TransferReceipt,
    idempotency_key_for,
)
from devmarket.services.settlement_service import SettlementService, month_period

MARCH = month_period(2026, 3)


@pytest.fixture
async def settlement(session, make_product, seller):
    product = await make_product()
    await PaymentCaptureService(session).order_paid(
        OrderPaidInput(product_id=product.id, buyer_id="b9", amount=100_000, paid_at=MARCH[0])
    )
    return await SettlementService(session).run(seller.caller_id, *MARCH)


def _failing_provider(message: str = "provider down") -> AsyncMock:
    provider = AsyncMock()
    provider.transfer.side_effect = ExternalDependencyError(message, status_code=503)
    return provider


class TestDispatch:
    async def test_paid_with_simulated_provider(self, session, settlement, seller) -> None:
        outcome = await PayoutService(session, SimulatedPayoutProvider()).dispatch(settlement.id, "acct-1")

        assert outcome.succeeded
        assert outcome.settlement.status == SettlementStatus.PAID
        assert outcome.settlement.payout_reference == outcome.transfer_id
        assert outcome.settlement.payout_date is not None
        events = await OutboxRepository(session).addressed_to(seller.caller_id)
        assert "SETTLEMENT_PAID" in [e.event_type for e in events]

    async def test_transfer_uses_settlement_key(self, session, settlement) -> None:
        provider = AsyncMock()
        provider.transfer.return_value = TransferReceipt(transfer_id="tr_1")
        await PayoutService(session, provider).dispatch(settlement.id, "acct-1")

        provider.transfer.assert_awaited_once_with(
            "acct-1", 85_000, "KRW", idempotency_key_for(settlement.id)
        )

    async def test_provider_failure_marks_failed(self, session, settlement) -> None:
        outcome = await PayoutService(session, _failing_provider()).dispatch(settlement.id, "acct-1")

        assert not outcome.succeeded
        assert outcome.error == "provider down"
        assert outcome.settlement.status == SettlementStatus.FAILED
        assert outcome.settlement.failure_reason == "provider down"
        assert outcome.settlement.payout_amount == 85_000

    async def test_failed_settlement_can_be_retried(self, session, settlement) -> None:
        await PayoutService(session, _failing_provider()).dispatch(settlement.id, "acct-1")
        outcome = await PayoutService(session, SimulatedPayoutProvider()).dispatch(settlement.id, "acct-1")

        assert outcome.settlement.status == SettlementStatus.PAID
        assert outcome.settlement.failure_reason is None

    async def test_paid_settlement_not_payable(self, session, settlement) -> None:
        svc = PayoutService(session, SimulatedPayoutProvider())
        await svc.dispatch(settlement.id, "acct-1")
        with pytest.raises(ConflictError, match="settlement not payable"):
            await svc.dispatch(settlement.id, "acct-1")

    async def test_zero_payout_needs_no_transfer(self, session, seller) -> None:
        empty = await SettlementService(session).run(seller.caller_id, *month_period(2026, 4))
        provider = AsyncMock()

        outcome = await PayoutService(session, provider).dispatch(empty.id, "acct-1")
        assert outcome.settlement.status == SettlementStatus.PAID
        assert outcome.transfer_id is None
        provider.transfer.assert_not_awaited()


class TestSimulatedProvider:
    async def test_same_key_same_transfer(self) -> None:
        provider = SimulatedPayoutProvider()
        first = await provider.transfer("acct", 10, "KRW", "settlement-x")
        second = await provider.transfer("acct", 10, "KRW", "settlement-x")
        assert first == second


class TestHttpPayoutProvider:
    def _provider(self, handler) -> HttpPayoutProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://payouts.test")
        return HttpPayoutProvider(
            base_url="https://payouts.test",
            api_key="secret",
            max_attempts=3,
            client=client,
            backoff_multiplier=0,
        )

    async def test_success_sends_idempotency_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"transfer_id": "tr_42"})

        receipt = await self._provider(handler).transfer("acct-1", 85_000, "KRW", "settlement-abc")

        assert receipt.transfer_id == "tr_42"
        assert seen[0].url.path == "/transfers"
        assert seen[0].headers["Idempotency-Key"] == "settlement-abc"
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert json.loads(seen[0].content) == {"destination": "acct-1", "amount": 85_000, "currency": "KRW"}

    async def test_retries_server_errors(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"transfer_id": "tr_retry"})

        receipt = await self._provider(handler).transfer("acct-1", 1, "KRW", "k")
        assert receipt.transfer_id == "tr_retry"
        assert calls == 3

    async def test_gives_up_after_max_attempts(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(502)

        with pytest.raises(ExternalDependencyError) as exc_info:
            await self._provider(handler).transfer("acct-1", 1, "KRW", "k")
        assert exc_info.value.status_code == 502
        assert calls == 3

    async def test_client_error_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400, json={"error": "bad account"})

        with pytest.raises(ExternalDependencyError) as exc_info:
            await self._provider(handler).transfer("acct-1", 1, "KRW", "k")
        assert exc_info.value.status_code == 400
        assert calls == 1

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExternalDependencyError, match="unreachable"):
            await self._provider(handler).transfer("acct-1", 1, "KRW", "k")

    async def test_non_json_success_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>ok</html>")

        with pytest.raises(ExternalDependencyError, match="invalid JSON") as exc_info:
            await self._provider(handler).transfer("acct-1", 1, "KRW", "k")
        assert exc_info.value.status_code == 200

    async def test_non_json_body_marks_settlement_failed(self, session, settlement) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="accepted")

        outcome = await PayoutService(session, self._provider(handler)).dispatch(settlement.id, "acct-1")

        assert not outcome.succeeded
        assert outcome.settlement.status == SettlementStatus.FAILED
        assert outcome.settlement.failure_reason == "payout provider returned invalid JSON"
