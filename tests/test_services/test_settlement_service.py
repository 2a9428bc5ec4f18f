"""Tests for SettlementService: figures, period rules and reporting."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from devmarket.domain.enums import SettlementStatus
from devmarket.domain.exceptions import ConflictError, ForbiddenError, InvalidInputError
from devmarket.infrastructure.database.repositories import SettlementRepository
from devmarket.schemas.settlement import OrderPaidInput
from devmarket.schemas.verification import ReviewInput
from devmarket.services.payment_capture_service import PaymentCaptureService
from devmarket.services.settlement_service import (
    SettlementService,
    compute_figures,
    month_period,
    previous_month,
)
from devmarket.services.verification_service import VerificationService


def _this_month() -> tuple[datetime, datetime]:
    now = datetime.now(UTC)
    return month_period(now.year, now.month)


async def _sell(session, product, *amounts: int, paid_at: datetime | None = None) -> None:
    capture = PaymentCaptureService(session)
    for amount in amounts:
        await capture.order_paid(
            OrderPaidInput(product_id=product.id, buyer_id="b9", amount=amount, paid_at=paid_at)
        )


class TestPeriods:
    def test_month_period(self) -> None:
        start, end = month_period(2026, 12)
        assert start == datetime(2026, 12, 1, tzinfo=UTC)
        assert end == datetime(2027, 1, 1, tzinfo=UTC)

    def test_previous_month_wraps_year(self) -> None:
        start, _ = previous_month(datetime(2026, 1, 15, tzinfo=UTC))
        assert start == datetime(2025, 12, 1, tzinfo=UTC)

    def test_invalid_month(self) -> None:
        with pytest.raises(InvalidInputError):
            month_period(2026, 13)


class TestComputeFigures:
    def test_lines_grouped_by_product(self) -> None:
        orders = [
            SimpleNamespace(product_id="p1", amount=100, platform_fee=15),
            SimpleNamespace(product_id="p1", amount=200, platform_fee=30),
            SimpleNamespace(product_id="p2", amount=50, platform_fee=6),
        ]
        figures = compute_figures(orders, [SimpleNamespace(verifier_share=35)])
        assert (figures.order_count, figures.total_amount, figures.platform_fee) == (3, 350, 51)
        assert figures.payout_amount == 350 - 51 + 35
        assert [(line.product_id, line.order_count, line.payout_amount) for line in figures.lines] == [
            ("p1", 2, 255),
            ("p2", 1, 44),
        ]


class TestRun:
    async def test_sales_minus_fee_plus_verification_income(
        self, session, make_product, seller, rival_seller
    ) -> None:
        product = await make_product()
        await _sell(session, product, 100_000, 200_000)

        # seller-1 also earns 35 reviewing a level-1 product of another seller
        other = await make_product(owner=rival_seller, name="Another workflow pack")
        verifications = VerificationService(session)
        job = await verifications.request_verification(rival_seller, other.id, 1)
        await verifications.claim(job.id, seller)
        await verifications.submit_review(job.id, seller, ReviewInput(approved=True, score=80))

        start, end = _this_month()
        settlement = await SettlementService(session).run(seller.caller_id, start, end)

        assert settlement.status == SettlementStatus.PENDING
        assert settlement.total_amount == 300_000
        assert settlement.platform_fee == 45_000
        assert settlement.verification_earnings == 35
        assert settlement.payout_amount == 255_035
        assert len(settlement.items) == 1
        assert settlement.items[0].order_count == 2

    async def test_orders_outside_period_ignored(self, session, make_product, seller) -> None:
        product = await make_product()
        start, end = _this_month()
        await _sell(session, product, 10_000, paid_at=start - timedelta(seconds=1))
        await _sell(session, product, 20_000, paid_at=start)
        await _sell(session, product, 40_000, paid_at=end)

        settlement = await SettlementService(session).run(seller.caller_id, start, end)
        assert settlement.total_amount == 20_000

    async def test_refunded_orders_excluded(self, session, make_product, seller) -> None:
        product = await make_product()
        capture = PaymentCaptureService(session)
        kept = await capture.order_paid(OrderPaidInput(product_id=product.id, buyer_id="b9", amount=30_000))
        refunded = await capture.order_paid(OrderPaidInput(product_id=product.id, buyer_id="b8", amount=70_000))
        await capture.order_refunded(refunded.id)

        start, end = _this_month()
        settlement = await SettlementService(session).run(seller.caller_id, start, end)
        assert settlement.total_amount == kept.amount

    async def test_second_run_conflicts(self, session, make_product, seller) -> None:
        start, end = _this_month()
        svc = SettlementService(session)
        await svc.run(seller.caller_id, start, end)
        with pytest.raises(ConflictError, match="settlement already exists for period"):
            await svc.run(seller.caller_id, start, end)

    async def test_overlapping_period_conflicts(self, session, seller) -> None:
        start, end = month_period(2026, 3)
        svc = SettlementService(session)
        await svc.run(seller.caller_id, start, end)
        with pytest.raises(ConflictError):
            await svc.run(seller.caller_id, start + timedelta(days=14), end + timedelta(days=14))

    async def test_adjacent_period_allowed(self, session, seller) -> None:
        svc = SettlementService(session)
        await svc.run(seller.caller_id, *month_period(2026, 3))
        april = await svc.run(seller.caller_id, *month_period(2026, 4))
        assert april.payout_amount == 0

    async def test_inverted_period(self, session, seller) -> None:
        start, end = month_period(2026, 3)
        with pytest.raises(InvalidInputError):
            await SettlementService(session).run(seller.caller_id, end, start)

    async def test_batch_skips_settled_sellers(self, session, seller, rival_seller) -> None:
        start, end = month_period(2026, 5)
        svc = SettlementService(session)
        await svc.run(seller.caller_id, start, end)

        sellers = [seller.caller_id, rival_seller.caller_id, rival_seller.caller_id]
        result = await svc.run_for_sellers(sellers, start, end)
        assert [s.seller_id for s in result.created] == [rival_seller.caller_id]
        assert result.skipped == [seller.caller_id]

    async def test_batch_survives_lost_insert_race(
        self, session, seller, rival_seller, monkeypatch
    ) -> None:
        start, end = month_period(2026, 6)
        svc = SettlementService(session)
        await svc.run(seller.caller_id, start, end)
        await session.commit()

        # A concurrent run inserted first: the overlap check passes, the unique index does not.
        async def _nothing_overlaps(self, *args, **kwargs):
            return None

        monkeypatch.setattr(SettlementRepository, "find_overlapping", _nothing_overlaps)
        result = await svc.run_for_sellers([seller.caller_id, rival_seller.caller_id], start, end)
        await session.commit()

        assert result.skipped == [seller.caller_id]
        assert [s.seller_id for s in result.created] == [rival_seller.caller_id]


class TestQueries:
    async def test_estimate_stores_nothing(self, session, make_product, seller) -> None:
        product = await make_product()
        await _sell(session, product, 100_000)

        estimate = await SettlementService(session).estimate(seller.caller_id)
        assert estimate.payout_amount == 85_000
        assert await SettlementService(session).list_for_seller(seller.caller_id, seller) == []

    async def test_visibility(self, session, seller, rival_seller, admin) -> None:
        svc = SettlementService(session)
        settlement = await svc.run(seller.caller_id, *month_period(2026, 3))
        assert (await svc.get(settlement.id, admin)).id == settlement.id
        with pytest.raises(ForbiddenError):
            await svc.get(settlement.id, rival_seller)
        with pytest.raises(ForbiddenError):
            await svc.list_for_seller(seller.caller_id, rival_seller)

    async def test_summary(self, session, make_product, seller) -> None:
        product = await make_product()
        start, end = month_period(2026, 3)
        await _sell(session, product, 100_000, paid_at=start + timedelta(days=1))
        await SettlementService(session).run(seller.caller_id, start, end)

        summary = await SettlementService(session).summary(seller.caller_id)
        assert summary.by_status[SettlementStatus.PENDING].count == 1
        assert summary.by_status[SettlementStatus.PENDING].amount == 85_000
        assert summary.by_status[SettlementStatus.PAID].count == 0
        assert summary.product_sales == 85_000
