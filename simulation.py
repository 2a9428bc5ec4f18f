#!/usr/bin/env python3
"""DevMarket Engine: End-to-End Simulation.

Runs three scenarios with BuyerBot, SellerBot and VerifierBot actors:

    Scenario 1: Custom development
        - Buyer posts a request (budget 100,000 - 300,000)
        - Two sellers bid; the buyer selects one -> escrow opened
        - Payment captured, work accepted -> escrow released, request COMPLETED

    Scenario 2: Product verification
        - Seller runs the free level-0 automated checks
        - Seller requests a level-2 review; a verifier claims and approves it
        - The product's verification level becomes 2

    Scenario 3: Monthly settlement
        - Product sales are paid (fee rate fixed from the seller's level)
        - Last month is settled and the payout dispatched (simulated provider)

Usage:
    # Option A: Against the configured database (DATABASE_URL):
    uv run python simulation.py

    # Option B: Without a database server (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from devmarket.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from devmarket.domain.access import Caller  # noqa: E402
from devmarket.domain.enums import RequestCategory, Role  # noqa: E402
from devmarket.infrastructure.database import (  # noqa: E402
    Product,
    ProductRepository,
    build_engine,
    build_session_factory,
    create_tables,
)
from devmarket.schemas.marketplace import CreateProposalInput, CreateRequestInput  # noqa: E402
from devmarket.schemas.settlement import OrderPaidInput  # noqa: E402
from devmarket.schemas.verification import ReviewInput  # noqa: E402
from devmarket.services import (  # noqa: E402
    PaymentCaptureService,
    PayoutService,
    ProposalService,
    RequestService,
    SelectionService,
    SettlementService,
    VerificationService,
)
from devmarket.services.notification_service import LoggingSink, OutboxRelay  # noqa: E402
from devmarket.services.payout_service import SimulatedPayoutProvider  # noqa: E402
from devmarket.services.settlement_service import previous_month  # noqa: E402

_engine = None
_session_factory = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _engine, _session_factory
    from devmarket.config import get_settings

    url = "sqlite+aiosqlite:///:memory:" if use_sqlite else get_settings().database_url
    _engine = build_engine(url)
    _session_factory = build_session_factory(_engine)
    await create_tables(_engine)
    logger.info("database.initialized", dialect=_engine.dialect.name)


def get_session() -> Any:
    """Get a fresh database session."""
    return _session_factory()


async def shutdown_database() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def drain_notifications() -> None:
    report = await OutboxRelay(_session_factory, LoggingSink()).drain()
    logger.info("🔔 NOTIFICATIONS", delivered=report.delivered, failed=report.failed)


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@dataclass
class BuyerBot:
    caller: Caller

    async def post_request(self, session: Any) -> uuid.UUID:
        request = await RequestService(session).create(
            self.caller,
            CreateRequestInput(
                title="Slack approval workflow",
                description="An n8n workflow that routes purchase approvals through Slack.",
                category=RequestCategory.N8N,
                budget_min=100_000,
                budget_max=300_000,
                timeline="2 weeks",
            ),
        )
        await session.commit()
        logger.info("🔵 BUYER: Request posted", request_id=str(request.id))
        return request.id

    async def select(self, session: Any, request_id: uuid.UUID, proposal_id: uuid.UUID) -> uuid.UUID:
        result = await SelectionService(session).select(request_id, proposal_id, self.caller)
        await session.commit()
        logger.info(
            "🔵 BUYER: Proposal selected",
            proposal_id=str(proposal_id),
            escrow_id=str(result.escrow.id),
            amount=result.escrow.amount,
        )
        return result.escrow.id


@dataclass
class SellerBot:
    caller: Caller

    async def propose(self, session: Any, request_id: uuid.UUID, price: int) -> uuid.UUID:
        proposal = await ProposalService(session).create(
            self.caller,
            request_id,
            CreateProposalInput(price=price, timeline="10 days", description="Built it twice before."),
        )
        await session.commit()
        logger.info("🟢 SELLER: Proposal submitted", seller=self.caller.caller_id, price=price)
        return proposal.id

    async def list_product(self, session: Any) -> uuid.UUID:
        product = await ProductRepository(session).add(
            Product(
                seller_id=self.caller.caller_id,
                name="Invoice OCR pipeline",
                description=(
                    "A complete automation that extracts invoice fields with OCR and "
                    "pushes them into the accounting system, with retry handling."
                ),
                category="ai_agent",
                files=[
                    {"name": "pipeline.zip", "size": 2_048_000},
                    {"name": "README.md", "size": 4_096, "content_preview": "# Setup\nRun install."},
                ],
            )
        )
        await session.commit()
        logger.info("🟢 SELLER: Product listed", product_id=str(product.id))
        return product.id

    async def request_verification(self, session: Any, product_id: uuid.UUID, level: int) -> uuid.UUID:
        verification = await VerificationService(session).request_verification(self.caller, product_id, level)
        await session.commit()
        logger.info(
            "🟢 SELLER: Verification requested",
            level=level,
            status=verification.status,
            score=verification.score,
            fee=verification.fee,
        )
        return verification.id


@dataclass
class VerifierBot:
    caller: Caller

    async def review(self, session: Any, verification_id: uuid.UUID) -> None:
        svc = VerificationService(session)
        await svc.claim(verification_id, self.caller)
        await svc.begin(verification_id, self.caller)
        verification = await svc.submit_review(
            verification_id,
            self.caller,
            ReviewInput(approved=True, score=88, comments="Clean and documented.", badges=["documented"]),
        )
        await session.commit()
        logger.info(
            "🟣 VERIFIER: Review submitted",
            status=verification.status,
            earned=verification.verifier_share,
        )


SYSTEM = Caller.system()
BUYER = BuyerBot(Caller("buyer-1", Role.BUYER))
SELLER = SellerBot(Caller("seller-1", Role.SELLER))
RIVAL = SellerBot(Caller("seller-2", Role.SELLER))
VERIFIER = VerifierBot(Caller("verifier-1", Role.VERIFIER))


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    print(f"\n--- {text} ---\n")


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------
async def scenario_1_custom_development() -> None:
    banner("SCENARIO 1: Custom development with escrow")

    async with get_session() as session:
        request_id = await BUYER.post_request(session)

    section("Sellers bid")
    async with get_session() as session:
        winning = await SELLER.propose(session, request_id, 200_000)
    async with get_session() as session:
        await RIVAL.propose(session, request_id, 280_000)

    section("Buyer selects")
    async with get_session() as session:
        escrow_id = await BUYER.select(session, request_id, winning)

    section("Payment captured and released")
    async with get_session() as session:
        capture = PaymentCaptureService(session)
        await capture.escrow_funded(escrow_id, "pay_sim_0001")
        escrow = await capture.escrow_released(escrow_id)
        await session.commit()
    async with get_session() as session:
        request = await RequestService(session).get(request_id)
    print(f"  Escrow: {escrow.status}  Request: {request.status}")
    await drain_notifications()


async def scenario_2_verification() -> uuid.UUID:
    banner("SCENARIO 2: Product verification")

    async with get_session() as session:
        product_id = await SELLER.list_product(session)

    section("Level 0 (automated, free)")
    async with get_session() as session:
        await SELLER.request_verification(session, product_id, 0)

    section("Level 2 (manual review)")
    async with get_session() as session:
        verification_id = await SELLER.request_verification(session, product_id, 2)
    async with get_session() as session:
        await VERIFIER.review(session, verification_id)

    async with get_session() as session:
        product = await ProductRepository(session).get(product_id)
    print(f"  Product verification level: {product.verification_level}")
    await drain_notifications()
    return product_id


async def scenario_3_settlement(product_id: uuid.UUID | None = None) -> None:
    banner("SCENARIO 3: Monthly settlement and payout")

    if product_id is None:
        async with get_session() as session:
            product_id = await SELLER.list_product(session)

    start, end = previous_month()
    section("Sales paid last month")
    async with get_session() as session:
        capture = PaymentCaptureService(session)
        for n, amount in enumerate((100_000, 150_000)):
            order = await capture.order_paid(
                OrderPaidInput(
                    product_id=product_id,
                    buyer_id=f"buyer-{n + 2}",
                    amount=amount,
                    payment_reference=f"order_sim_{n}",
                    paid_at=start.replace(day=10 + n),
                )
            )
            logger.info("💳 ORDER: Paid", amount=amount, fee=order.platform_fee, rate=str(order.platform_fee_rate))
        await session.commit()

    section("Settle and pay out")
    async with get_session() as session:
        settlement = await SettlementService(session).run(SELLER.caller.caller_id, start, end)
        await session.commit()
    async with get_session() as session:
        outcome = await PayoutService(session, SimulatedPayoutProvider()).dispatch(settlement.id, "bank-acct-001")
        await session.commit()

    s = outcome.settlement
    print(f"  Gross: {s.total_amount}  Fee: {s.platform_fee}  Payout: {s.payout_amount}")
    print(f"  Status: {s.status}  Transfer: {outcome.transfer_id}")
    await drain_notifications()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
async def main(use_sqlite: bool, scenario: int | None) -> None:
    await init_database(use_sqlite)
    started = datetime.now(UTC)
    try:
        product_id = None
        if scenario in (None, 1):
            await scenario_1_custom_development()
        if scenario in (None, 2):
            product_id = await scenario_2_verification()
        if scenario in (None, 3):
            await scenario_3_settlement(product_id)
    finally:
        await shutdown_database()
    banner(f"Done in {(datetime.now(UTC) - started).total_seconds():.2f}s")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="DevMarket Engine simulation")
    parser.add_argument("--sqlite", action="store_true", help="Use an in-memory SQLite database")
    parser.add_argument("--scenario", type=int, choices=(1, 2, 3), help="Run a single scenario")
    args = parser.parse_args()
    asyncio.run(main(args.sqlite, args.scenario))
