"""Settlement Service: per-seller, per-period payout figures.

For a seller and a half-open period [start, end):

    total_amount          = sum of PAID order amounts (paid_at in period)
    platform_fee          = sum of the per-order fees fixed at capture time
    verification_earnings = sum of verifier shares the seller earned as a
                            verifier (APPROVED/COMPLETED, completed_at in period)
    payout_amount         = total_amount - platform_fee + verification_earnings

One settlement per seller per period: an exact or overlapping period that is
already settled raises ``Conflict("settlement already exists for period")``.
The unique constraint on (seller, start, end) catches two runs racing on the
same period.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from devmarket.config import get_settings
from devmarket.domain import access, fees
from devmarket.domain.enums import SettlementStatus
from devmarket.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from devmarket.infrastructure.database.orm_models import Settlement, SettlementItem
from devmarket.infrastructure.database.repositories import (
    OrderRepository,
    SettlementRepository,
)
from devmarket.logging_config import get_logger
from devmarket.schemas.settlement import (
    SettlementEstimateResponse,
    SettlementSummaryResponse,
    StatusTotals,
)
from devmarket.services.verification_service import VerificationService

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from devmarket.domain.access import Caller
    from devmarket.infrastructure.database.orm_models import Order, Verification

logger = get_logger(__name__)

SETTLEMENT_EXISTS = "settlement already exists for period"


# --- Periods ---


def month_period(year: int, month: int) -> tuple[datetime, datetime]:
    """[first instant of the month, first instant of the next month) in UTC."""
    if not 1 <= month <= 12:
        raise InvalidInputError("month must be between 1 and 12", field="month")
    start = datetime(year, month, 1, tzinfo=UTC)
    end = datetime(year + 1, 1, 1, tzinfo=UTC) if month == 12 else datetime(year, month + 1, 1, tzinfo=UTC)
    return start, end


def previous_month(now: datetime | None = None) -> tuple[datetime, datetime]:
    """The calendar month before ``now``; what the monthly job settles."""
    now = _as_utc(now or datetime.now(UTC))
    if now.month == 1:
        return month_period(now.year - 1, 12)
    return month_period(now.year, now.month - 1)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


# --- Arithmetic ---


@dataclass
class ProductLine:
    product_id: uuid.UUID
    order_count: int = 0
    amount: int = 0
    platform_fee: int = 0

    @property
    def payout_amount(self) -> int:
        return self.amount - self.platform_fee


@dataclass
class SettlementFigures:
    """The computed, not yet persisted, figures for one seller and period."""

    order_count: int = 0
    total_amount: int = 0
    platform_fee: int = 0
    verification_earnings: int = 0
    lines: list[ProductLine] = field(default_factory=list)

    @property
    def payout_amount(self) -> int:
        return fees.payout_amount(self.total_amount, self.platform_fee, self.verification_earnings)


def compute_figures(orders: Iterable[Order], verifications: Iterable[Verification]) -> SettlementFigures:
    """Fold orders and verification income into settlement figures."""
    by_product: dict[uuid.UUID, ProductLine] = {}
    figures = SettlementFigures()
    for order in orders:
        line = by_product.get(order.product_id)
        if line is None:
            line = by_product[order.product_id] = ProductLine(order.product_id)
        line.order_count += 1
        line.amount += order.amount
        line.platform_fee += order.platform_fee
        figures.order_count += 1
        figures.total_amount += order.amount
        figures.platform_fee += order.platform_fee

    figures.verification_earnings = sum(v.verifier_share for v in verifications)
    figures.lines = sorted(by_product.values(), key=lambda line: str(line.product_id))
    return figures


@dataclass(frozen=True)
class BatchResult:
    created: list[Settlement]
    skipped: list[str]


class SettlementService:
    """Computes and stores settlements."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._settlements = SettlementRepository(session)
        self._orders = OrderRepository(session)
        self._verifications = VerificationService(session)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, seller_id: str, period_start: datetime, period_end: datetime) -> Settlement:
        """Create the PENDING settlement for a seller and period.

        Raises:
            InvalidInputError: empty or inverted period.
            ConflictError: the period (or an overlapping one) is already settled.
        """
        start, end = _as_utc(period_start), _as_utc(period_end)
        if start >= end:
            raise InvalidInputError("period_start must be before period_end", field="period_start")

        log = logger.bind(seller_id=seller_id, period_start=start.isoformat(), period_end=end.isoformat())
        if await self._settlements.find_overlapping(seller_id, start, end) is not None:
            log.info("settlement.already_exists")
            raise ConflictError(SETTLEMENT_EXISTS)

        figures = await self._compute(seller_id, start, end)
        settlement = Settlement(
            seller_id=seller_id,
            period_start=start,
            period_end=end,
            total_amount=figures.total_amount,
            platform_fee=figures.platform_fee,
            verification_earnings=figures.verification_earnings,
            payout_amount=figures.payout_amount,
            currency=get_settings().default_currency,
            status=SettlementStatus.PENDING.value,
            items=[
                SettlementItem(
                    product_id=line.product_id,
                    order_count=line.order_count,
                    amount=line.amount,
                    platform_fee=line.platform_fee,
                    payout_amount=line.payout_amount,
                )
                for line in figures.lines
            ],
        )
        try:
            settlement = await self._settlements.add_in_savepoint(settlement)
        except IntegrityError as err:
            log.warning("settlement.duplicate_race")
            raise ConflictError(SETTLEMENT_EXISTS) from err

        log.info(
            "settlement.created",
            settlement_id=str(settlement.id),
            orders=figures.order_count,
            total_amount=figures.total_amount,
            platform_fee=figures.platform_fee,
            verification_earnings=figures.verification_earnings,
            payout_amount=figures.payout_amount,
        )
        return settlement

    async def run_for_sellers(
        self,
        seller_ids: Iterable[str],
        period_start: datetime,
        period_end: datetime,
    ) -> BatchResult:
        """Settle many sellers for one period, skipping those already settled."""
        created: list[Settlement] = []
        skipped: list[str] = []
        for seller_id in dict.fromkeys(seller_ids):
            try:
                created.append(await self.run(seller_id, period_start, period_end))
            except ConflictError:
                skipped.append(seller_id)
        logger.info("settlement.batch_completed", created=len(created), skipped=len(skipped))
        return BatchResult(created=created, skipped=skipped)

    async def estimate(self, seller_id: str, now: datetime | None = None) -> SettlementEstimateResponse:
        """Figures for the current month to date. Nothing is stored."""
        end = _as_utc(now or datetime.now(UTC))
        start, _ = month_period(end.year, end.month)
        figures = await self._compute(seller_id, start, end)
        return SettlementEstimateResponse(
            seller_id=seller_id,
            period_start=start,
            period_end=end,
            order_count=figures.order_count,
            total_amount=figures.total_amount,
            platform_fee=figures.platform_fee,
            verification_earnings=figures.verification_earnings,
            payout_amount=figures.payout_amount,
        )

    async def _compute(self, seller_id: str, start: datetime, end: datetime) -> SettlementFigures:
        orders = await self._orders.paid_in_period(seller_id, start, end)
        verifications = await self._verifications.completed_for_verifier(seller_id, start, end)
        return compute_figures(orders, verifications)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, settlement_id: uuid.UUID, caller: Caller) -> Settlement:
        settlement = await self._settlements.get(settlement_id)
        if settlement is None:
            raise NotFoundError("settlement", settlement_id)
        access.require(access.can_view_settlement(caller, settlement), "settlement not visible")
        return settlement

    async def list_for_seller(self, seller_id: str, caller: Caller, limit: int = 12) -> list[Settlement]:
        access.require(
            caller.caller_id == seller_id or access.is_admin(caller),
            "settlements not visible",
        )
        limit = min(max(limit, 1), get_settings().max_page_size)
        return await self._settlements.list_for_seller(seller_id, limit)

    async def summary(self, seller_id: str | None = None) -> SettlementSummaryResponse:
        """Per-status counts and payout totals plus the income breakdown."""
        by_status = {status: StatusTotals() for status in SettlementStatus}
        product_sales = verification_earnings = 0
        for status, count, payout, net_sales, earnings in await self._settlements.totals_by_status(seller_id):
            by_status[SettlementStatus(status)] = StatusTotals(count=count, amount=payout)
            product_sales += net_sales
            verification_earnings += earnings
        return SettlementSummaryResponse(
            by_status=by_status,
            product_sales=product_sales,
            verification_earnings=verification_earnings,
        )
