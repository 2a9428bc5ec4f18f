"""Payment Capture Service: callbacks from the external payment flow.

The marketplace never charges cards itself. The payment provider's webhook
handler calls into this service when:

    - an escrow's payment is captured  (escrow PENDING -> FUNDED)
    - the work is accepted and funds released (escrow FUNDED -> RELEASED,
      request IN_PROGRESS -> COMPLETED)
    - an escrow is refunded (PENDING|FUNDED -> REFUNDED)
    - a product sale is paid or refunded (order history)

The platform fee rate of an order is fixed here, at capture time, from the
seller's verification level at that moment. Later verification changes never
reprice earlier orders.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from devmarket.config import get_settings
from devmarket.domain import fees
from devmarket.domain.enums import OrderStatus
from devmarket.domain.exceptions import ConflictError, NotFoundError
from devmarket.domain.state_machine import EscrowStateMachine, apply_event
from devmarket.infrastructure.database.orm_models import Escrow, Order
from devmarket.infrastructure.database.repositories import (
    EscrowRepository,
    OrderRepository,
    ProductRepository,
)
from devmarket.logging_config import get_logger
from devmarket.services.request_service import RequestService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from devmarket.schemas.settlement import OrderPaidInput

logger = get_logger(__name__)


class PaymentCaptureService:
    """Applies payment provider callbacks to escrows and orders."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._escrows = EscrowRepository(session)
        self._orders = OrderRepository(session)
        self._products = ProductRepository(session)
        self._requests = RequestService(session)

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    async def escrow_funded(self, escrow_id: uuid.UUID, payment_reference: str) -> Escrow:
        now = datetime.now(UTC)
        escrow = await self._transition_escrow(
            escrow_id,
            "capture",
            payment_reference=payment_reference,
            funded_at=now,
        )
        logger.info("escrow.funded", escrow_id=str(escrow_id), payment_reference=payment_reference)
        return escrow

    async def escrow_released(self, escrow_id: uuid.UUID) -> Escrow:
        """Release funds to the seller and complete the request."""
        escrow = await self._transition_escrow(escrow_id, "release", closed_at=datetime.now(UTC))
        await self._requests.complete(escrow.request_id)
        logger.info("escrow.released", escrow_id=str(escrow_id), request_id=str(escrow.request_id))
        return escrow

    async def escrow_refunded(self, escrow_id: uuid.UUID) -> Escrow:
        escrow = await self._transition_escrow(escrow_id, "refund", closed_at=datetime.now(UTC))
        logger.info("escrow.refunded", escrow_id=str(escrow_id), amount=escrow.amount)
        return escrow

    async def _transition_escrow(self, escrow_id: uuid.UUID, event: str, **values) -> Escrow:
        escrow = await self._escrows.get(escrow_id)
        if escrow is None:
            raise NotFoundError("escrow", escrow_id)

        new_status = apply_event(EscrowStateMachine, escrow.status, event)
        updated = await self._escrows.compare_and_set(
            escrow_id,
            escrow.status,
            status=new_status,
            updated_at=datetime.now(UTC),
            **values,
        )
        if not updated:
            logger.warning("escrow.lost_race", escrow_id=str(escrow_id), attempted=event)
            raise ConflictError(f"escrow is no longer {escrow.status}")

        escrow = await self._escrows.reload(escrow_id)
        if escrow is None:
            raise NotFoundError("escrow", escrow_id)
        return escrow

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def order_paid(self, data: OrderPaidInput) -> Order:
        """Record a paid product sale with its platform fee fixed now.

        Replaying a callback with a known ``payment_reference`` returns the
        existing order instead of recording the sale twice.
        """
        if data.payment_reference:
            existing = await self._orders.get_by_payment_reference(data.payment_reference)
            if existing is not None:
                logger.info("order.duplicate_callback", order_id=str(existing.id))
                return existing

        product = await self._products.get(data.product_id)
        if product is None:
            raise NotFoundError("product", data.product_id)

        settings = get_settings()
        seller_level = await self._products.max_level_for_seller(product.seller_id)
        rate = fees.platform_fee_rate(
            seller_level,
            standard_rate=settings.platform_fee_rate,
            verified_rate=settings.verified_platform_fee_rate,
            verified_min_level=settings.verified_seller_min_level,
        )
        platform_fee = fees.order_platform_fee(data.amount, rate)

        order = await self._orders.add(
            Order(
                product_id=product.id,
                seller_id=product.seller_id,
                buyer_id=data.buyer_id,
                amount=data.amount,
                platform_fee_rate=rate,
                platform_fee=platform_fee,
                seller_amount=data.amount - platform_fee,
                currency=(data.currency or settings.default_currency).upper(),
                status=OrderStatus.PAID.value,
                payment_reference=data.payment_reference,
                paid_at=data.paid_at or datetime.now(UTC),
            )
        )
        logger.info(
            "order.paid",
            order_id=str(order.id),
            seller_id=product.seller_id,
            amount=data.amount,
            fee_rate=str(rate),
            seller_level=seller_level,
        )
        return order

    async def order_refunded(self, order_id: uuid.UUID) -> Order:
        order = await self._orders.get(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        if order.status != OrderStatus.PAID:
            raise ConflictError("order not paid")

        if not await self._orders.compare_and_set(
            order_id,
            OrderStatus.PAID.value,
            status=OrderStatus.REFUNDED.value,
            refunded_at=datetime.now(UTC),
        ):
            raise ConflictError("order not paid")

        logger.info("order.refunded", order_id=str(order_id), amount=order.amount)
        order = await self._orders.reload(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        return order
