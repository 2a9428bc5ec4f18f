"""Payment capture callback routes.

Called by the payment provider's webhook handler (authenticated upstream as an
admin/system caller), never by end users.

Routes:
    POST   /api/v1/payments/escrows/{id}/funded       Escrow payment captured
    POST   /api/v1/payments/escrows/{id}/released     Funds released to the seller
    POST   /api/v1/payments/escrows/{id}/refunded     Escrow refunded to the buyer
    POST   /api/v1/payments/orders                    Product sale paid
    POST   /api/v1/payments/orders/{id}/refunded      Product sale refunded
"""

from __future__ import annotations

import uuid  # noqa: TC003

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002

from devmarket.api.deps import get_db_session, require_admin
from devmarket.domain.access import Caller  # noqa: TC001
from devmarket.schemas.marketplace import EscrowResponse
from devmarket.schemas.settlement import EscrowFundedInput, OrderPaidInput, OrderResponse
from devmarket.services.payment_capture_service import PaymentCaptureService

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


# ---------------------------------------------------------------------------
# Escrow
# ---------------------------------------------------------------------------


@router.post("/escrows/{escrow_id}/funded", response_model=EscrowResponse)
async def escrow_funded(
    escrow_id: uuid.UUID,
    body: EscrowFundedInput,
    _system: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> EscrowResponse:
    escrow = await PaymentCaptureService(session).escrow_funded(escrow_id, body.payment_reference)
    return EscrowResponse.model_validate(escrow)


@router.post("/escrows/{escrow_id}/released", response_model=EscrowResponse)
async def escrow_released(
    escrow_id: uuid.UUID,
    _system: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> EscrowResponse:
    return EscrowResponse.model_validate(await PaymentCaptureService(session).escrow_released(escrow_id))


@router.post("/escrows/{escrow_id}/refunded", response_model=EscrowResponse)
async def escrow_refunded(
    escrow_id: uuid.UUID,
    _system: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> EscrowResponse:
    return EscrowResponse.model_validate(await PaymentCaptureService(session).escrow_refunded(escrow_id))


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@router.post("/orders", response_model=OrderResponse, status_code=201)
async def order_paid(
    body: OrderPaidInput,
    _system: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    return OrderResponse.model_validate(await PaymentCaptureService(session).order_paid(body))


@router.post("/orders/{order_id}/refunded", response_model=OrderResponse)
async def order_refunded(
    order_id: uuid.UUID,
    _system: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    return OrderResponse.model_validate(await PaymentCaptureService(session).order_refunded(order_id))
