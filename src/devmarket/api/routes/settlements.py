"""Settlement and payout REST API routes.

Routes:
    POST   /api/v1/settlements                        Settle one seller for a period (admin)
    POST   /api/v1/settlements/monthly                Settle many sellers for a month (admin)
    GET    /api/v1/settlements/summary                Status totals and income breakdown
    GET    /api/v1/settlements/{id}                   Settlement with product lines
    POST   /api/v1/settlements/{id}/payout            Dispatch the payout (admin)
    GET    /api/v1/sellers/{id}/settlements           Recent settlements of a seller
    GET    /api/v1/sellers/{id}/settlement-estimate   Month-to-date preview
"""

from __future__ import annotations

import uuid  # noqa: TC003

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002

from devmarket.api.deps import get_caller, get_db_session, get_payout_provider, require_admin
from devmarket.domain import access
from devmarket.domain.access import Caller  # noqa: TC001
from devmarket.schemas.settlement import (
    BatchSettlementResponse,
    MonthlySettlementInput,
    PayoutInput,
    PayoutOutcomeResponse,
    RunSettlementInput,
    SettlementEstimateResponse,
    SettlementResponse,
    SettlementSummaryResponse,
)
from devmarket.services.payout_service import PayoutProvider, PayoutService  # noqa: TC001
from devmarket.services.settlement_service import SettlementService, month_period, previous_month

router = APIRouter(prefix="/api/v1", tags=["Settlements"])


@router.post("/settlements", response_model=SettlementResponse, status_code=201)
async def run_settlement(
    body: RunSettlementInput,
    _admin: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> SettlementResponse:
    settlement = await SettlementService(session).run(body.seller_id, body.period_start, body.period_end)
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/settlements/monthly",
    response_model=BatchSettlementResponse,
    summary="Settle the given sellers for a calendar month (defaults to last month)",
)
async def run_monthly_settlement(
    body: MonthlySettlementInput,
    _admin: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> BatchSettlementResponse:
    if body.year is not None and body.month is not None:
        start, end = month_period(body.year, body.month)
    else:
        start, end = previous_month()
    result = await SettlementService(session).run_for_sellers(body.seller_ids, start, end)
    return BatchSettlementResponse(
        created=[SettlementResponse.model_validate(s) for s in result.created],
        skipped=result.skipped,
    )


@router.get("/settlements/summary", response_model=SettlementSummaryResponse)
async def settlement_summary(
    seller_id: str | None = Query(default=None),
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> SettlementSummaryResponse:
    # Sellers only see their own totals; the platform-wide view is admin only.
    if seller_id is None or seller_id != caller.caller_id:
        access.require(access.is_admin(caller), "summary not visible")
    return await SettlementService(session).summary(seller_id)


@router.get("/settlements/{settlement_id}", response_model=SettlementResponse)
async def get_settlement(
    settlement_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> SettlementResponse:
    return SettlementResponse.model_validate(await SettlementService(session).get(settlement_id, caller))


@router.post("/settlements/{settlement_id}/payout", response_model=PayoutOutcomeResponse)
async def dispatch_payout(
    settlement_id: uuid.UUID,
    body: PayoutInput,
    _admin: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    provider: PayoutProvider = Depends(get_payout_provider),
) -> PayoutOutcomeResponse:
    outcome = await PayoutService(session, provider).dispatch(settlement_id, body.destination_account_ref)
    return PayoutOutcomeResponse(
        settlement=SettlementResponse.model_validate(outcome.settlement),
        succeeded=outcome.succeeded,
        transfer_id=outcome.transfer_id,
        error=outcome.error,
    )


@router.get("/sellers/{seller_id}/settlements", response_model=list[SettlementResponse])
async def list_seller_settlements(
    seller_id: str,
    limit: int = Query(default=12, ge=1),
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[SettlementResponse]:
    settlements = await SettlementService(session).list_for_seller(seller_id, caller, limit)
    return [SettlementResponse.model_validate(s) for s in settlements]


@router.get("/sellers/{seller_id}/settlement-estimate", response_model=SettlementEstimateResponse)
async def settlement_estimate(
    seller_id: str,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> SettlementEstimateResponse:
    access.require(caller.caller_id == seller_id or access.is_admin(caller), "estimate not visible")
    return await SettlementService(session).estimate(seller_id)
