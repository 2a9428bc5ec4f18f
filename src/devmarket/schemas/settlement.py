"""Pydantic schemas for orders, settlements and payouts."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from devmarket.domain.enums import OrderStatus, SettlementStatus

# ---------------------------------------------------------------------------
# Payment capture callbacks
# ---------------------------------------------------------------------------


class EscrowFundedInput(BaseModel):
    payment_reference: str = Field(..., min_length=1, max_length=128)


class OrderPaidInput(BaseModel):
    """Reported by the payment capture flow when a product sale is paid."""

    product_id: uuid.UUID
    buyer_id: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., gt=0, description="Minor currency units")
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    payment_reference: str | None = Field(default=None, max_length=128)
    paid_at: datetime | None = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    seller_id: str
    buyer_id: str
    amount: int
    platform_fee_rate: float
    platform_fee: int
    seller_amount: int
    currency: str
    status: OrderStatus
    paid_at: datetime | None
    refunded_at: datetime | None


# ---------------------------------------------------------------------------
# Settlements
# ---------------------------------------------------------------------------


class RunSettlementInput(BaseModel):
    seller_id: str = Field(..., min_length=1, max_length=64)
    period_start: datetime
    period_end: datetime


class MonthlySettlementInput(BaseModel):
    seller_ids: list[str] = Field(..., min_length=1)
    year: int | None = Field(default=None, ge=2000, le=9999)
    month: int | None = Field(default=None, ge=1, le=12)


class SettlementItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: uuid.UUID
    order_count: int
    amount: int
    platform_fee: int
    payout_amount: int


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    seller_id: str
    period_start: datetime
    period_end: datetime
    total_amount: int
    platform_fee: int
    verification_earnings: int
    payout_amount: int
    currency: str
    status: SettlementStatus
    payout_date: datetime | None
    payout_reference: str | None
    failure_reason: str | None
    items: list[SettlementItemResponse] = Field(default_factory=list)


class SettlementEstimateResponse(BaseModel):
    seller_id: str
    period_start: datetime
    period_end: datetime
    order_count: int
    total_amount: int
    platform_fee: int
    verification_earnings: int
    payout_amount: int


class StatusTotals(BaseModel):
    count: int = 0
    amount: int = 0


class SettlementSummaryResponse(BaseModel):
    by_status: dict[SettlementStatus, StatusTotals]
    product_sales: int
    verification_earnings: int


class BatchSettlementResponse(BaseModel):
    created: list[SettlementResponse]
    skipped: list[str]


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


class PayoutInput(BaseModel):
    destination_account_ref: str = Field(..., min_length=1, max_length=128)


class PayoutOutcomeResponse(BaseModel):
    settlement: SettlementResponse
    succeeded: bool
    transfer_id: str | None = None
    error: str | None = None
