"""Pydantic schemas for product verification."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from devmarket.domain.enums import VerificationStatus


class RequestVerificationInput(BaseModel):
    product_id: uuid.UUID
    level: int = Field(..., description="0 automated, 1-3 manual review")


class ReviewInput(BaseModel):
    """A verifier's manual review.

    ``score`` is range-checked by the workflow so an out-of-range value is
    reported as the domain's validation error.
    """

    approved: bool
    score: int
    comments: str = Field(default="", max_length=10_000)
    badges: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class VerificationQuery(BaseModel):
    status: VerificationStatus | None = None
    level: int | None = Field(default=None, ge=0, le=3)
    verifier_id: str | None = None
    product_id: uuid.UUID | None = None
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)


class VerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    seller_id: str
    verifier_id: str | None
    level: int
    status: VerificationStatus
    fee: int
    platform_share: int
    verifier_share: int
    score: int | None
    report: dict[str, Any] | None
    requested_at: datetime
    assigned_at: datetime | None
    completed_at: datetime | None


class VerifierStats(BaseModel):
    """Reporting figures for one verifier."""

    verifier_id: str
    assigned: int = 0
    completed: int = 0
    approved: int = 0
    rejected: int = 0
    total_earnings: int = 0
    average_turnaround_hours: float | None = None
