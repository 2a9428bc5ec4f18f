"""Pydantic schemas for development requests, proposals and escrow.

Input models are passed straight into the services; response models are built
from ORM rows with ``model_validate`` (``from_attributes``). Cross-field rules
that encode marketplace policy (budget ordering, price within budget) are
checked by the services, not here, so they raise the domain's typed errors.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from devmarket.domain.enums import (
    EscrowStatus,
    ProposalStatus,
    RequestCategory,
    RequestStatus,
)

# ---------------------------------------------------------------------------
# Development requests
# ---------------------------------------------------------------------------

BUYER_EDITABLE_FIELDS = (
    "title",
    "description",
    "category",
    "budget_min",
    "budget_max",
    "timeline",
    "requirements",
    "attachments",
)


class CreateRequestInput(BaseModel):
    """Body for posting a new development request."""

    title: str = Field(..., min_length=1, max_length=200, examples=["Slack approval bot"])
    description: str = Field(..., min_length=1, max_length=10_000)
    category: RequestCategory
    budget_min: int = Field(..., gt=0, description="Minor currency units")
    budget_max: int = Field(..., gt=0, description="Minor currency units")
    timeline: str = Field(..., min_length=1, max_length=100, examples=["2 weeks"])
    requirements: dict[str, Any] = Field(default_factory=dict)
    attachments: list[str] = Field(default_factory=list, max_length=20)


class UpdateRequestInput(BaseModel):
    """Partial update; only the fields that are set are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1, max_length=10_000)
    category: RequestCategory | None = None
    budget_min: int | None = Field(default=None, gt=0)
    budget_max: int | None = Field(default=None, gt=0)
    timeline: str | None = Field(default=None, min_length=1, max_length=100)
    requirements: dict[str, Any] | None = None
    attachments: list[str] | None = Field(default=None, max_length=20)

    def changes(self) -> dict[str, Any]:
        """Explicitly set, non-null fields as column values."""
        values = self.model_dump(exclude_unset=True, exclude_none=True)
        if "category" in values:
            values["category"] = RequestCategory(values["category"]).value
        return values


class ListRequestsQuery(BaseModel):
    status: RequestStatus | None = None
    category: RequestCategory | None = None
    buyer_id: str | None = None
    min_budget: int | None = Field(default=None, ge=0)
    max_budget: int | None = Field(default=None, ge=0)
    sort_by: Literal["created_at", "budget_min", "budget_max"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)


class RequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    buyer_id: str
    title: str
    description: str
    category: str
    budget_min: int
    budget_max: int
    timeline: str
    requirements: dict[str, Any]
    attachments: list[str]
    status: RequestStatus
    selected_proposal_id: uuid.UUID | None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


class CreateProposalInput(BaseModel):
    """Body for a seller's bid against a request."""

    price: int = Field(..., gt=0, description="Minor currency units")
    timeline: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=10_000)


class UpdateProposalInput(BaseModel):
    price: int | None = Field(default=None, gt=0)
    timeline: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=10_000)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class ProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_id: uuid.UUID
    seller_id: str
    price: int
    timeline: str
    description: str
    status: ProposalStatus
    selected_at: datetime | None
    created_at: datetime


# ---------------------------------------------------------------------------
# Selection / escrow
# ---------------------------------------------------------------------------


class SelectProposalInput(BaseModel):
    proposal_id: uuid.UUID


class EscrowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_id: uuid.UUID
    proposal_id: uuid.UUID
    buyer_id: str
    seller_id: str
    amount: int
    status: EscrowStatus
    payment_reference: str | None
    funded_at: datetime | None
    closed_at: datetime | None
    created_at: datetime


class SelectionResponse(BaseModel):
    request: RequestResponse
    proposal: ProposalResponse
    escrow: EscrowResponse
