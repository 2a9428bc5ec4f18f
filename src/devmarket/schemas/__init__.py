"""Pydantic API schemas."""

from devmarket.schemas.common import ErrorResponse, HealthResponse, Page, PageResponse
from devmarket.schemas.marketplace import (
    CreateProposalInput,
    CreateRequestInput,
    EscrowResponse,
    ListRequestsQuery,
    ProposalResponse,
    RequestResponse,
    SelectionResponse,
    SelectProposalInput,
    UpdateProposalInput,
    UpdateRequestInput,
)
from devmarket.schemas.settlement import (
    EscrowFundedInput,
    OrderPaidInput,
    OrderResponse,
    PayoutInput,
    PayoutOutcomeResponse,
    RunSettlementInput,
    SettlementEstimateResponse,
    SettlementResponse,
    SettlementSummaryResponse,
)
from devmarket.schemas.verification import (
    RequestVerificationInput,
    ReviewInput,
    VerificationQuery,
    VerificationResponse,
    VerifierStats,
)

__all__ = [
    "CreateProposalInput",
    "CreateRequestInput",
    "ErrorResponse",
    "EscrowFundedInput",
    "EscrowResponse",
    "HealthResponse",
    "ListRequestsQuery",
    "OrderPaidInput",
    "OrderResponse",
    "Page",
    "PageResponse",
    "PayoutInput",
    "PayoutOutcomeResponse",
    "ProposalResponse",
    "RequestResponse",
    "RequestVerificationInput",
    "ReviewInput",
    "RunSettlementInput",
    "SelectionResponse",
    "SelectProposalInput",
    "SettlementEstimateResponse",
    "SettlementResponse",
    "SettlementSummaryResponse",
    "UpdateProposalInput",
    "UpdateRequestInput",
    "VerificationQuery",
    "VerificationResponse",
    "VerifierStats",
]
