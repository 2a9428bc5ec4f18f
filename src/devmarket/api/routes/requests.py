"""Development request, proposal and selection REST API routes.

Routes:
    POST   /api/v1/requests                           Post a request
    GET    /api/v1/requests                           List / filter requests
    GET    /api/v1/requests/{id}                      Request details
    PATCH  /api/v1/requests/{id}                      Edit (until a proposal exists)
    POST   /api/v1/requests/{id}/cancel               Cancel
    POST   /api/v1/requests/{id}/proposals            Submit a proposal
    GET    /api/v1/requests/{id}/proposals            List visible proposals
    POST   /api/v1/requests/{id}/select               Select a proposal, open escrow
    GET    /api/v1/requests/{id}/escrow               Escrow for the request
    GET    /api/v1/proposals/{id}                     Proposal details
    PATCH  /api/v1/proposals/{id}                     Edit a pending proposal
    POST   /api/v1/proposals/{id}/withdraw            Withdraw
    POST   /api/v1/proposals/{id}/reject              Buyer declines
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002

from devmarket.api.deps import get_caller, get_db_session
from devmarket.domain.access import Caller  # noqa: TC001
from devmarket.schemas.common import PageResponse
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
from devmarket.services.proposal_service import ProposalService
from devmarket.services.request_service import RequestService
from devmarket.services.selection_service import SelectionService

router = APIRouter(prefix="/api/v1", tags=["Requests"])


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@router.post("/requests", response_model=RequestResponse, status_code=201, summary="Post a request")
async def create_request(
    body: CreateRequestInput,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> RequestResponse:
    request = await RequestService(session).create(caller, body)
    return RequestResponse.model_validate(request)


@router.get("/requests", response_model=PageResponse[RequestResponse], summary="List requests")
async def list_requests(
    query: ListRequestsQuery = Depends(),
    session: AsyncSession = Depends(get_db_session),
) -> PageResponse[RequestResponse]:
    page = await RequestService(session).list(query)
    return PageResponse[RequestResponse](
        items=[RequestResponse.model_validate(r) for r in page.items],
        page=page.page,
        limit=page.limit,
        total=page.total,
        total_pages=page.total_pages,
    )


@router.get("/requests/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: AsyncSession = Depends(get_db_session),
) -> RequestResponse:
    return RequestResponse.model_validate(await RequestService(session).get(request_id))


@router.patch("/requests/{request_id}", response_model=RequestResponse)
async def update_request(
    request_id: uuid.UUID,
    body: UpdateRequestInput,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> RequestResponse:
    request = await RequestService(session).update(request_id, caller, body)
    return RequestResponse.model_validate(request)


@router.post("/requests/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> RequestResponse:
    return RequestResponse.model_validate(await RequestService(session).cancel(request_id, caller))


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


@router.post(
    "/requests/{request_id}/proposals",
    response_model=ProposalResponse,
    status_code=201,
    summary="Submit a proposal",
)
async def create_proposal(
    request_id: uuid.UUID,
    body: CreateProposalInput,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ProposalResponse:
    proposal = await ProposalService(session).create(caller, request_id, body)
    return ProposalResponse.model_validate(proposal)


@router.get("/requests/{request_id}/proposals", response_model=list[ProposalResponse])
async def list_proposals(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> list[ProposalResponse]:
    proposals = await ProposalService(session).list(request_id, caller)
    return [ProposalResponse.model_validate(p) for p in proposals]


@router.get("/proposals/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ProposalResponse:
    return ProposalResponse.model_validate(await ProposalService(session).get(proposal_id, caller))


@router.patch("/proposals/{proposal_id}", response_model=ProposalResponse)
async def update_proposal(
    proposal_id: uuid.UUID,
    body: UpdateProposalInput,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ProposalResponse:
    proposal = await ProposalService(session).update(proposal_id, caller, body)
    return ProposalResponse.model_validate(proposal)


@router.post("/proposals/{proposal_id}/withdraw", response_model=ProposalResponse)
async def withdraw_proposal(
    proposal_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ProposalResponse:
    return ProposalResponse.model_validate(await ProposalService(session).withdraw(proposal_id, caller))


@router.post("/proposals/{proposal_id}/reject", response_model=ProposalResponse)
async def reject_proposal(
    proposal_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> ProposalResponse:
    return ProposalResponse.model_validate(await ProposalService(session).reject(proposal_id, caller))


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


@router.post(
    "/requests/{request_id}/select",
    response_model=SelectionResponse,
    summary="Select a proposal and open its escrow",
)
async def select_proposal(
    request_id: uuid.UUID,
    body: SelectProposalInput,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> SelectionResponse:
    result = await SelectionService(session).select(request_id, body.proposal_id, caller)
    return SelectionResponse(
        request=RequestResponse.model_validate(result.request),
        proposal=ProposalResponse.model_validate(result.proposal),
        escrow=EscrowResponse.model_validate(result.escrow),
    )


@router.get("/requests/{request_id}/escrow", response_model=EscrowResponse)
async def get_request_escrow(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> EscrowResponse:
    escrow = await SelectionService(session).get_escrow_for_request(request_id, caller)
    return EscrowResponse.model_validate(escrow)
