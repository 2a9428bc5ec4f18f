"""Product verification REST API routes.

Routes:
    POST   /api/v1/verifications                      Request a verification
    GET    /api/v1/verifications                      List / filter
    GET    /api/v1/verifications/{id}                 Details
    POST   /api/v1/verifications/{id}/claim           Verifier claims a job
    POST   /api/v1/verifications/{id}/assign/{vid}    Admin assigns a verifier
    POST   /api/v1/verifications/{id}/unclaim         Hand a job back
    POST   /api/v1/verifications/{id}/begin           Start the review
    POST   /api/v1/verifications/{id}/review          Submit the review
    POST   /api/v1/verifications/{id}/cancel          Cancel
    GET    /api/v1/verifiers/{id}/stats               Verifier reporting
"""

from __future__ import annotations

import uuid  # noqa: TC003

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002

from devmarket.api.deps import get_caller, get_db_session, require_admin
from devmarket.domain.access import Caller  # noqa: TC001
from devmarket.schemas.common import PageResponse
from devmarket.schemas.verification import (
    RequestVerificationInput,
    ReviewInput,
    VerificationQuery,
    VerificationResponse,
    VerifierStats,
)
from devmarket.services.verification_service import VerificationService

router = APIRouter(prefix="/api/v1", tags=["Verification"])


@router.post("/verifications", response_model=VerificationResponse, status_code=201)
async def request_verification(
    body: RequestVerificationInput,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    verification = await VerificationService(session).request_verification(
        caller, body.product_id, body.level
    )
    return VerificationResponse.model_validate(verification)


@router.get("/verifications", response_model=PageResponse[VerificationResponse])
async def list_verifications(
    query: VerificationQuery = Depends(),
    _caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> PageResponse[VerificationResponse]:
    page = await VerificationService(session).list(query)
    return PageResponse[VerificationResponse](
        items=[VerificationResponse.model_validate(v) for v in page.items],
        page=page.page,
        limit=page.limit,
        total=page.total,
        total_pages=page.total_pages,
    )


@router.get("/verifications/{verification_id}", response_model=VerificationResponse)
async def get_verification(
    verification_id: uuid.UUID,
    _caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    return VerificationResponse.model_validate(await VerificationService(session).get(verification_id))


@router.post("/verifications/{verification_id}/claim", response_model=VerificationResponse)
async def claim_verification(
    verification_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    return VerificationResponse.model_validate(
        await VerificationService(session).claim(verification_id, caller)
    )


@router.post(
    "/verifications/{verification_id}/assign/{verifier_id}",
    response_model=VerificationResponse,
)
async def assign_verification(
    verification_id: uuid.UUID,
    verifier_id: str,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    return VerificationResponse.model_validate(
        await VerificationService(session).assign(verification_id, verifier_id, caller)
    )


@router.post("/verifications/{verification_id}/unclaim", response_model=VerificationResponse)
async def unclaim_verification(
    verification_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    return VerificationResponse.model_validate(
        await VerificationService(session).unclaim(verification_id, caller)
    )


@router.post("/verifications/{verification_id}/begin", response_model=VerificationResponse)
async def begin_verification(
    verification_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    return VerificationResponse.model_validate(
        await VerificationService(session).begin(verification_id, caller)
    )


@router.post("/verifications/{verification_id}/review", response_model=VerificationResponse)
async def submit_review(
    verification_id: uuid.UUID,
    body: ReviewInput,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    return VerificationResponse.model_validate(
        await VerificationService(session).submit_review(verification_id, caller, body)
    )


@router.post("/verifications/{verification_id}/cancel", response_model=VerificationResponse)
async def cancel_verification(
    verification_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerificationResponse:
    return VerificationResponse.model_validate(
        await VerificationService(session).cancel(verification_id, caller)
    )


@router.get("/verifiers/{verifier_id}/stats", response_model=VerifierStats)
async def verifier_stats(
    verifier_id: str,
    _caller: Caller = Depends(get_caller),
    session: AsyncSession = Depends(get_db_session),
) -> VerifierStats:
    return await VerificationService(session).verifier_stats(verifier_id)
