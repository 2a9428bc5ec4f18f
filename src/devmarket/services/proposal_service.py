"""Proposal Service: seller bids against development requests.

One live (non-withdrawn) proposal per seller per request. The service checks it
up front for a clear error and the partial unique index backs it up: if two
submissions from the same seller race, the loser's flush raises an
IntegrityError that is reported as the same "duplicate proposal" conflict.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from devmarket.domain import access
from devmarket.domain.enums import NotificationType, ProposalStatus, RequestStatus
from devmarket.domain.exceptions import (
    BusinessRuleError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from devmarket.domain.state_machine import ProposalStateMachine, apply_event
from devmarket.infrastructure.database.orm_models import DevelopmentRequest, Proposal
from devmarket.infrastructure.database.repositories import ProposalRepository, RequestRepository
from devmarket.logging_config import get_logger
from devmarket.services.notification_service import NotificationService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from devmarket.domain.access import Caller
    from devmarket.schemas.marketplace import CreateProposalInput, UpdateProposalInput

logger = get_logger(__name__)


class ProposalService:
    """Manages proposals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._requests = RequestRepository(session)
        self._proposals = ProposalRepository(session)
        self._notifications = NotificationService(session)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def create(
        self,
        caller: Caller,
        request_id: uuid.UUID,
        data: CreateProposalInput,
    ) -> Proposal:
        """Submit a proposal.

        Checks, in order: seller role, request exists, not the buyer's own
        request, request OPEN, no live proposal from this seller, price within
        the buyer's budget.
        """
        access.require(access.can_submit_proposal(caller), "only sellers may submit proposals")
        request = await self._get_request(request_id)
        if access.is_request_buyer(caller, request):
            raise ForbiddenError("cannot propose on your own request", code="SELF_PROPOSAL")
        if request.status != RequestStatus.OPEN:
            raise ConflictError("request not open")
        if await self._proposals.find_live(request_id, caller.caller_id) is not None:
            raise ConflictError("duplicate proposal")
        _check_price(request, data.price)

        proposal = Proposal(
            request_id=request_id,
            seller_id=caller.caller_id,
            price=data.price,
            timeline=data.timeline,
            description=data.description,
            status=ProposalStatus.PENDING.value,
        )
        try:
            proposal = await self._proposals.add_in_savepoint(proposal)
        except IntegrityError as err:
            logger.info(
                "proposal.duplicate_race",
                request_id=str(request_id),
                seller_id=caller.caller_id,
            )
            raise ConflictError("duplicate proposal") from err

        await self._notifications.notify(
            NotificationType.PROPOSAL_SUBMITTED,
            [request.buyer_id, caller.caller_id],
            {
                "request_id": request_id,
                "proposal_id": proposal.id,
                "price": proposal.price,
                "request_title": request.title,
            },
        )
        logger.info(
            "proposal.created",
            proposal_id=str(proposal.id),
            request_id=str(request_id),
            seller_id=caller.caller_id,
            price=data.price,
        )
        return proposal

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get(self, proposal_id: uuid.UUID, caller: Caller) -> Proposal:
        """Visible to its seller, the request's buyer and admins."""
        proposal = await self._get_proposal(proposal_id)
        if access.is_proposal_seller(caller, proposal) or access.is_admin(caller):
            return proposal
        request = await self._get_request(proposal.request_id)
        access.require(access.is_request_buyer(caller, request), "proposal not visible")
        return proposal

    async def list(self, request_id: uuid.UUID, caller: Caller) -> list[Proposal]:
        """Buyer and admins see every proposal; others see their own plus the winner."""
        request = await self._get_request(request_id)
        proposals = await self._proposals.list_for_request(request_id)
        if access.is_request_buyer(caller, request) or access.is_admin(caller):
            return proposals
        return [
            p
            for p in proposals
            if access.is_proposal_seller(caller, p) or p.status == ProposalStatus.ACCEPTED
        ]

    # ------------------------------------------------------------------
    # Seller edits
    # ------------------------------------------------------------------

    async def update(
        self,
        proposal_id: uuid.UUID,
        caller: Caller,
        patch: UpdateProposalInput,
    ) -> Proposal:
        """Edit a PENDING proposal on an OPEN request (owning seller only)."""
        proposal = await self._get_proposal(proposal_id)
        access.require(access.is_proposal_seller(caller, proposal), "only the seller may edit a proposal")
        if proposal.status != ProposalStatus.PENDING:
            raise ConflictError("proposal not pending")
        request = await self._get_request(proposal.request_id)
        if request.status != RequestStatus.OPEN:
            raise ConflictError("request not open")

        changes = patch.changes()
        if not changes:
            return proposal
        if "price" in changes:
            _check_price(request, changes["price"])

        changes["updated_at"] = datetime.now(UTC)
        if not await self._proposals.compare_and_set(proposal_id, ProposalStatus.PENDING.value, **changes):
            raise ConflictError("proposal not pending")

        logger.info("proposal.updated", proposal_id=str(proposal_id), fields=sorted(changes))
        return await self._reload(proposal_id)

    async def withdraw(self, proposal_id: uuid.UUID, caller: Caller) -> Proposal:
        """PENDING -> WITHDRAWN. Frees the seller to propose again."""
        proposal = await self._get_proposal(proposal_id)
        access.require(access.is_proposal_seller(caller, proposal), "only the seller may withdraw a proposal")
        await self._transition(proposal, "withdraw")
        logger.info("proposal.withdrawn", proposal_id=str(proposal_id), request_id=str(proposal.request_id))
        return await self._reload(proposal_id)

    async def reject(self, proposal_id: uuid.UUID, caller: Caller) -> Proposal:
        """The request's buyer declines a PENDING proposal while still choosing."""
        proposal = await self._get_proposal(proposal_id)
        request = await self._get_request(proposal.request_id)
        access.require(access.is_request_buyer(caller, request), "only the buyer may reject a proposal")
        if request.status != RequestStatus.OPEN:
            raise ConflictError("request not open")
        await self._transition(proposal, "reject")
        logger.info("proposal.rejected", proposal_id=str(proposal_id), request_id=str(request.id))
        return await self._reload(proposal_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _transition(self, proposal: Proposal, event: str) -> None:
        new_status = apply_event(ProposalStateMachine, proposal.status, event)
        updated = await self._proposals.compare_and_set(
            proposal.id,
            ProposalStatus.PENDING.value,
            status=new_status,
            updated_at=datetime.now(UTC),
        )
        if not updated:
            raise ConflictError("proposal not pending")

    async def _get_request(self, request_id: uuid.UUID) -> DevelopmentRequest:
        request = await self._requests.get(request_id)
        if request is None:
            raise NotFoundError("request", request_id)
        return request

    async def _get_proposal(self, proposal_id: uuid.UUID) -> Proposal:
        proposal = await self._proposals.get(proposal_id)
        if proposal is None:
            raise NotFoundError("proposal", proposal_id)
        return proposal

    async def _reload(self, proposal_id: uuid.UUID) -> Proposal:
        proposal = await self._proposals.reload(proposal_id)
        if proposal is None:
            raise NotFoundError("proposal", proposal_id)
        return proposal


def _check_price(request: DevelopmentRequest, price: int) -> None:
    if not request.budget_min <= price <= request.budget_max:
        raise BusinessRuleError("price out of range")
