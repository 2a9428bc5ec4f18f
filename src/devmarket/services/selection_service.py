"""Selection Service: turns one proposal into an escrowed engagement.

``select`` runs entirely inside the caller's unit of work:

    1. request  OPEN    -> IN_PROGRESS   (conditional UPDATE, records the winner)
    2. proposal PENDING -> ACCEPTED      (conditional UPDATE)
    3. escrow   inserted PENDING         (unique per request)

Each conditional UPDATE only matches while the row is still in the state this
call observed. Two buyers' tabs racing on the same request both pass the
read-side checks, but only one UPDATE in step 1 can match; the other sees zero
rows and gets ``Conflict("request not open")``. Nothing is retried.

Sibling proposals stay PENDING in data. Every write path that touches a
proposal checks that its request is still OPEN, so they are effectively closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from devmarket.domain import access
from devmarket.domain.enums import EscrowStatus, NotificationType, ProposalStatus, RequestStatus
from devmarket.domain.exceptions import ConflictError, NotFoundError
from devmarket.domain.state_machine import (
    ProposalStateMachine,
    RequestStateMachine,
    apply_event,
)
from devmarket.infrastructure.database.orm_models import (
    DevelopmentRequest,
    Escrow,
    Proposal,
)
from devmarket.infrastructure.database.repositories import (
    EscrowRepository,
    ProposalRepository,
    RequestRepository,
)
from devmarket.logging_config import get_logger
from devmarket.services.notification_service import NotificationService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from devmarket.domain.access import Caller

logger = get_logger(__name__)


@dataclass(frozen=True)
class SelectionResult:
    request: DevelopmentRequest
    proposal: Proposal
    escrow: Escrow


class SelectionService:
    """Coordinates proposal selection and escrow creation."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._requests = RequestRepository(session)
        self._proposals = ProposalRepository(session)
        self._escrows = EscrowRepository(session)
        self._notifications = NotificationService(session)

    async def select(
        self,
        request_id: uuid.UUID,
        proposal_id: uuid.UUID,
        caller: Caller,
    ) -> SelectionResult:
        """Accept a proposal, start the request and open its escrow.

        Raises:
            NotFoundError: unknown request or proposal, or the proposal belongs
                to another request.
            ForbiddenError: caller is not the request's buyer.
            ConflictError: "request not open" (including a lost race) or
                "proposal not pending".
        """
        log = logger.bind(request_id=str(request_id), proposal_id=str(proposal_id))

        # --- Preconditions ---
        request = await self._requests.get(request_id)
        if request is None:
            raise NotFoundError("request", request_id)
        access.require(access.is_request_buyer(caller, request), "only the buyer may select a proposal")
        if request.status != RequestStatus.OPEN:
            raise ConflictError("request not open")

        proposal = await self._proposals.get(proposal_id)
        if proposal is None or proposal.request_id != request_id:
            raise NotFoundError("proposal", proposal_id)
        if proposal.status != ProposalStatus.PENDING:
            raise ConflictError("proposal not pending")

        now = datetime.now(UTC)

        # --- 1. Claim the request ---
        request_status = apply_event(RequestStateMachine, request.status, "select_proposal")
        claimed = await self._requests.compare_and_set(
            request_id,
            RequestStatus.OPEN.value,
            status=request_status,
            selected_proposal_id=proposal_id,
            updated_at=now,
        )
        if not claimed:
            log.warning("selection.lost_race")
            raise ConflictError("request not open")

        # --- 2. Accept the proposal ---
        proposal_status = apply_event(ProposalStateMachine, proposal.status, "accept")
        accepted = await self._proposals.compare_and_set(
            proposal_id,
            ProposalStatus.PENDING.value,
            status=proposal_status,
            selected_at=now,
            updated_at=now,
        )
        if not accepted:
            log.warning("selection.proposal_changed")
            raise ConflictError("proposal not pending")

        # --- 3. Open the escrow ---
        try:
            escrow = await self._escrows.add_in_savepoint(
                Escrow(
                    request_id=request_id,
                    proposal_id=proposal_id,
                    buyer_id=request.buyer_id,
                    seller_id=proposal.seller_id,
                    amount=proposal.price,
                    status=EscrowStatus.PENDING.value,
                )
            )
        except IntegrityError as err:
            log.warning("selection.escrow_exists")
            raise ConflictError("request not open") from err

        request = await self._requests.reload(request_id)
        proposal = await self._proposals.reload(proposal_id)

        await self._notifications.notify(
            NotificationType.PROPOSAL_SELECTED,
            [proposal.seller_id, request.buyer_id],
            {
                "request_id": request_id,
                "proposal_id": proposal_id,
                "escrow_id": escrow.id,
                "amount": escrow.amount,
            },
        )
        log.info(
            "selection.completed",
            escrow_id=str(escrow.id),
            seller_id=proposal.seller_id,
            amount=escrow.amount,
        )
        return SelectionResult(request=request, proposal=proposal, escrow=escrow)

    # ------------------------------------------------------------------
    # Escrow reads
    # ------------------------------------------------------------------

    async def get_escrow(self, escrow_id: uuid.UUID, caller: Caller) -> Escrow:
        escrow = await self._escrows.get(escrow_id)
        if escrow is None:
            raise NotFoundError("escrow", escrow_id)
        access.require(access.can_view_escrow(caller, escrow), "escrow not visible")
        return escrow

    async def get_escrow_for_request(self, request_id: uuid.UUID, caller: Caller) -> Escrow:
        escrow = await self._escrows.get_by_request(request_id)
        if escrow is None:
            raise NotFoundError("escrow for request", request_id)
        access.require(access.can_view_escrow(caller, escrow), "escrow not visible")
        return escrow
