"""Request Service: development request lifecycle.

Coordinates:
    - Domain state machine (legal status edges)
    - RequestRepository (conditional updates)
    - NotificationService (outbox)

Buyer-editable fields freeze as soon as any proposal exists. The freeze is
enforced by the UPDATE statement itself ("still OPEN and no proposal
references me"), so a proposal inserted between the check and the write
cannot be edited around.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from devmarket.config import get_settings
from devmarket.domain import access
from devmarket.domain.enums import NotificationType, RequestCategory, RequestStatus
from devmarket.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from devmarket.domain.state_machine import RequestStateMachine, apply_event, can_transition
from devmarket.infrastructure.database.orm_models import DevelopmentRequest
from devmarket.infrastructure.database.repositories import RequestRepository
from devmarket.logging_config import get_logger
from devmarket.schemas.common import Page
from devmarket.services.notification_service import NotificationService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from devmarket.domain.access import Caller
    from devmarket.schemas.marketplace import (
        CreateRequestInput,
        ListRequestsQuery,
        UpdateRequestInput,
    )

logger = get_logger(__name__)


class RequestService:
    """Manages development requests."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._requests = RequestRepository(session)
        self._notifications = NotificationService(session)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    async def create(self, caller: Caller, data: CreateRequestInput) -> DevelopmentRequest:
        """Post a new request in OPEN state; the caller becomes its buyer."""
        access.require(access.can_post_request(caller), "role may not post requests")
        _check_budget(data.budget_min, data.budget_max)

        request = await self._requests.add(
            DevelopmentRequest(
                buyer_id=caller.caller_id,
                title=data.title,
                description=data.description,
                category=RequestCategory(data.category).value,
                budget_min=data.budget_min,
                budget_max=data.budget_max,
                timeline=data.timeline,
                requirements=data.requirements,
                attachments=list(data.attachments),
                status=RequestStatus.OPEN.value,
            )
        )

        await self._notifications.notify(
            NotificationType.REQUEST_CREATED,
            [caller.caller_id],
            {"request_id": request.id, "title": request.title, "category": request.category},
        )
        logger.info(
            "request.created",
            request_id=str(request.id),
            buyer_id=caller.caller_id,
            budget_min=data.budget_min,
            budget_max=data.budget_max,
        )
        return request

    async def get(self, request_id: uuid.UUID) -> DevelopmentRequest:
        request = await self._requests.get(request_id)
        if request is None:
            raise NotFoundError("request", request_id)
        return request

    async def list(self, query: ListRequestsQuery) -> Page[DevelopmentRequest]:
        """Filtered, sorted, paginated listing. ``limit`` is capped by settings."""
        settings = get_settings()
        limit = min(query.limit or settings.default_page_size, settings.max_page_size)
        items, total = await self._requests.search(
            status=query.status.value if query.status else None,
            category=query.category.value if query.category else None,
            buyer_id=query.buyer_id,
            min_budget=query.min_budget,
            max_budget=query.max_budget,
            sort_by=query.sort_by,
            descending=query.sort_order == "desc",
            offset=(query.page - 1) * limit,
            limit=limit,
        )
        return Page(items=items, page=query.page, limit=limit, total=total)

    # ------------------------------------------------------------------
    # Buyer edits
    # ------------------------------------------------------------------

    async def update(
        self,
        request_id: uuid.UUID,
        caller: Caller,
        patch: UpdateRequestInput,
    ) -> DevelopmentRequest:
        """Apply a buyer's patch while the request is OPEN and has no proposals.

        Raises:
            ForbiddenError: caller is not the buyer.
            ConflictError: "request not open", or "request locked" once any
                proposal exists.
            InvalidInputError: merged budget has min above max.
        """
        request = await self.get(request_id)
        access.require(access.is_request_buyer(caller, request), "only the buyer may edit a request")

        changes = patch.changes()
        if not changes:
            return request
        if request.status != RequestStatus.OPEN:
            raise ConflictError("request not open")

        _check_budget(
            changes.get("budget_min", request.budget_min),
            changes.get("budget_max", request.budget_max),
        )

        updated = await self._requests.compare_and_set(
            request_id,
            RequestStatus.OPEN.value,
            RequestRepository.no_proposals_exist(request_id),
            **changes,
        )
        if not updated:
            current = await self._requests.reload(request_id)
            if current is not None and current.status != RequestStatus.OPEN:
                raise ConflictError("request not open")
            logger.info("request.update_locked", request_id=str(request_id))
            raise ConflictError("request locked")

        logger.info("request.updated", request_id=str(request_id), fields=sorted(changes))
        return await self._reload(request_id)

    async def cancel(self, request_id: uuid.UUID, caller: Caller) -> DevelopmentRequest:
        """Cancel an OPEN or IN_PROGRESS request (buyer or admin)."""
        request = await self.get(request_id)
        if not (access.is_request_buyer(caller, request) or access.is_admin(caller)):
            raise ForbiddenError("only the buyer may cancel a request")

        new_status = apply_event(RequestStateMachine, request.status, "cancel")
        await self._compare_and_set(request, new_status)
        logger.info("request.cancelled", request_id=str(request_id), previous=request.status)
        return await self._reload(request_id)

    # ------------------------------------------------------------------
    # Internal transitions
    # ------------------------------------------------------------------

    async def transition_status(
        self,
        request_id: uuid.UUID,
        new_status: RequestStatus,
    ) -> DevelopmentRequest:
        """Move a request along a legal edge, guarded on its observed status.

        Used by order-completion logic; selection has its own guarded update
        because it also records the chosen proposal.
        """
        if new_status == RequestStatus.IN_PROGRESS:
            raise ConflictError("requests enter IN_PROGRESS only through selection")
        request = await self.get(request_id)
        if not can_transition(RequestStateMachine, request.status, new_status.value):
            raise ConflictError(
                f"Invalid state transition: {request.status} -> {new_status.value}",
                code="INVALID_STATE_TRANSITION",
            )
        previous = request.status
        await self._compare_and_set(request, new_status.value)
        logger.info(
            "request.status_changed",
            request_id=str(request_id),
            old_status=previous,
            new_status=new_status.value,
        )
        return await self._reload(request_id)

    async def complete(self, request_id: uuid.UUID) -> DevelopmentRequest:
        """IN_PROGRESS -> COMPLETED once the escrow has been released."""
        return await self.transition_status(request_id, RequestStatus.COMPLETED)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _compare_and_set(self, request: DevelopmentRequest, new_status: str) -> None:
        values: dict = {"status": new_status, "updated_at": datetime.now(UTC)}
        if new_status == RequestStatus.CANCELLED:
            values["selected_proposal_id"] = None
        if not await self._requests.compare_and_set(request.id, request.status, **values):
            logger.warning(
                "request.lost_race",
                request_id=str(request.id),
                expected=request.status,
                attempted=new_status,
            )
            raise ConflictError(f"request is no longer {request.status}")

    async def _reload(self, request_id: uuid.UUID) -> DevelopmentRequest:
        request = await self._requests.reload(request_id)
        if request is None:
            raise NotFoundError("request", request_id)
        return request


def _check_budget(budget_min: int, budget_max: int) -> None:
    if budget_min <= 0 or budget_max <= 0:
        raise InvalidInputError("budget must be positive", field="budget_min")
    if budget_min > budget_max:
        raise InvalidInputError("budget_min must not exceed budget_max", field="budget_min")
