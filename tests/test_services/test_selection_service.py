"""Tests for SelectionService, including two buyers' tabs racing on one request.

The race test uses two sessions on the same SQLite file. The losing session
loads the request before the winner commits, so it still sees OPEN when it
tries to claim; its conditional UPDATE then matches zero rows.
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from devmarket.domain.enums import EscrowStatus, ProposalStatus, RequestStatus
from devmarket.domain.exceptions import ConflictError, ForbiddenError, NotFoundError
from devmarket.infrastructure.database import Escrow, OutboxRepository
from devmarket.services.proposal_service import ProposalService
from devmarket.services.request_service import RequestService
from devmarket.services.selection_service import SelectionService


class TestSelect:
    async def test_select_opens_escrow(self, session, make_request, make_proposal, buyer, seller) -> None:
        request = await make_request()
        proposal = await make_proposal(request.id, price=200_000)

        result = await SelectionService(session).select(request.id, proposal.id, buyer)

        assert result.request.status == RequestStatus.IN_PROGRESS
        assert result.request.selected_proposal_id == proposal.id
        assert result.proposal.status == ProposalStatus.ACCEPTED
        assert result.proposal.selected_at is not None
        assert result.escrow.status == EscrowStatus.PENDING
        assert result.escrow.amount == 200_000
        assert (result.escrow.buyer_id, result.escrow.seller_id) == (buyer.caller_id, seller.caller_id)

        events = await OutboxRepository(session).addressed_to(seller.caller_id)
        assert "PROPOSAL_SELECTED" in [e.event_type for e in events]

    async def test_siblings_are_closed_to_writes(
        self, session, make_request, make_proposal, buyer, rival_seller
    ) -> None:
        request = await make_request()
        winner = await make_proposal(request.id)
        sibling = await make_proposal(request.id, caller=rival_seller, price=250_000)
        await SelectionService(session).select(request.id, winner.id, buyer)

        with pytest.raises(ConflictError, match="request not open"):
            await SelectionService(session).select(request.id, sibling.id, buyer)
        with pytest.raises(ConflictError, match="request not open"):
            await ProposalService(session).reject(sibling.id, buyer)

    async def test_only_buyer_selects(self, session, make_request, make_proposal, seller) -> None:
        request = await make_request()
        proposal = await make_proposal(request.id)
        with pytest.raises(ForbiddenError):
            await SelectionService(session).select(request.id, proposal.id, seller)

    async def test_withdrawn_proposal_not_selectable(
        self, session, make_request, make_proposal, buyer, seller
    ) -> None:
        request = await make_request()
        proposal = await make_proposal(request.id)
        await ProposalService(session).withdraw(proposal.id, seller)
        with pytest.raises(ConflictError, match="proposal not pending"):
            await SelectionService(session).select(request.id, proposal.id, buyer)

    async def test_proposal_from_other_request(self, session, make_request, make_proposal, buyer) -> None:
        first = await make_request()
        second = await make_request()
        proposal = await make_proposal(first.id)
        with pytest.raises(NotFoundError):
            await SelectionService(session).select(second.id, proposal.id, buyer)

    async def test_escrow_visibility(self, session, make_request, make_proposal, buyer, rival_seller) -> None:
        request = await make_request()
        proposal = await make_proposal(request.id)
        await SelectionService(session).select(request.id, proposal.id, buyer)

        svc = SelectionService(session)
        assert (await svc.get_escrow_for_request(request.id, buyer)).proposal_id == proposal.id
        with pytest.raises(ForbiddenError):
            await svc.get_escrow_for_request(request.id, rival_seller)
        with pytest.raises(NotFoundError):
            await svc.get_escrow(uuid.uuid4(), buyer)


class TestSelectionRace:
    async def test_second_tab_loses(
        self, session_factory, make_request, make_proposal, session, buyer, rival_seller
    ) -> None:
        request = await make_request()
        first = await make_proposal(request.id)
        second = await make_proposal(request.id, caller=rival_seller, price=250_000)
        await session.commit()

        async with session_factory() as tab_a, session_factory() as tab_b:
            # Tab B reads the request while it is still OPEN.
            stale = await RequestService(tab_b).get(request.id)
            assert stale.status == RequestStatus.OPEN

            await SelectionService(tab_a).select(request.id, first.id, buyer)
            await tab_a.commit()

            with pytest.raises(ConflictError, match="request not open"):
                await SelectionService(tab_b).select(request.id, second.id, buyer)
            await tab_b.rollback()

        async with session_factory() as check:
            escrows = await check.scalar(
                select(func.count()).select_from(Escrow).where(Escrow.request_id == request.id)
            )
            current = await RequestService(check).get(request.id)
            loser = await ProposalService(check).get(second.id, buyer)

        assert escrows == 1
        assert current.status == RequestStatus.IN_PROGRESS
        assert current.selected_proposal_id == first.id
        assert loser.status == ProposalStatus.PENDING
