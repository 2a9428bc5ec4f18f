"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Every status change goes through ``compare_and_set``: a single conditional
UPDATE that only matches while the row is still in one of the expected prior
states. It returns whether a row was affected, so a caller that lost a race
finds out without ever overwriting the winner.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import ColumnElement, exists, func, select, update

from devmarket.domain.enums import OrderStatus, ProposalStatus, VerificationStatus
from devmarket.infrastructure.database.orm_models import (
    Base,
    DevelopmentRequest,
    Escrow,
    Order,
    OutboxEvent,
    Product,
    Proposal,
    Settlement,
    Verification,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT", bound=Base)


class _Repository(Generic[ModelT]):
    """Shared get / add / compare-and-set for one mapped entity."""

    model: type[ModelT]

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, entity_id: uuid.UUID) -> ModelT | None:
        """Fetch a row by primary key."""
        return await self._session.get(self.model, entity_id)

    async def add(self, entity: ModelT) -> ModelT:
        """Insert a new row and flush so database defaults and constraints apply."""
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def add_in_savepoint(self, entity: ModelT) -> ModelT:
        """Insert under a SAVEPOINT.

        A unique-constraint violation rolls back only the savepoint and
        propagates as IntegrityError; the surrounding unit of work stays usable.
        """
        async with self._session.begin_nested():
            self._session.add(entity)
            await self._session.flush()
        return entity

    async def compare_and_set(
        self,
        entity_id: uuid.UUID,
        expected_status: str | Iterable[str],
        *criteria: ColumnElement[bool],
        **values: Any,
    ) -> bool:
        """Conditionally update a row that is still in an expected status.

        Args:
            entity_id: Primary key of the row.
            expected_status: Status (or statuses) the row must still hold.
            criteria: Extra WHERE clauses the row must satisfy.
            values: Column values to write.

        Returns:
            True if exactly one row was updated, False if the guard no longer held.
        """
        statuses = [expected_status] if isinstance(expected_status, str) else list(expected_status)
        stmt = (
            update(self.model)
            .where(self.model.id == entity_id, self.model.status.in_(statuses), *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def reload(self, entity_id: uuid.UUID) -> ModelT | None:
        """Re-read a row, overwriting whatever the identity map holds."""
        return await self._session.get(self.model, entity_id, populate_existing=True)


# --- Catalog references ---


class ProductRepository(_Repository[Product]):
    """Data access for catalog product references."""

    model = Product

    async def max_level_for_seller(self, seller_id: str) -> int:
        """Highest approved verification level across a seller's products."""
        result = await self._session.execute(
            select(func.coalesce(func.max(Product.verification_level), 0)).where(
                Product.seller_id == seller_id
            )
        )
        return int(result.scalar_one())

    async def set_verification_level(self, product_id: uuid.UUID, level: int) -> None:
        await self._session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(verification_level=level)
            .execution_options(synchronize_session=False)
        )


# --- Requests and proposals ---


_REQUEST_SORT_COLUMNS = {
    "created_at": DevelopmentRequest.created_at,
    "budget_min": DevelopmentRequest.budget_min,
    "budget_max": DevelopmentRequest.budget_max,
}


class RequestRepository(_Repository[DevelopmentRequest]):
    """Data access for development requests."""

    model = DevelopmentRequest

    async def search(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        buyer_id: str | None = None,
        min_budget: int | None = None,
        max_budget: int | None = None,
        sort_by: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[DevelopmentRequest], int]:
        """Return one page of requests plus the total match count."""
        conditions: list[ColumnElement[bool]] = []
        if status is not None:
            conditions.append(DevelopmentRequest.status == status)
        if category is not None:
            conditions.append(DevelopmentRequest.category == category)
        if buyer_id is not None:
            conditions.append(DevelopmentRequest.buyer_id == buyer_id)
        if min_budget is not None:
            conditions.append(DevelopmentRequest.budget_max >= min_budget)
        if max_budget is not None:
            conditions.append(DevelopmentRequest.budget_min <= max_budget)

        total = await self._session.scalar(
            select(func.count()).select_from(DevelopmentRequest).where(*conditions)
        )

        column = _REQUEST_SORT_COLUMNS.get(sort_by, DevelopmentRequest.created_at)
        order = column.desc() if descending else column.asc()
        result = await self._session.execute(
            select(DevelopmentRequest)
            .where(*conditions)
            .order_by(order, DevelopmentRequest.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    @staticmethod
    def no_proposals_exist(request_id: uuid.UUID) -> ColumnElement[bool]:
        """WHERE clause that holds while no proposal references the request."""
        return ~exists().where(Proposal.request_id == request_id)


class ProposalRepository(_Repository[Proposal]):
    """Data access for proposals."""

    model = Proposal

    async def list_for_request(self, request_id: uuid.UUID) -> list[Proposal]:
        """All proposals for a request, oldest first."""
        result = await self._session.execute(
            select(Proposal)
            .where(Proposal.request_id == request_id)
            .order_by(Proposal.created_at.asc(), Proposal.id)
        )
        return list(result.scalars().all())

    async def find_live(self, request_id: uuid.UUID, seller_id: str) -> Proposal | None:
        """The seller's non-withdrawn proposal for a request, if any."""
        result = await self._session.execute(
            select(Proposal).where(
                Proposal.request_id == request_id,
                Proposal.seller_id == seller_id,
                Proposal.status != ProposalStatus.WITHDRAWN.value,
            )
        )
        return result.scalars().first()


# --- Escrow ---


class EscrowRepository(_Repository[Escrow]):
    """Data access for escrow ledger entries."""

    model = Escrow

    async def get_by_request(self, request_id: uuid.UUID) -> Escrow | None:
        result = await self._session.execute(
            select(Escrow).where(Escrow.request_id == request_id)
        )
        return result.scalar_one_or_none()


# --- Verification ---


class VerificationRepository(_Repository[Verification]):
    """Data access for verification jobs."""

    model = Verification

    async def find_active_for_product(self, product_id: uuid.UUID) -> Verification | None:
        """A verification that still occupies the product, if any."""
        result = await self._session.execute(
            select(Verification).where(
                Verification.product_id == product_id,
                Verification.status.in_([s.value for s in VerificationStatus.active()]),
            )
        )
        return result.scalars().first()

    async def search(
        self,
        *,
        status: str | None = None,
        level: int | None = None,
        verifier_id: str | None = None,
        product_id: uuid.UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Verification], int]:
        conditions: list[ColumnElement[bool]] = []
        if status is not None:
            conditions.append(Verification.status == status)
        if level is not None:
            conditions.append(Verification.level == level)
        if verifier_id is not None:
            conditions.append(Verification.verifier_id == verifier_id)
        if product_id is not None:
            conditions.append(Verification.product_id == product_id)

        total = await self._session.scalar(
            select(func.count()).select_from(Verification).where(*conditions)
        )
        result = await self._session.execute(
            select(Verification)
            .where(*conditions)
            .order_by(Verification.requested_at.desc(), Verification.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def completed_for_verifier(
        self,
        verifier_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Verification]:
        """Earning verifications with ``completed_at`` in the half-open [start, end)."""
        result = await self._session.execute(
            select(Verification)
            .where(
                Verification.verifier_id == verifier_id,
                Verification.status.in_([s.value for s in VerificationStatus.earning()]),
                Verification.completed_at >= start,
                Verification.completed_at < end,
            )
            .order_by(Verification.completed_at.asc())
        )
        return list(result.scalars().all())

    async def all_for_verifier(self, verifier_id: str) -> list[Verification]:
        result = await self._session.execute(
            select(Verification).where(Verification.verifier_id == verifier_id)
        )
        return list(result.scalars().all())


# --- Orders ---


class OrderRepository(_Repository[Order]):
    """Data access for the order history the payment capture flow maintains."""

    model = Order

    async def get_by_payment_reference(self, payment_reference: str) -> Order | None:
        result = await self._session.execute(
            select(Order).where(Order.payment_reference == payment_reference)
        )
        return result.scalar_one_or_none()

    async def paid_in_period(self, seller_id: str, start: datetime, end: datetime) -> list[Order]:
        """PAID orders for a seller with ``paid_at`` in the half-open [start, end)."""
        result = await self._session.execute(
            select(Order)
            .where(
                Order.seller_id == seller_id,
                Order.status == OrderStatus.PAID.value,
                Order.paid_at >= start,
                Order.paid_at < end,
            )
            .order_by(Order.paid_at.asc())
        )
        return list(result.scalars().all())


# --- Settlements ---


class SettlementRepository(_Repository[Settlement]):
    """Data access for settlements. Items are loaded with their parent."""

    model = Settlement

    async def find_overlapping(
        self,
        seller_id: str,
        start: datetime,
        end: datetime,
    ) -> Settlement | None:
        """A settlement for the seller whose period intersects [start, end)."""
        result = await self._session.execute(
            select(Settlement).where(
                Settlement.seller_id == seller_id,
                Settlement.period_start < end,
                Settlement.period_end > start,
            )
        )
        return result.scalars().first()

    async def list_for_seller(self, seller_id: str, limit: int) -> list[Settlement]:
        """Most recent periods first."""
        result = await self._session.execute(
            select(Settlement)
            .where(Settlement.seller_id == seller_id)
            .order_by(Settlement.period_start.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def totals_by_status(self, seller_id: str | None = None) -> list[tuple[str, int, int, int, int]]:
        """Rows of (status, count, payout, product sales net, verification earnings)."""
        stmt = select(
            Settlement.status,
            func.count(Settlement.id),
            func.coalesce(func.sum(Settlement.payout_amount), 0),
            func.coalesce(func.sum(Settlement.total_amount - Settlement.platform_fee), 0),
            func.coalesce(func.sum(Settlement.verification_earnings), 0),
        ).group_by(Settlement.status)
        if seller_id is not None:
            stmt = stmt.where(Settlement.seller_id == seller_id)
        result = await self._session.execute(stmt)
        return [(row[0], int(row[1]), int(row[2]), int(row[3]), int(row[4])) for row in result.all()]


# --- Outbox ---


class OutboxRepository:
    """Data access for the notification outbox."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, event_type: str, recipients: list[str], payload: dict) -> OutboxEvent:
        """Append a notification inside the caller's unit of work."""
        event = OutboxEvent(event_type=event_type, recipients=recipients, payload=payload)
        self._session.add(event)
        await self._session.flush()
        return event

    async def pending(self, limit: int, max_attempts: int) -> list[OutboxEvent]:
        """Undelivered events that have not exhausted their attempts, oldest first."""
        result = await self._session.execute(
            select(OutboxEvent)
            .where(OutboxEvent.delivered_at.is_(None), OutboxEvent.attempts < max_attempts)
            .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_delivered(self, event: OutboxEvent) -> None:
        event.delivered_at = datetime.now(UTC)
        event.attempts += 1
        event.last_error = None
        await self._session.flush()

    async def record_failure(self, event: OutboxEvent, error: str) -> None:
        event.attempts += 1
        event.last_error = error[:2000]
        await self._session.flush()

    async def addressed_to(self, recipient: str) -> list[OutboxEvent]:
        """All events addressed to a user, oldest first."""
        result = await self._session.execute(
            select(OutboxEvent).order_by(OutboxEvent.created_at.asc(), OutboxEvent.id)
        )
        return [e for e in result.scalars().all() if recipient in (e.recipients or [])]
