"""Verification Service: product verification workflow.

Flow for manual levels (1-3):

    request_verification -> PENDING (fee fixed, 70/30 split stored)
    claim / assign       -> ASSIGNED (conditional UPDATE, one winner)
    begin                -> IN_PROGRESS
    submit_review        -> COMPLETED -> APPROVED | REJECTED

Level 0 never waits for a human: the automated suite runs synchronously and
the record is written already finalized (COMPLETED -> APPROVED | REJECTED,
fee 0, score from the suite).

A manual approval sets the product's verification level to the verification's
level; a manual rejection resets it to 0. Level 0 leaves the product level
alone. That level drives the sale fee discount, which is fixed per order when
the payment is captured.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from devmarket.config import get_settings
from devmarket.domain import access, fees
from devmarket.domain.enums import NotificationType, VerificationStatus
from devmarket.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from devmarket.domain.state_machine import VerificationStateMachine, apply_event
from devmarket.domain.verifier_protocol import ProductFile, ProductSnapshot
from devmarket.infrastructure.database.orm_models import Product, Verification
from devmarket.infrastructure.database.repositories import (
    ProductRepository,
    VerificationRepository,
)
from devmarket.logging_config import get_logger
from devmarket.schemas.common import Page
from devmarket.schemas.verification import VerifierStats
from devmarket.services.notification_service import NotificationService
from devmarket.verifiers import Level0Suite

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from devmarket.domain.access import Caller
    from devmarket.schemas.verification import ReviewInput, VerificationQuery

logger = get_logger(__name__)


class VerificationService:
    """Runs the verification state machine against storage."""

    def __init__(self, session: AsyncSession, suite: Level0Suite | None = None) -> None:
        self._session = session
        self._verifications = VerificationRepository(session)
        self._products = ProductRepository(session)
        self._notifications = NotificationService(session)
        self._suite = suite or Level0Suite()

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    async def request_verification(
        self,
        caller: Caller,
        product_id: uuid.UUID,
        level: int,
    ) -> Verification:
        """Open a verification for a product the caller owns.

        Raises:
            InvalidInputError: level outside 0-3.
            NotFoundError: unknown product.
            ForbiddenError: caller does not own the product.
            ConflictError: "verification already active" for this product.
        """
        settings = get_settings()
        fee = fees.verification_fee(level, settings.verification_fee_table)

        product = await self._get_product(product_id)
        if not (access.is_product_owner(caller, product) or access.is_admin(caller)):
            raise ForbiddenError("only the product owner may request verification")
        if await self._verifications.find_active_for_product(product_id) is not None:
            raise ConflictError("verification already active")

        if level == fees.AUTOMATED_LEVEL:
            return await self._run_automated(product)

        split = fees.split_verification_fee(fee, settings.verifier_share_rate)
        verification = await self._verifications.add(
            Verification(
                product_id=product_id,
                seller_id=product.seller_id,
                level=level,
                status=VerificationStatus.PENDING.value,
                fee=split.fee,
                verifier_share=split.verifier_share,
                platform_share=split.platform_share,
            )
        )
        logger.info(
            "verification.requested",
            verification_id=str(verification.id),
            product_id=str(product_id),
            level=level,
            fee=split.fee,
            verifier_share=split.verifier_share,
        )
        return verification

    async def _run_automated(self, product: Product) -> Verification:
        report = self._suite.run(_snapshot(product))
        completed = apply_event(VerificationStateMachine, VerificationStatus.PENDING.value, "auto_complete")
        final = apply_event(VerificationStateMachine, completed, "approve" if report.passed else "reject")
        now = datetime.now(UTC)

        verification = await self._verifications.add(
            Verification(
                product_id=product.id,
                seller_id=product.seller_id,
                level=fees.AUTOMATED_LEVEL,
                status=final,
                fee=0,
                verifier_share=0,
                platform_share=0,
                score=report.score,
                report={"automated": report.to_dict()},
                requested_at=now,
                completed_at=now,
            )
        )
        await self._notifications.notify(
            NotificationType.VERIFICATION_COMPLETED,
            [product.seller_id],
            {
                "verification_id": verification.id,
                "product_id": product.id,
                "level": 0,
                "status": final,
                "score": report.score,
            },
        )
        logger.info(
            "verification.automated_completed",
            verification_id=str(verification.id),
            product_id=str(product.id),
            passed=report.passed,
            score=report.score,
        )
        return verification

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    async def claim(self, verification_id: uuid.UUID, caller: Caller) -> Verification:
        """A verifier takes a PENDING job. Exactly one concurrent claim wins."""
        access.require(access.can_verify(caller), "role may not verify products")
        return await self._assign(verification_id, caller.caller_id)

    async def assign(
        self,
        verification_id: uuid.UUID,
        verifier_id: str,
        caller: Caller,
    ) -> Verification:
        """Admin hands a PENDING job to a specific verifier."""
        access.require(access.is_admin(caller), "only admins may assign verifications")
        return await self._assign(verification_id, verifier_id)

    async def _assign(self, verification_id: uuid.UUID, verifier_id: str) -> Verification:
        verification = await self._get(verification_id)
        if verification.level == fees.AUTOMATED_LEVEL:
            raise ConflictError("automated verifications cannot be claimed")
        if verification.status != VerificationStatus.PENDING:
            raise ConflictError("already claimed")
        if verifier_id == verification.seller_id:
            raise ForbiddenError("cannot verify your own product", code="SELF_VERIFICATION")

        new_status = apply_event(VerificationStateMachine, verification.status, "assign")
        now = datetime.now(UTC)
        claimed = await self._verifications.compare_and_set(
            verification_id,
            VerificationStatus.PENDING.value,
            status=new_status,
            verifier_id=verifier_id,
            assigned_at=now,
            updated_at=now,
        )
        if not claimed:
            logger.warning("verification.lost_claim_race", verification_id=str(verification_id))
            raise ConflictError("already claimed")

        verification = await self._reload(verification_id)
        await self._notifications.notify(
            NotificationType.VERIFICATION_ASSIGNED,
            [verifier_id, verification.seller_id],
            {
                "verification_id": verification_id,
                "product_id": verification.product_id,
                "level": verification.level,
            },
        )
        logger.info(
            "verification.assigned",
            verification_id=str(verification_id),
            verifier_id=verifier_id,
            level=verification.level,
        )
        return verification

    async def unclaim(self, verification_id: uuid.UUID, caller: Caller) -> Verification:
        """The assignee hands an ASSIGNED job back to the pool."""
        verification = await self._get(verification_id)
        access.require(
            access.is_verification_assignee(caller, verification),
            "only the assigned verifier may release a verification",
        )
        await self._transition(
            verification, "unclaim", verifier_id=None, assigned_at=None
        )
        logger.info("verification.unclaimed", verification_id=str(verification_id))
        return await self._reload(verification_id)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def begin(self, verification_id: uuid.UUID, caller: Caller) -> Verification:
        verification = await self._get(verification_id)
        access.require(
            access.is_verification_assignee(caller, verification),
            "only the assigned verifier may start the review",
        )
        await self._transition(verification, "begin")
        logger.info("verification.started", verification_id=str(verification_id))
        return await self._reload(verification_id)

    async def submit_review(
        self,
        verification_id: uuid.UUID,
        caller: Caller,
        review: ReviewInput,
    ) -> Verification:
        """Record the review and finalize to APPROVED or REJECTED.

        An ASSIGNED verification is treated as implicitly begun.
        """
        verification = await self._get(verification_id)
        access.require(
            access.is_verification_assignee(caller, verification),
            "only the assigned verifier may submit a review",
        )
        if not 0 <= review.score <= 100:
            raise InvalidInputError("score must be between 0 and 100", field="score")

        status = verification.status
        if status == VerificationStatus.ASSIGNED:
            status = apply_event(VerificationStateMachine, status, "begin")
        status = apply_event(VerificationStateMachine, status, "submit_review")
        final = apply_event(VerificationStateMachine, status, "approve" if review.approved else "reject")

        now = datetime.now(UTC)
        report = dict(verification.report or {})
        report["manual"] = {
            "approved": review.approved,
            "score": review.score,
            "comments": review.comments,
            "badges": list(review.badges),
            "improvements": list(review.improvements),
            "reviewed_by": caller.caller_id,
            "reviewed_at": now.isoformat(),
        }
        await self._compare_and_set(
            verification,
            final,
            verification.status,
            score=review.score,
            report=report,
            completed_at=now,
        )
        await self._products.set_verification_level(
            verification.product_id,
            verification.level if review.approved else 0,
        )

        verification = await self._reload(verification_id)
        await self._notifications.notify(
            NotificationType.VERIFICATION_COMPLETED,
            [verification.seller_id],
            {
                "verification_id": verification_id,
                "product_id": verification.product_id,
                "level": verification.level,
                "status": final,
                "score": review.score,
            },
        )
        logger.info(
            "verification.completed",
            verification_id=str(verification_id),
            verifier_id=caller.caller_id,
            status=final,
            score=review.score,
        )
        return verification

    async def cancel(self, verification_id: uuid.UUID, caller: Caller) -> Verification:
        """Product owner or admin withdraws an unfinished verification."""
        verification = await self._get(verification_id)
        product = await self._get_product(verification.product_id)
        if not (access.is_product_owner(caller, product) or access.is_admin(caller)):
            raise ForbiddenError("only the product owner may cancel a verification")
        await self._transition(verification, "cancel", completed_at=datetime.now(UTC))
        logger.info("verification.cancelled", verification_id=str(verification_id))
        return await self._reload(verification_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, verification_id: uuid.UUID) -> Verification:
        return await self._get(verification_id)

    async def list(self, query: VerificationQuery) -> Page[Verification]:
        settings = get_settings()
        limit = min(query.limit or settings.default_page_size, settings.max_page_size)
        items, total = await self._verifications.search(
            status=query.status.value if query.status else None,
            level=query.level,
            verifier_id=query.verifier_id,
            product_id=query.product_id,
            offset=(query.page - 1) * limit,
            limit=limit,
        )
        return Page(items=items, page=query.page, limit=limit, total=total)

    async def completed_for_verifier(
        self,
        verifier_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Verification]:
        """Earning verifications completed by ``verifier_id`` within [start, end)."""
        return await self._verifications.completed_for_verifier(verifier_id, start, end)

    async def verifier_stats(self, verifier_id: str) -> VerifierStats:
        rows = await self._verifications.all_for_verifier(verifier_id)
        earning = {s.value for s in VerificationStatus.earning()}
        finished = [v for v in rows if v.completed_at is not None and v.status in earning | {"REJECTED"}]
        turnaround = [
            (v.completed_at - v.assigned_at).total_seconds() / 3600
            for v in finished
            if v.assigned_at is not None
        ]
        return VerifierStats(
            verifier_id=verifier_id,
            assigned=sum(
                1 for v in rows
                if v.status in (VerificationStatus.ASSIGNED, VerificationStatus.IN_PROGRESS)
            ),
            completed=len(finished),
            approved=sum(1 for v in finished if v.status == VerificationStatus.APPROVED),
            rejected=sum(1 for v in finished if v.status == VerificationStatus.REJECTED),
            total_earnings=sum(v.verifier_share for v in rows if v.status in earning),
            average_turnaround_hours=round(sum(turnaround) / len(turnaround), 2) if turnaround else None,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _transition(self, verification: Verification, event: str, **values) -> None:
        new_status = apply_event(VerificationStateMachine, verification.status, event)
        await self._compare_and_set(verification, new_status, verification.status, **values)

    async def _compare_and_set(
        self,
        verification: Verification,
        new_status: str,
        expected: str | tuple[str, ...],
        **values,
    ) -> None:
        updated = await self._verifications.compare_and_set(
            verification.id,
            expected,
            status=new_status,
            updated_at=datetime.now(UTC),
            **values,
        )
        if not updated:
            logger.warning(
                "verification.lost_race",
                verification_id=str(verification.id),
                attempted=new_status,
            )
            raise ConflictError(f"verification is no longer {verification.status}")

    async def _get(self, verification_id: uuid.UUID) -> Verification:
        verification = await self._verifications.get(verification_id)
        if verification is None:
            raise NotFoundError("verification", verification_id)
        return verification

    async def _reload(self, verification_id: uuid.UUID) -> Verification:
        verification = await self._verifications.reload(verification_id)
        if verification is None:
            raise NotFoundError("verification", verification_id)
        return verification

    async def _get_product(self, product_id: uuid.UUID) -> Product:
        product = await self._products.get(product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        return product


def _snapshot(product: Product) -> ProductSnapshot:
    return ProductSnapshot(
        product_id=str(product.id),
        name=product.name,
        description=product.description or "",
        files=tuple(
            ProductFile(
                name=f.get("name", ""),
                size=int(f.get("size", 0)),
                content_preview=f.get("content_preview", ""),
            )
            for f in (product.files or [])
        ),
        metadata={"category": product.category},
    )
