"""Tests for VerificationService: fees, claiming, reviews and level-0 automation."""

from __future__ import annotations

import pytest

from devmarket.domain.access import Caller
from devmarket.domain.enums import Role, VerificationStatus
from devmarket.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from devmarket.infrastructure.database import ProductRepository
from devmarket.schemas.verification import ReviewInput, VerificationQuery
from devmarket.services.verification_service import VerificationService


def _review(approved: bool = True, score: int = 90) -> ReviewInput:
    return ReviewInput(approved=approved, score=score, comments="Looks good.")


class TestRequest:
    @pytest.mark.parametrize(("level", "fee", "verifier", "platform"), [(1, 50, 35, 15), (2, 150, 105, 45)])
    async def test_fee_split_fixed_at_request(
        self, session, make_product, seller, level, fee, verifier, platform
    ) -> None:
        product = await make_product()
        verification = await VerificationService(session).request_verification(seller, product.id, level)
        assert verification.status == VerificationStatus.PENDING
        assert (verification.fee, verification.verifier_share, verification.platform_share) == (
            fee,
            verifier,
            platform,
        )

    async def test_invalid_level(self, session, make_product, seller) -> None:
        product = await make_product()
        with pytest.raises(InvalidInputError):
            await VerificationService(session).request_verification(seller, product.id, 4)

    async def test_only_owner(self, session, make_product, rival_seller) -> None:
        product = await make_product()
        with pytest.raises(ForbiddenError):
            await VerificationService(session).request_verification(rival_seller, product.id, 1)

    async def test_one_active_verification_per_product(self, session, make_product, seller) -> None:
        product = await make_product()
        svc = VerificationService(session)
        await svc.request_verification(seller, product.id, 1)
        with pytest.raises(ConflictError, match="verification already active"):
            await svc.request_verification(seller, product.id, 2)


class TestLevelZero:
    async def test_clean_product_approved_immediately(self, session, make_product, seller) -> None:
        product = await make_product()
        verification = await VerificationService(session).request_verification(seller, product.id, 0)

        assert verification.status == VerificationStatus.APPROVED
        assert verification.fee == 0
        assert verification.score == 100
        assert verification.completed_at is not None
        assert verification.report["automated"]["passed"] is True

    async def test_failing_product_rejected(self, session, make_product, seller) -> None:
        product = await make_product(files=[{"name": "setup.exe", "size": 10}])
        verification = await VerificationService(session).request_verification(seller, product.id, 0)
        assert verification.status == VerificationStatus.REJECTED
        assert verification.score == 75

    async def test_does_not_change_product_level(self, session, make_product, seller) -> None:
        product = await make_product(verification_level=2)
        await VerificationService(session).request_verification(seller, product.id, 0)
        assert (await ProductRepository(session).reload(product.id)).verification_level == 2

    async def test_cannot_be_claimed(self, session, make_product, seller, verifier) -> None:
        product = await make_product()
        verification = await VerificationService(session).request_verification(seller, product.id, 0)
        with pytest.raises(ConflictError):
            await VerificationService(session).claim(verification.id, verifier)


class TestClaim:
    async def test_claim_assigns(self, session, make_product, seller, verifier) -> None:
        product = await make_product()
        svc = VerificationService(session)
        pending = await svc.request_verification(seller, product.id, 1)

        claimed = await svc.claim(pending.id, verifier)
        assert claimed.status == VerificationStatus.ASSIGNED
        assert claimed.verifier_id == verifier.caller_id
        assert claimed.assigned_at is not None

    async def test_second_claim_conflicts(self, session, make_product, seller, verifier) -> None:
        product = await make_product()
        svc = VerificationService(session)
        pending = await svc.request_verification(seller, product.id, 1)
        await svc.claim(pending.id, verifier)

        with pytest.raises(ConflictError, match="already claimed"):
            await svc.claim(pending.id, Caller("verifier-2", Role.VERIFIER))

    async def test_cannot_verify_own_product(self, session, make_product, seller) -> None:
        product = await make_product()
        svc = VerificationService(session)
        pending = await svc.request_verification(seller, product.id, 1)
        with pytest.raises(ForbiddenError) as exc_info:
            await svc.claim(pending.id, seller)
        assert exc_info.value.code == "SELF_VERIFICATION"

    async def test_buyer_cannot_claim(self, session, make_product, seller, buyer) -> None:
        product = await make_product()
        pending = await VerificationService(session).request_verification(seller, product.id, 1)
        with pytest.raises(ForbiddenError):
            await VerificationService(session).claim(pending.id, buyer)

    async def test_unclaim_returns_to_pool(self, session, make_product, seller, verifier) -> None:
        product = await make_product()
        svc = VerificationService(session)
        pending = await svc.request_verification(seller, product.id, 1)
        await svc.claim(pending.id, verifier)

        released = await svc.unclaim(pending.id, verifier)
        assert released.status == VerificationStatus.PENDING
        assert released.verifier_id is None

    async def test_admin_assigns(self, session, make_product, seller, admin) -> None:
        product = await make_product()
        svc = VerificationService(session)
        pending = await svc.request_verification(seller, product.id, 3)
        assigned = await svc.assign(pending.id, "verifier-9", admin)
        assert assigned.verifier_id == "verifier-9"


class TestClaimRace:
    async def test_second_verifier_loses(
        self, session_factory, session, make_product, seller, verifier
    ) -> None:
        product = await make_product()
        pending = await VerificationService(session).request_verification(seller, product.id, 1)
        await session.commit()

        async with session_factory() as tab_a, session_factory() as tab_b:
            # Tab B reads the job while it is still PENDING.
            stale = await VerificationService(tab_b).get(pending.id)
            assert stale.status == VerificationStatus.PENDING

            await VerificationService(tab_a).claim(pending.id, verifier)
            await tab_a.commit()

            with pytest.raises(ConflictError, match="already claimed"):
                await VerificationService(tab_b).claim(pending.id, Caller("verifier-2", Role.VERIFIER))
            await tab_b.rollback()

        async with session_factory() as check:
            current = await VerificationService(check).get(pending.id)

        assert current.status == VerificationStatus.ASSIGNED
        assert current.verifier_id == verifier.caller_id


class TestReview:
    async def _assigned(self, session, make_product, seller, verifier, level: int = 2):
        product = await make_product()
        svc = VerificationService(session)
        pending = await svc.request_verification(seller, product.id, level)
        await svc.claim(pending.id, verifier)
        return product, pending

    async def test_approval_sets_product_level(self, session, make_product, seller, verifier) -> None:
        product, pending = await self._assigned(session, make_product, seller, verifier)
        done = await VerificationService(session).submit_review(pending.id, verifier, _review())

        assert done.status == VerificationStatus.APPROVED
        assert done.score == 90
        assert done.report["manual"]["reviewed_by"] == verifier.caller_id
        assert (await ProductRepository(session).reload(product.id)).verification_level == 2

    async def test_rejection_resets_product_level(self, session, make_product, seller, verifier) -> None:
        product, pending = await self._assigned(session, make_product, seller, verifier)
        await ProductRepository(session).set_verification_level(product.id, 1)

        done = await VerificationService(session).submit_review(pending.id, verifier, _review(approved=False))
        assert done.status == VerificationStatus.REJECTED
        assert (await ProductRepository(session).reload(product.id)).verification_level == 0

    @pytest.mark.parametrize("score", [-1, 101])
    async def test_score_out_of_range(self, session, make_product, seller, verifier, score: int) -> None:
        _, pending = await self._assigned(session, make_product, seller, verifier)
        with pytest.raises(InvalidInputError) as exc_info:
            await VerificationService(session).submit_review(pending.id, verifier, _review(score=score))
        assert exc_info.value.field == "score"

    async def test_only_assignee_reviews(self, session, make_product, seller, verifier) -> None:
        _, pending = await self._assigned(session, make_product, seller, verifier)
        with pytest.raises(ForbiddenError):
            await VerificationService(session).submit_review(
                pending.id, Caller("verifier-2", Role.VERIFIER), _review()
            )

    async def test_cannot_review_twice(self, session, make_product, seller, verifier) -> None:
        _, pending = await self._assigned(session, make_product, seller, verifier)
        svc = VerificationService(session)
        await svc.begin(pending.id, verifier)
        await svc.submit_review(pending.id, verifier, _review())
        with pytest.raises(InvalidStateTransitionError):
            await svc.submit_review(pending.id, verifier, _review())

    async def test_owner_cancels_assigned(self, session, make_product, seller, verifier) -> None:
        _, pending = await self._assigned(session, make_product, seller, verifier)
        cancelled = await VerificationService(session).cancel(pending.id, seller)
        assert cancelled.status == VerificationStatus.CANCELLED


class TestQueries:
    async def test_list_and_stats(self, session, make_product, seller, verifier) -> None:
        svc = VerificationService(session)
        for level in (1, 2):
            product = await make_product(name=f"Workflow pack {level:02d}")
            pending = await svc.request_verification(seller, product.id, level)
            await svc.claim(pending.id, verifier)
            await svc.submit_review(pending.id, verifier, _review(approved=level == 2))

        page = await svc.list(VerificationQuery(verifier_id=verifier.caller_id))
        assert page.total == 2

        stats = await svc.verifier_stats(verifier.caller_id)
        assert (stats.completed, stats.approved, stats.rejected) == (2, 1, 1)
        assert stats.total_earnings == 105
        assert stats.average_turnaround_hours is not None
