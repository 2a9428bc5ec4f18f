"""Tests for caller capability predicates."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from devmarket.domain import access
from devmarket.domain.access import Caller
from devmarket.domain.enums import Role
from devmarket.domain.exceptions import ForbiddenError

BUYER = Caller("b1", Role.BUYER)
SELLER = Caller("s1", Role.SELLER)
VERIFIER = Caller("v1", Role.VERIFIER)
ADMIN = Caller("a1", Role.ADMIN)


class TestRoles:
    def test_only_sellers_propose(self) -> None:
        assert access.can_submit_proposal(SELLER)
        assert not access.can_submit_proposal(BUYER)
        assert not access.can_submit_proposal(VERIFIER)

    def test_verifiers_and_sellers_verify(self) -> None:
        assert access.can_verify(VERIFIER)
        assert access.can_verify(SELLER)
        assert not access.can_verify(BUYER)

    def test_verifier_cannot_post_request(self) -> None:
        assert not access.can_post_request(VERIFIER)

    def test_system_caller_is_admin(self) -> None:
        assert access.is_admin(Caller.system())


class TestOwnership:
    def test_escrow_visible_to_parties_and_admin(self) -> None:
        escrow = SimpleNamespace(buyer_id="b1", seller_id="s1")
        assert access.can_view_escrow(BUYER, escrow)
        assert access.can_view_escrow(SELLER, escrow)
        assert access.can_view_escrow(ADMIN, escrow)
        assert not access.can_view_escrow(VERIFIER, escrow)

    def test_unassigned_verification_has_no_assignee(self) -> None:
        assert not access.is_verification_assignee(VERIFIER, SimpleNamespace(verifier_id=None))


class TestRequire:
    def test_raises_forbidden_with_code(self) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            access.require(False, "nope", code="SELF_PROPOSAL")
        assert exc_info.value.code == "SELF_PROPOSAL"

    def test_passes(self) -> None:
        access.require(True)
