"""Caller identity and capability predicates.

The upstream auth layer has already verified who the caller is; every service
operation receives that identity as a ``Caller`` value. The predicates below are
the only place role names are compared. Services combine them with
``require``, which turns a failed check into a ForbiddenError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from devmarket.domain.enums import Role
from devmarket.domain.exceptions import ForbiddenError


@dataclass(frozen=True)
class Caller:
    """An authenticated (caller_id, role) pair."""

    caller_id: str
    role: Role

    @classmethod
    def system(cls) -> Caller:
        """Identity used by scheduled jobs and payment callbacks."""
        return cls(caller_id="SYSTEM", role=Role.ADMIN)


class _HasBuyer(Protocol):
    buyer_id: str


class _HasSeller(Protocol):
    seller_id: str


class _HasVerifier(Protocol):
    verifier_id: str | None


def is_admin(caller: Caller) -> bool:
    return caller.role == Role.ADMIN


def is_request_buyer(caller: Caller, request: _HasBuyer) -> bool:
    return caller.caller_id == request.buyer_id


def is_proposal_seller(caller: Caller, proposal: _HasSeller) -> bool:
    return caller.caller_id == proposal.seller_id


def is_product_owner(caller: Caller, product: _HasSeller) -> bool:
    return caller.caller_id == product.seller_id


def can_post_request(caller: Caller) -> bool:
    """Buyers post requests; sellers may also buy custom work."""
    return caller.role in (Role.BUYER, Role.SELLER, Role.ADMIN)


def can_submit_proposal(caller: Caller) -> bool:
    return caller.role == Role.SELLER


def can_verify(caller: Caller) -> bool:
    """Dedicated verifiers and sellers acting as verifiers may claim jobs."""
    return caller.role in (Role.VERIFIER, Role.SELLER, Role.ADMIN)


def is_verification_assignee(caller: Caller, verification: _HasVerifier) -> bool:
    return verification.verifier_id is not None and caller.caller_id == verification.verifier_id


def can_view_escrow(caller: Caller, escrow: object) -> bool:
    return is_admin(caller) or caller.caller_id in (
        getattr(escrow, "buyer_id", None),
        getattr(escrow, "seller_id", None),
    )


def can_view_settlement(caller: Caller, settlement: _HasSeller) -> bool:
    return is_admin(caller) or caller.caller_id == settlement.seller_id


def require(condition: bool, message: str = "forbidden", code: str = "FORBIDDEN") -> None:
    """Raise ForbiddenError unless ``condition`` holds."""
    if not condition:
        raise ForbiddenError(message, code=code)
