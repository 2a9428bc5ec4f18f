"""Domain enumerations for the development marketplace.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class RequestStatus(enum.StrEnum):
    """Lifecycle states of a development request.

    See domain/state_machine.py for the transition table.
    """

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ProposalStatus(enum.StrEnum):
    """Lifecycle states of a seller's proposal."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of the escrow created when a proposal is accepted.

    RELEASED and REFUNDED are terminal and never regress.
    """

    PENDING = "PENDING"
    FUNDED = "FUNDED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


class VerificationStatus(enum.StrEnum):
    """Lifecycle states of a product verification job."""

    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @classmethod
    def active(cls) -> tuple["VerificationStatus", ...]:
        """Statuses in which a verification still occupies its product."""
        return (cls.PENDING, cls.ASSIGNED, cls.IN_PROGRESS, cls.COMPLETED)

    @classmethod
    def earning(cls) -> tuple["VerificationStatus", ...]:
        """Statuses that count towards a verifier's settlement income."""
        return (cls.APPROVED, cls.COMPLETED)


class SettlementStatus(enum.StrEnum):
    """Lifecycle states of a periodic seller settlement."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    FAILED = "FAILED"


class OrderStatus(enum.StrEnum):
    """States of a product order as reported by the payment capture flow."""

    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class Role(enum.StrEnum):
    """Roles supplied by the upstream auth layer alongside the caller id."""

    BUYER = "BUYER"
    SELLER = "SELLER"
    VERIFIER = "VERIFIER"
    ADMIN = "ADMIN"


class RequestCategory(enum.StrEnum):
    """Categories a development request can be filed under."""

    N8N = "n8n"
    MAKE = "make"
    AI_AGENT = "ai_agent"
    APP = "app"
    API = "api"
    PROMPT = "prompt"


class NotificationType(enum.StrEnum):
    """Events handed to the external notification system via the outbox.

    Delivery is best-effort; a failed delivery never fails the transition
    that produced the event.
    """

    REQUEST_CREATED = "REQUEST_CREATED"
    PROPOSAL_SUBMITTED = "PROPOSAL_SUBMITTED"
    PROPOSAL_SELECTED = "PROPOSAL_SELECTED"
    VERIFICATION_ASSIGNED = "VERIFICATION_ASSIGNED"
    VERIFICATION_COMPLETED = "VERIFICATION_COMPLETED"
    SETTLEMENT_PAID = "SETTLEMENT_PAID"
