"""Domain layer: pure business logic with zero framework dependencies."""

from devmarket.domain.access import Caller, require
from devmarket.domain.enums import (
    EscrowStatus,
    NotificationType,
    OrderStatus,
    ProposalStatus,
    RequestCategory,
    RequestStatus,
    Role,
    SettlementStatus,
    VerificationStatus,
)
from devmarket.domain.exceptions import (
    BusinessRuleError,
    ConflictError,
    ExternalDependencyError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    MarketplaceError,
    NotFoundError,
)
from devmarket.domain.state_machine import (
    EscrowStateMachine,
    ProposalStateMachine,
    RequestStateMachine,
    SettlementStateMachine,
    VerificationStateMachine,
    apply_event,
)
from devmarket.domain.verifier_protocol import (
    AutomatedCheck,
    CheckResult,
    ProductSnapshot,
)

__all__ = [
    "Caller",
    "require",
    "EscrowStatus",
    "NotificationType",
    "OrderStatus",
    "ProposalStatus",
    "RequestCategory",
    "RequestStatus",
    "Role",
    "SettlementStatus",
    "VerificationStatus",
    "BusinessRuleError",
    "ConflictError",
    "ExternalDependencyError",
    "ForbiddenError",
    "InvalidInputError",
    "InvalidStateTransitionError",
    "MarketplaceError",
    "NotFoundError",
    "EscrowStateMachine",
    "ProposalStateMachine",
    "RequestStateMachine",
    "SettlementStateMachine",
    "VerificationStateMachine",
    "apply_event",
    "AutomatedCheck",
    "CheckResult",
    "ProductSnapshot",
]
