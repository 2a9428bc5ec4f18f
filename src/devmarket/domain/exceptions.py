"""Domain exceptions for the development marketplace.

These exceptions are framework-agnostic. Every class carries a stable ``code``
so the API layer (and tests) can tell the kinds apart without inspecting
message text. They are translated to HTTP responses by the API middleware.
"""


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class InvalidInputError(MarketplaceError):
    """Raised for malformed or out-of-range input (score outside 0-100, ...)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class NotFoundError(MarketplaceError):
    """Raised when an id does not resolve to an entity."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = str(entity_id)


class ForbiddenError(MarketplaceError):
    """Raised when the caller lacks ownership of, or a role for, an operation."""

    def __init__(self, message: str = "forbidden", code: str = "FORBIDDEN") -> None:
        super().__init__(message=message, code=code)


# --- State Errors ---


class ConflictError(MarketplaceError):
    """Raised on a state-machine or uniqueness violation.

    Never retried automatically: the loser of a race receives this instead of
    overwriting the winner's state.
    """

    def __init__(self, message: str, code: str = "CONFLICT") -> None:
        super().__init__(message=message, code=code)


class InvalidStateTransitionError(ConflictError):
    """Raised when an attempted state transition is not allowed.

    Example: COMPLETED -> OPEN on a development request.
    """

    def __init__(self, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted = attempted


# --- Policy Errors ---


class BusinessRuleError(MarketplaceError):
    """Raised when input is well-formed but violates marketplace policy.

    Kept apart from InvalidInputError: a price outside the buyer's budget is a
    policy decision, not a malformed request.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="BUSINESS_RULE")


# --- External Errors ---


class ExternalDependencyError(MarketplaceError):
    """Raised when an external provider (payout rails) fails or is unreachable.

    Retryable: the caller may try again with backoff.
    """

    def __init__(self, message: str, provider: str = "payout", status_code: int | None = None) -> None:
        super().__init__(message=message, code="EXTERNAL_DEPENDENCY")
        self.provider = provider
        self.status_code = status_code
