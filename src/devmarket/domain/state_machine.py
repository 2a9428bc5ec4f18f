"""Lifecycle state machine guards.

Uses python-statemachine to enforce legal state transitions at the domain level.
Services never write a status column directly: they ask ``apply_event`` for the
next status first, then persist it with a conditional update that also checks
the previous status is still the one they observed.

Transition tables:

    DevelopmentRequest
        OPEN         -> IN_PROGRESS  (select_proposal)
        IN_PROGRESS  -> COMPLETED    (complete)
        OPEN         -> CANCELLED    (cancel)
        IN_PROGRESS  -> CANCELLED    (cancel)

    Proposal
        PENDING      -> ACCEPTED     (accept)
        PENDING      -> REJECTED     (reject)
        PENDING      -> WITHDRAWN    (withdraw)

    Escrow
        PENDING      -> FUNDED       (capture)
        FUNDED       -> RELEASED     (release)
        PENDING      -> REFUNDED     (refund)
        FUNDED       -> REFUNDED     (refund)

    Verification
        PENDING      -> ASSIGNED     (assign)
        ASSIGNED     -> PENDING      (unclaim)
        ASSIGNED     -> IN_PROGRESS  (begin)
        IN_PROGRESS  -> COMPLETED    (submit_review)
        PENDING      -> COMPLETED    (auto_complete, level 0 only)
        COMPLETED    -> APPROVED     (approve)
        COMPLETED    -> REJECTED     (reject)
        PENDING|ASSIGNED|IN_PROGRESS -> CANCELLED (cancel)

    Settlement
        PENDING      -> PROCESSING   (start_payout)
        FAILED       -> PROCESSING   (start_payout)
        PROCESSING   -> PAID         (mark_paid)
        PROCESSING   -> FAILED       (mark_failed)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from devmarket.domain.exceptions import InvalidStateTransitionError


class _StatusGuard:
    """Start a machine at a persisted status string instead of the initial state."""

    def __init__(self, current_status: str | None = None) -> None:
        valid_values = {s.value for s in self.states}
        if current_status is None:
            current_status = next(s.value for s in self.states if s.initial)
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


class RequestStateMachine(_StatusGuard, StateMachine):
    """Guards the development request lifecycle."""

    OPEN = State("OPEN", initial=True)
    IN_PROGRESS = State("IN_PROGRESS")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    select_proposal = OPEN.to(IN_PROGRESS)
    complete = IN_PROGRESS.to(COMPLETED)
    cancel = OPEN.to(CANCELLED) | IN_PROGRESS.to(CANCELLED)


class ProposalStateMachine(_StatusGuard, StateMachine):
    """Guards a proposal; only PENDING proposals can move."""

    PENDING = State("PENDING", initial=True)
    ACCEPTED = State("ACCEPTED", final=True)
    REJECTED = State("REJECTED", final=True)
    WITHDRAWN = State("WITHDRAWN", final=True)

    accept = PENDING.to(ACCEPTED)
    reject = PENDING.to(REJECTED)
    withdraw = PENDING.to(WITHDRAWN)


class EscrowStateMachine(_StatusGuard, StateMachine):
    """Guards the escrow ledger entry. RELEASED and REFUNDED never regress."""

    PENDING = State("PENDING", initial=True)
    FUNDED = State("FUNDED")
    RELEASED = State("RELEASED", final=True)
    REFUNDED = State("REFUNDED", final=True)

    capture = PENDING.to(FUNDED)
    release = FUNDED.to(RELEASED)
    refund = PENDING.to(REFUNDED) | FUNDED.to(REFUNDED)


class VerificationStateMachine(_StatusGuard, StateMachine):
    """Guards the verification workflow.

    Usage:
        sm = VerificationStateMachine("PENDING")
        sm.assign()  # transitions to ASSIGNED
        sm.status    # 'ASSIGNED'
    """

    PENDING = State("PENDING", initial=True)
    ASSIGNED = State("ASSIGNED")
    IN_PROGRESS = State("IN_PROGRESS")
    COMPLETED = State("COMPLETED")
    APPROVED = State("APPROVED", final=True)
    REJECTED = State("REJECTED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # Assignment
    assign = PENDING.to(ASSIGNED)
    unclaim = ASSIGNED.to(PENDING)

    # Review
    begin = ASSIGNED.to(IN_PROGRESS)
    submit_review = IN_PROGRESS.to(COMPLETED)
    auto_complete = PENDING.to(COMPLETED)

    # Outcome
    approve = COMPLETED.to(APPROVED)
    reject = COMPLETED.to(REJECTED)

    cancel = (
        PENDING.to(CANCELLED)
        | ASSIGNED.to(CANCELLED)
        | IN_PROGRESS.to(CANCELLED)
    )


class SettlementStateMachine(_StatusGuard, StateMachine):
    """Guards settlement payout. FAILED may be retried, PAID is terminal."""

    PENDING = State("PENDING", initial=True)
    PROCESSING = State("PROCESSING")
    PAID = State("PAID", final=True)
    FAILED = State("FAILED")

    start_payout = PENDING.to(PROCESSING) | FAILED.to(PROCESSING)
    mark_paid = PROCESSING.to(PAID)
    mark_failed = PROCESSING.to(FAILED)


def apply_event(
    machine_cls: type[StateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine at ``current_status``, fires the named
    event, and returns the resulting status string.

    Raises:
        InvalidStateTransitionError: If the transition is illegal.
        ValueError: If the status or event name is unknown.
    """
    sm = machine_cls(current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method) or event_name not in _event_names(sm):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
    return sm.status


def can_transition(machine_cls: type[StateMachine], current_status: str, target_status: str) -> bool:
    """Return True if some event leads from ``current_status`` to ``target_status``."""
    sm = machine_cls(current_status)
    return any(
        transition.target.value == target_status
        for transition in sm.current_state.transitions
    )


def _event_names(sm: StateMachine) -> set[str]:
    return {event.id for event in sm.events}
