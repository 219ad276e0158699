"""
State machine that enforces the solicitation lifecycle.

Every status change MUST be checked here before it is written. The machine is
a pure function of (current status, requested status, accompanying fields):
it holds no session and persists nothing.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional
from cortapau.errors import IllegalTransitionError, RejectionReason
from cortapau.models.enums import (
    AttendanceOutcome,
    EventKind,
    RoutingTarget,
    SolicitationStatus
)


INITIAL_STATE = SolicitationStatus.OPEN

TERMINAL_STATES: FrozenSet[SolicitationStatus] = frozenset({
    SolicitationStatus.RESOLVED,
    SolicitationStatus.UNRESOLVED,
})

# No regression once work has started: EM_ATENDIMENTO → NOVA is not listed
ALLOWED_TRANSITIONS: Dict[SolicitationStatus, FrozenSet[SolicitationStatus]] = {
    SolicitationStatus.OPEN: frozenset({
        SolicitationStatus.IN_PROGRESS,
        SolicitationStatus.RESOLVED,
        SolicitationStatus.UNRESOLVED,
    }),
    SolicitationStatus.IN_PROGRESS: frozenset({
        SolicitationStatus.RESOLVED,
        SolicitationStatus.UNRESOLVED,
    }),
    SolicitationStatus.RESOLVED: frozenset(),
    SolicitationStatus.UNRESOLVED: frozenset(),
}


@dataclass(frozen=True)
class TransitionVerdict:
    """Result of validating a requested status."""
    accepted: bool
    reason: Optional[RejectionReason] = None
    message: Optional[str] = None

    @property
    def is_no_op(self) -> bool:
        return self.reason == RejectionReason.NO_CHANGE_REQUESTED


def is_terminal(status: SolicitationStatus) -> bool:
    return status in TERMINAL_STATES


def allowed_targets(status: SolicitationStatus) -> FrozenSet[SolicitationStatus]:
    return ALLOWED_TRANSITIONS[status]


class StateMachine:
    """Enforces status transition invariants."""

    def validate_transition(
        self,
        current: SolicitationStatus,
        requested: SolicitationStatus,
        attendance_description: Optional[str] = None
    ) -> TransitionVerdict:
        """
        Decide whether `current → requested` may be written.

        Rules:
        - requested == current is a no-op (rejected, but callers treat it as success)
        - the target must be listed in ALLOWED_TRANSITIONS; terminal states list nothing
        - CONCLUIDA requires a non-empty attendance description
        """
        if requested == current:
            return TransitionVerdict(
                accepted=False,
                reason=RejectionReason.NO_CHANGE_REQUESTED,
                message=f"Solicitation is already {current.value}."
            )

        if requested not in ALLOWED_TRANSITIONS[current]:
            if is_terminal(current):
                message = (
                    f"REFUSAL: {current.value} is a final status. "
                    f"No further status changes are accepted."
                )
            else:
                message = f"REFUSAL: Cannot move from {current.value} to {requested.value}."
            return TransitionVerdict(
                accepted=False,
                reason=RejectionReason.ILLEGAL_TRANSITION,
                message=message
            )

        # Cross-field precondition: depends on what CONCLUIDA means, not on input shape
        if requested == SolicitationStatus.RESOLVED and not (attendance_description or "").strip():
            return TransitionVerdict(
                accepted=False,
                reason=RejectionReason.MISSING_REQUIRED_FIELD,
                message="REFUSAL: Marking a solicitation as resolved requires an attendance description."
            )

        return TransitionVerdict(accepted=True)

    def ensure_transition(
        self,
        current: SolicitationStatus,
        requested: Optional[SolicitationStatus],
        attendance_description: Optional[str] = None
    ) -> bool:
        """
        Raise IllegalTransitionError for any real rejection.

        Returns True when the status actually changes, False for no request or a no-op.
        """
        if requested is None:
            return False

        verdict = self.validate_transition(current, requested, attendance_description)
        if verdict.accepted:
            return True
        if verdict.is_no_op:
            return False
        raise IllegalTransitionError(verdict.message, reason=verdict.reason)

    def classify_change(
        self,
        status_changed: bool,
        routing_target: Optional[RoutingTarget] = None,
        attendance_outcome: Optional[AttendanceOutcome] = None,
        description_supplied: bool = False
    ) -> Optional[EventKind]:
        """
        Map one mutation to exactly one event kind (highest precedence wins).

        1. status actually changed → STATUS_CHANGE
        2. routing target supplied → ENCAMINHAMENTO
        3. attendance outcome supplied → ATENDIMENTO
        4. description or attendance description supplied → ATUALIZACAO
        """
        if status_changed:
            return EventKind.STATUS_CHANGE
        if routing_target is not None:
            return EventKind.ROUTING
        if attendance_outcome is not None:
            return EventKind.ATTENDANCE
        if description_supplied:
            return EventKind.UPDATE
        return None
