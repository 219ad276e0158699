"""
Event log: derives one history entry per accepted mutation and appends it.

Building an event is pure (`build_creation_event`, `build_patch_event`).
Appending is best-effort: the solicitation write has already been committed
when `EventLog.append` runs, and a failed append is logged, never raised.
"""
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from cortapau import config
from cortapau.errors import AuditWriteError
from cortapau.models.audit import Event
from cortapau.models.enums import (
    AttendanceOutcome,
    EventKind,
    RoutingTarget,
    SolicitationStatus
)
from cortapau.services.state_machine import INITIAL_STATE, StateMachine

logger = logging.getLogger(__name__)

DESCRIPTION_SEPARATOR = " | "
CREATION_DESCRIPTION = "Solicitation created via mobile app."


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


@dataclass(frozen=True)
class ChangeSet:
    """The raw fields supplied in a patch request (None means not supplied)."""
    status: Optional[SolicitationStatus] = None
    description: Optional[str] = None
    attendance_description: Optional[str] = None
    routing_target: Optional[RoutingTarget] = None
    attendance_outcome: Optional[AttendanceOutcome] = None
    operator_id: Optional[str] = None

    def is_empty(self) -> bool:
        """True when none of the recognised mutation fields was supplied."""
        return (
            self.status is None
            and not self.description
            and not self.attendance_description
            and self.routing_target is None
            and self.attendance_outcome is None
        )

    def only_status(self) -> bool:
        """True when the request carries a status and nothing else."""
        return self.status is not None and replace(self, status=None).is_empty()

    def normalized(self) -> "ChangeSet":
        """Trim free-text fields; blank ones count as not supplied."""
        return replace(
            self,
            description=_clean_text(self.description),
            attendance_description=_clean_text(self.attendance_description)
        )


@dataclass(frozen=True)
class EventDraft:
    """An event that has been decided on but not yet written."""
    kind: EventKind
    description: Optional[str]
    previous_status: Optional[SolicitationStatus]
    new_status: Optional[SolicitationStatus]
    author_id: Optional[str] = None


def describe_changes(changes: ChangeSet) -> Optional[str]:
    """
    Consolidated human-readable description of a patch.

    Order: routing line, outcome line, attendance description, and the plain
    description only when no attendance description was given.
    """
    parts = []
    if changes.routing_target is not None:
        parts.append(f"Routed to: {changes.routing_target.value}")
    if changes.attendance_outcome is not None:
        parts.append(f"Attendance outcome: {changes.attendance_outcome.value}")
    if changes.attendance_description:
        parts.append(changes.attendance_description)
    if changes.description and not changes.attendance_description:
        parts.append(changes.description)
    return DESCRIPTION_SEPARATOR.join(parts) if parts else None


def build_creation_event(author_id: Optional[str]) -> EventDraft:
    """Creation events bypass the precedence rule."""
    return EventDraft(
        kind=EventKind.CREATION,
        description=CREATION_DESCRIPTION,
        previous_status=None,
        new_status=INITIAL_STATE,
        author_id=author_id
    )


def build_patch_event(
    previous_status: SolicitationStatus,
    new_status: SolicitationStatus,
    changes: ChangeSet,
    state_machine: Optional[StateMachine] = None
) -> Optional[EventDraft]:
    """
    Exactly one event for a patch, or None when nothing warrants one.

    Status columns are only filled for STATUS_CHANGE events.
    """
    sm = state_machine or StateMachine()
    status_changed = previous_status != new_status
    kind = sm.classify_change(
        status_changed=status_changed,
        routing_target=changes.routing_target,
        attendance_outcome=changes.attendance_outcome,
        description_supplied=bool(changes.description or changes.attendance_description)
    )
    if kind is None:
        return None

    if kind == EventKind.STATUS_CHANGE:
        return EventDraft(
            kind=kind,
            description=describe_changes(changes),
            previous_status=previous_status,
            new_status=new_status,
            author_id=changes.operator_id
        )

    return EventDraft(
        kind=kind,
        description=describe_changes(changes),
        previous_status=None,
        new_status=None,
        author_id=changes.operator_id
    )


class EventLog:
    """Append-only history store backed by the `events` table."""

    def __init__(self, attempts: Optional[int] = None, backoff_seconds: Optional[float] = None):
        self.attempts = max(1, attempts if attempts is not None else config.AUDIT_WRITE_ATTEMPTS)
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else config.AUDIT_RETRY_BACKOFF_SECONDS
        )

    def append(self, db: Session, solicitation_id: str, draft: EventDraft) -> Optional[Event]:
        """
        Write one event. Returns None (and logs) when every attempt fails.

        Must only be called after the primary mutation has been committed.
        """
        last_error = None
        for attempt in range(1, self.attempts + 1):
            try:
                return self._write(db, solicitation_id, draft)
            except Exception as exc:
                db.rollback()
                last_error = exc
                logger.warning(
                    "Event append attempt %d/%d failed for solicitation %s: %s",
                    attempt, self.attempts, solicitation_id, exc
                )
                if attempt < self.attempts and self.backoff_seconds > 0:
                    time.sleep(self.backoff_seconds * attempt)

        error = AuditWriteError(
            f"Could not record {draft.kind.value} event",
            solicitation_id=solicitation_id,
            cause=last_error
        )
        logger.error("%s for solicitation %s; mutation kept", error.message, solicitation_id)
        return None

    def history(self, db: Session, solicitation_id: str) -> List[Event]:
        """Events of one solicitation, oldest first."""
        return db.query(Event).filter(
            Event.solicitation_id == solicitation_id
        ).order_by(Event.created_at.asc(), Event.id.asc()).all()

    def _write(self, db: Session, solicitation_id: str, draft: EventDraft) -> Event:
        event = Event(
            kind=draft.kind,
            description=draft.description,
            previous_status=draft.previous_status,
            new_status=draft.new_status,
            solicitation_id=solicitation_id,
            author_id=draft.author_id,
            created_at=self._next_timestamp(db, solicitation_id)
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    def _next_timestamp(self, db: Session, solicitation_id: str) -> datetime:
        """Now, or one microsecond past the latest event when the clock has not moved."""
        now = datetime.utcnow()
        latest = db.query(func.max(Event.created_at)).filter(
            Event.solicitation_id == solicitation_id
        ).scalar()
        if latest is not None and latest >= now:
            return latest + timedelta(microseconds=1)
        return now
