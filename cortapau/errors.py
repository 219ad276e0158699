"""
Error taxonomy shared by the server and the client.

Rejections (validation, illegal transitions, conflicts) are raised before any
write. Audit and per-item reconciliation failures are recorded and logged but
never fail the operation that produced them.
"""
from enum import Enum
from typing import Optional


class RejectionReason(str, Enum):
    """Why the state machine refused a requested status."""
    ILLEGAL_TRANSITION = "illegalTransition"
    NO_CHANGE_REQUESTED = "noChangeRequested"
    MISSING_REQUIRED_FIELD = "missingRequiredField"


class CortaPauError(Exception):
    """Base class for every domain error. `message` is safe to show to callers."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(CortaPauError):
    """Malformed or missing fields. No state change."""


class IllegalTransitionError(CortaPauError):
    """
    Raised when the state machine refuses a status change.
    This is NOT a bug - it's the lifecycle rules working.
    """

    def __init__(self, message: str, reason: RejectionReason = RejectionReason.ILLEGAL_TRANSITION):
        self.reason = reason
        super().__init__(message)


class NotFoundError(CortaPauError):
    """Unknown solicitation id."""


class ConflictError(CortaPauError):
    """The caller's expected revision does not match the stored one."""

    def __init__(self, message: str, current_revision: Optional[int] = None):
        self.current_revision = current_revision
        super().__init__(message)


class AuditWriteError(CortaPauError):
    """An event append failed. Logged and swallowed; the mutation stands."""

    def __init__(self, message: str, solicitation_id: str, cause: Optional[BaseException] = None):
        self.solicitation_id = solicitation_id
        self.cause = cause
        super().__init__(message)


class PartialReconciliationError(CortaPauError):
    """One item's history could not be fetched during a reconciliation pass."""

    def __init__(self, message: str, canonical_id: str, cause: Optional[BaseException] = None):
        self.canonical_id = canonical_id
        self.cause = cause
        super().__init__(message)


class AuthenticationError(CortaPauError):
    """Invalid credentials at the auth boundary. Never retried."""


class WireDecodeError(CortaPauError, ValueError):
    """A payload carried a value outside the known wire vocabulary."""

    def __init__(self, message: str, field: str, raw_value: object = None):
        self.field = field
        self.raw_value = raw_value
        super().__init__(message)
