"""
Solicitation service - the server-side mutation path.

Order of operations for every write:
1. reject anything that would leave stored data inconsistent (no writes yet)
2. commit the solicitation (authoritative)
3. append the history event best-effort (failures are logged, never raised)
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session
from cortapau import config
from cortapau.errors import ConflictError, NotFoundError, ValidationError
from cortapau.models.audit import Event
from cortapau.models.domain import Attachment, Solicitation, User
from cortapau.models.enums import Category
from cortapau.services.auth import get_or_create_user
from cortapau.services.event_log import (
    ChangeSet,
    EventLog,
    build_creation_event,
    build_patch_event
)
from cortapau.services.state_machine import INITIAL_STATE, StateMachine
from cortapau.services.uploads import UploadStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentInput:
    url: str
    mime: str
    size_bytes: Optional[int] = None


class SolicitationService:
    """Create, patch and read solicitations; history goes through the EventLog."""

    def __init__(
        self,
        db: Session,
        event_log: Optional[EventLog] = None,
        state_machine: Optional[StateMachine] = None,
        uploads: Optional[UploadStore] = None
    ):
        self.db = db
        self.event_log = event_log or EventLog()
        self.state_machine = state_machine or StateMachine()
        self.uploads = uploads or UploadStore()

    def create(
        self,
        title: str,
        description: str,
        category: Category,
        latitude: float,
        longitude: float,
        author_id: Optional[str] = None,
        attachments: Sequence[AttachmentInput] = ()
    ) -> Solicitation:
        """
        Create a solicitation in NOVA state plus its creation event.

        A missing author falls back to the demo citizen account.
        """
        if not -90 <= latitude <= 90:
            raise ValidationError("latitude must be within [-90, 90].")
        if not -180 <= longitude <= 180:
            raise ValidationError("longitude must be within [-180, 180].")

        author = self._resolve_author(author_id)

        solicitation = Solicitation(
            title=title,
            description=description,
            category=category,
            status=INITIAL_STATE,
            latitude=latitude,
            longitude=longitude,
            author_id=author.id,
            revision=1
        )
        for item in attachments:
            solicitation.attachments.append(Attachment(
                url=item.url,
                mime=item.mime,
                size_bytes=self._attachment_size(item)
            ))

        self.db.add(solicitation)
        self.db.commit()
        self.db.refresh(solicitation)
        logger.info(
            "Created solicitation %s (%s) with %d attachment(s)",
            solicitation.id, category.value, len(solicitation.attachments)
        )

        self.event_log.append(self.db, solicitation.id, build_creation_event(author.id))
        return solicitation

    def list(self) -> List[Solicitation]:
        """All solicitations, newest first."""
        return self.db.query(Solicitation).order_by(
            Solicitation.created_at.desc(), Solicitation.id.desc()
        ).all()

    def get(self, solicitation_id: str) -> Solicitation:
        solicitation = self.db.query(Solicitation).filter(Solicitation.id == solicitation_id).first()
        if not solicitation:
            raise NotFoundError("Solicitation not found.")
        return solicitation

    def patch(
        self,
        solicitation_id: str,
        changes: ChangeSet,
        expected_revision: Optional[int] = None
    ) -> Solicitation:
        """
        Apply a status/description/attendance patch.

        WILL REFUSE (before writing) if:
        - no recognised field was supplied
        - the solicitation does not exist
        - expected_revision was given and is stale
        - the operator is unknown
        - the state machine rejects the requested status
        """
        changes = changes.normalized()
        if changes.is_empty():
            raise ValidationError(
                "Nothing to update. Provide status, descricao or attendance data."
            )

        solicitation = self.get(solicitation_id)

        if expected_revision is not None and expected_revision != solicitation.revision:
            raise ConflictError(
                f"Solicitation changed since revision {expected_revision} "
                f"(now {solicitation.revision}).",
                current_revision=solicitation.revision
            )

        if changes.operator_id is not None:
            if not self.db.query(User).filter(User.id == changes.operator_id).first():
                raise ValidationError("operadorId does not reference a known user.")

        previous_status = solicitation.status
        status_changes = self.state_machine.ensure_transition(
            previous_status,
            changes.status,
            attendance_description=changes.attendance_description or solicitation.attendance_description
        )

        # Requested status equals current and nothing else supplied: no write, no event
        if not status_changes and changes.only_status():
            logger.debug("No-op patch on solicitation %s", solicitation.id)
            return solicitation

        if status_changes:
            solicitation.status = changes.status
        if changes.description:
            solicitation.description = changes.description
        if changes.attendance_description:
            solicitation.attendance_description = changes.attendance_description
        if changes.routing_target is not None:
            solicitation.routing_target = changes.routing_target
        if changes.attendance_outcome is not None:
            solicitation.attendance_outcome = changes.attendance_outcome
        solicitation.revision = solicitation.revision + 1
        solicitation.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(solicitation)

        draft = build_patch_event(previous_status, solicitation.status, changes, self.state_machine)
        if draft is not None:
            self.event_log.append(self.db, solicitation.id, draft)
            # The append may have rolled the session back; reload the committed row
            self.db.refresh(solicitation)

        return solicitation

    def history(self, solicitation_id: str) -> List[Event]:
        """Events of an existing solicitation, oldest first."""
        self.get(solicitation_id)
        return self.event_log.history(self.db, solicitation_id)

    def _resolve_author(self, author_id: Optional[str]) -> User:
        if author_id:
            author = self.db.query(User).filter(User.id == author_id).first()
            if not author:
                raise ValidationError("autorId does not reference a known user.")
            return author
        return get_or_create_user(
            self.db,
            login=config.DEMO_AUTHOR_LOGIN,
            name=config.DEMO_AUTHOR_NAME
        )

    def _attachment_size(self, item: AttachmentInput) -> int:
        stored = self.uploads.size_of(item.url)
        if stored is not None:
            return stored
        return item.size_bytes or 0
