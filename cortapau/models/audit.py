"""
History (audit) model for solicitations.

Events are stored apart from the solicitation row they describe: an event
write can fail without rolling the solicitation mutation back.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from cortapau.database import Base
from cortapau.models.enums import EventKind, SolicitationStatus


class Event(Base):
    """
    Immutable history entry for one accepted mutation.

    Invariants:
    - Once written, never edited or deleted
    - Append-only, strictly ordered by created_at per solicitation
    - The first event of a solicitation is a CRIACAO event
    - STATUS_CHANGE events carry both statuses, and they differ
    """
    __tablename__ = "events"

    # Autoincrement id breaks ties between equal timestamps
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    kind = Column(SQLEnum(EventKind), nullable=False, index=True)
    description = Column(String, nullable=True)
    previous_status = Column(SQLEnum(SolicitationStatus), nullable=True)
    new_status = Column(SQLEnum(SolicitationStatus), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    solicitation_id = Column(String, ForeignKey("solicitations.id"), nullable=False, index=True)
    author_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)  # Nullable when no actor

    solicitation = relationship("Solicitation", back_populates="events")
    author = relationship("User")
