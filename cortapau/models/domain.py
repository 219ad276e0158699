"""Domain models - users, solicitations and their attachments."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from cortapau.database import Base
from cortapau.models.enums import (
    SolicitationStatus,
    Category,
    RoutingTarget,
    AttendanceOutcome,
    Role
)


def new_id() -> str:
    """Server-issued canonical identifier."""
    return uuid.uuid4().hex


class User(Base):
    """
    An actor known to the auth boundary.

    `login` doubles as the e-mail address and is what ownership falls back to
    on the client when identifiers do not match.
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    login = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(SQLEnum(Role), nullable=False, default=Role.USER)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Solicitation(Base):
    """
    A citizen-reported hazard: NOVA → EM_ATENDIMENTO → CONCLUIDA/NAO_CONCLUIDA.

    Invariants enforced here and in the service layer:
    - category, latitude and longitude are written once, at creation
    - status only changes through the state machine
    - exactly one author
    - revision grows by one on every accepted write
    """
    __tablename__ = "solicitations"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(String, nullable=False)
    category = Column(SQLEnum(Category), nullable=False)
    status = Column(SQLEnum(SolicitationStatus), nullable=False, default=SolicitationStatus.OPEN)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    # Attendance, filled in by field operators
    attendance_description = Column(String, nullable=True)
    routing_target = Column(SQLEnum(RoutingTarget), nullable=True)
    attendance_outcome = Column(SQLEnum(AttendanceOutcome), nullable=True)

    revision = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    author_id = Column(String, ForeignKey("users.id"), nullable=False)

    # Relationships
    author = relationship("User")
    attachments = relationship(
        "Attachment",
        back_populates="solicitation",
        cascade="all, delete-orphan",
        order_by="Attachment.created_at"
    )
    events = relationship(
        "Event",
        back_populates="solicitation",
        cascade="all, delete-orphan",
        order_by="[Event.created_at, Event.id]"
    )


class Attachment(Base):
    """Reference to uploaded media. Append-only, owned by one solicitation."""
    __tablename__ = "attachments"

    id = Column(String, primary_key=True, default=new_id)
    url = Column(String, nullable=False)
    mime = Column(String, nullable=False)
    size_bytes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    solicitation_id = Column(String, ForeignKey("solicitations.id"), nullable=False, index=True)

    solicitation = relationship("Solicitation", back_populates="attachments")
