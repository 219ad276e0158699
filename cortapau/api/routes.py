"""API routes: solicitations, their history, uploads and the auth boundary."""
import logging
import mimetypes
from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session

from cortapau.database import get_db
from cortapau.errors import NotFoundError
from cortapau.models.audit import Event
from cortapau.models.domain import Solicitation, User
from cortapau.services import auth as auth_service
from cortapau.services.event_log import ChangeSet, EventLog
from cortapau.services.solicitations import AttachmentInput, SolicitationService
from cortapau.services.uploads import UploadStore
from cortapau.api.schemas import (
    AttachmentResponse,
    AuthorSummary,
    ErrorResponse,
    EventListEnvelope,
    EventResponse,
    LoginRequest,
    RegisterRequest,
    SolicitationCreate,
    SolicitationEnvelope,
    SolicitationListEnvelope,
    SolicitationPatch,
    SolicitationResponse,
    UploadBase64,
    UploadResponse,
    UserEnvelope,
    UserResponse
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_event_log() -> EventLog:
    """Dependency hook so tests can swap in a failing log."""
    return EventLog()


def get_upload_store() -> UploadStore:
    return UploadStore()


def get_service(
    db: Session = Depends(get_db),
    event_log: EventLog = Depends(get_event_log),
    uploads: UploadStore = Depends(get_upload_store)
) -> SolicitationService:
    return SolicitationService(db, event_log=event_log, uploads=uploads)


# Mapping ORM -> wire DTO
def to_api_author(user: User) -> AuthorSummary:
    return AuthorSummary(id=user.id, name=user.name, role=user.role, login=user.login)


def to_api_solicitation(s: Solicitation) -> SolicitationResponse:
    return SolicitationResponse(
        id=s.id,
        title=s.title,
        description=s.description,
        category=s.category,
        status=s.status,
        latitude=s.latitude,
        longitude=s.longitude,
        attendance_description=s.attendance_description,
        routing_target=s.routing_target,
        attendance_outcome=s.attendance_outcome,
        revision=s.revision,
        created_at=s.created_at,
        updated_at=s.updated_at,
        author=to_api_author(s.author),
        attachments=[
            AttachmentResponse(id=a.id, url=a.url, mime=a.mime, size_bytes=a.size_bytes)
            for a in s.attachments
        ]
    )


def to_api_event(e: Event) -> EventResponse:
    return EventResponse(
        id=str(e.id),
        kind=e.kind,
        description=e.description,
        previous_status=e.previous_status,
        new_status=e.new_status,
        created_at=e.created_at,
        author=to_api_author(e.author) if e.author else None
    )


# Solicitation endpoints
@router.get("/solicitacoes", response_model=SolicitationListEnvelope)
def list_solicitations(service: SolicitationService = Depends(get_service)):
    """List all solicitations, newest first."""
    items = [to_api_solicitation(s) for s in service.list()]
    return SolicitationListEnvelope(total=len(items), items=items)


@router.post("/solicitacoes", response_model=SolicitationEnvelope, status_code=status.HTTP_201_CREATED)
def create_solicitation(data: SolicitationCreate, service: SolicitationService = Depends(get_service)):
    """Create a new solicitation in NOVA state. Missing autorId falls back to the demo author."""
    logger.info(
        "POST /solicitacoes - %d attachment(s) received",
        len(data.attachments or [])
    )
    solicitation = service.create(
        title=data.title,
        description=data.description,
        category=data.category,
        latitude=data.latitude,
        longitude=data.longitude,
        author_id=data.author_id,
        attachments=[
            AttachmentInput(url=a.url, mime=a.mime, size_bytes=a.size_bytes)
            for a in (data.attachments or [])
        ]
    )
    return SolicitationEnvelope(item=to_api_solicitation(solicitation))


@router.get("/solicitacoes/{solicitation_id}", response_model=SolicitationEnvelope, responses={
    404: {"model": ErrorResponse}
})
def get_solicitation(solicitation_id: str, service: SolicitationService = Depends(get_service)):
    return SolicitationEnvelope(item=to_api_solicitation(service.get(solicitation_id)))


@router.patch("/solicitacoes/{solicitation_id}", response_model=SolicitationEnvelope, responses={
    400: {"model": ErrorResponse, "description": "Nothing to update, invalid body or missing required field"},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse, "description": "Refusal - illegal transition or stale revision"}
})
def patch_solicitation(
    solicitation_id: str,
    data: SolicitationPatch,
    service: SolicitationService = Depends(get_service)
):
    """
    Update status, description or attendance data.

    WILL REFUSE if:
    - No recognised field is present
    - The status transition is not allowed (final statuses accept none)
    - CONCLUIDA is requested without an attendance description
    """
    changes = ChangeSet(
        status=data.status,
        description=data.description,
        attendance_description=data.attendance_description,
        routing_target=data.routing_target,
        attendance_outcome=data.attendance_outcome,
        operator_id=data.operator_id
    )
    solicitation = service.patch(solicitation_id, changes, expected_revision=data.expected_revision)
    return SolicitationEnvelope(item=to_api_solicitation(solicitation))


@router.get("/solicitacoes/{solicitation_id}/eventos", response_model=EventListEnvelope)
def list_events(solicitation_id: str, service: SolicitationService = Depends(get_service)):
    """History of a solicitation, oldest first."""
    try:
        events = service.history(solicitation_id)
    except NotFoundError:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"status": "error", "items": []})
    return EventListEnvelope(items=[to_api_event(e) for e in events])


# Upload endpoints
@router.post("/uploads/base64", response_model=UploadResponse)
def upload_base64(data: UploadBase64, uploads: UploadStore = Depends(get_upload_store)):
    """Store a base64 image and return the URL to reference as an attachment."""
    url = uploads.save_base64(data.image_base64, data.mime)
    return UploadResponse(url=url, mime=data.mime)


@router.get("/uploads/{file_name}")
def get_upload(file_name: str, uploads: UploadStore = Depends(get_upload_store)):
    path = uploads.path_for(file_name)
    media_type, _ = mimetypes.guess_type(path)
    return FileResponse(path, media_type=media_type or "application/octet-stream")


# Auth endpoints
@router.post("/auth/login", response_model=UserEnvelope, responses={401: {"model": ErrorResponse}})
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, data.login, data.password)
    return UserEnvelope(user=UserResponse(id=user.id, name=user.name, login=user.login, role=user.role))


@router.post("/auth/register", response_model=UserEnvelope, responses={400: {"model": ErrorResponse}})
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    user = auth_service.register(db, data.name, data.email, data.password)
    return UserEnvelope(user=UserResponse(id=user.id, name=user.name, login=user.login, role=user.role))
