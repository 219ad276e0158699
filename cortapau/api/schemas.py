"""Pydantic schemas for request/response validation. Aliases are the wire field names."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field
from cortapau.models.enums import (
    SolicitationStatus,
    Category,
    RoutingTarget,
    AttendanceOutcome,
    EventKind,
    Role
)


class WireModel(BaseModel):
    class Config:
        populate_by_name = True
        from_attributes = True


# Solicitation schemas
class AttachmentCreate(WireModel):
    url: str = Field(..., min_length=1)
    mime: str = Field(..., min_length=1)
    size_bytes: Optional[int] = Field(None, alias="tamanhoBytes", ge=0)


class SolicitationCreate(WireModel):
    title: str = Field(..., alias="titulo", min_length=3)
    description: str = Field(..., alias="descricao", min_length=5)
    category: Category = Field(..., alias="categoria")
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    author_id: Optional[str] = Field(None, alias="autorId", min_length=1)
    attachments: Optional[List[AttachmentCreate]] = Field(None, alias="anexos")


class SolicitationPatch(WireModel):
    class Config:
        populate_by_name = True
        str_strip_whitespace = True

    status: Optional[SolicitationStatus] = None
    description: Optional[str] = Field(None, alias="descricao", min_length=1)
    attendance_description: Optional[str] = Field(None, alias="atendimentoDescricao", min_length=1)
    routing_target: Optional[RoutingTarget] = Field(None, alias="atendimentoEncaminhamento")
    attendance_outcome: Optional[AttendanceOutcome] = Field(None, alias="atendimentoStatus")
    operator_id: Optional[str] = Field(None, alias="operadorId", min_length=1)
    expected_revision: Optional[int] = Field(None, alias="revisaoEsperada", ge=1)


class AuthorSummary(WireModel):
    id: str
    name: str = Field(..., alias="nome")
    role: Role
    login: str


class AttachmentResponse(WireModel):
    id: str
    url: str
    mime: str
    size_bytes: int = Field(..., alias="tamanhoBytes")


class SolicitationResponse(WireModel):
    id: str
    title: str = Field(..., alias="titulo")
    description: str = Field(..., alias="descricao")
    category: Category = Field(..., alias="categoria")
    status: SolicitationStatus
    latitude: float
    longitude: float
    attendance_description: Optional[str] = Field(None, alias="atendimentoDescricao")
    routing_target: Optional[RoutingTarget] = Field(None, alias="atendimentoEncaminhamento")
    attendance_outcome: Optional[AttendanceOutcome] = Field(None, alias="atendimentoStatus")
    revision: int = Field(..., alias="revisao")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    author: AuthorSummary = Field(..., alias="autor")
    attachments: List[AttachmentResponse] = Field(default_factory=list, alias="anexos")


class EventResponse(WireModel):
    id: str
    kind: EventKind = Field(..., alias="tipo")
    description: Optional[str] = Field(None, alias="descricao")
    previous_status: Optional[SolicitationStatus] = Field(None, alias="antigoStatus")
    new_status: Optional[SolicitationStatus] = Field(None, alias="novoStatus")
    created_at: datetime = Field(..., alias="createdAt")
    author: Optional[AuthorSummary] = Field(None, alias="autor")


# Envelopes
class SolicitationEnvelope(WireModel):
    status: str = "ok"
    item: SolicitationResponse


class SolicitationListEnvelope(WireModel):
    status: str = "ok"
    total: int
    items: List[SolicitationResponse]


class EventListEnvelope(WireModel):
    status: str = "ok"
    items: List[EventResponse]


# Upload schemas
class UploadBase64(WireModel):
    image_base64: str = Field(..., alias="imagemBase64", min_length=1)
    mime: str = Field(..., min_length=1)


class UploadResponse(WireModel):
    status: str = "ok"
    url: str
    mime: str


# Auth schemas
class LoginRequest(WireModel):
    login: str = Field(..., min_length=1)
    password: str = Field(..., alias="senha", min_length=1)


class RegisterRequest(WireModel):
    # Presence is checked by the auth service so the error message stays specific
    name: Optional[str] = Field(None, alias="nome")
    email: Optional[str] = None
    password: Optional[str] = Field(None, alias="senha")


class UserResponse(WireModel):
    id: str
    name: str = Field(..., alias="nome")
    login: str
    role: Role


class UserEnvelope(WireModel):
    status: str = "ok"
    user: UserResponse


# Error response
class ErrorResponse(BaseModel):
    """Response when a request is refused."""
    status: str = "error"
    message: str
    reason: Optional[str] = None
