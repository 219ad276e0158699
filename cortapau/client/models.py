"""
Client-side view models and the wire decoder.

Decoding is exhaustive: a status, category, event kind or role outside the
known vocabulary raises WireDecodeError instead of silently becoming a default.
All view models are frozen; a reconciliation pass builds new ones.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from cortapau.errors import WireDecodeError
from cortapau.models.enums import (
    AttendanceOutcome,
    Category,
    EventKind,
    Role,
    RoutingTarget,
    SolicitationStatus
)

E = TypeVar("E", bound=Enum)

EARTH_RADIUS_METERS = 6_371_000.0


def decode_enum(enum_cls: Type[E], raw: Any, field_name: str) -> E:
    """Map a wire string onto `enum_cls` or fail loudly."""
    if isinstance(raw, str):
        try:
            return enum_cls(raw.strip().upper())
        except ValueError:
            pass
    raise WireDecodeError(
        f"Unknown {field_name} value {raw!r}",
        field=field_name,
        raw_value=raw
    )


def decode_optional_enum(enum_cls: Type[E], raw: Any, field_name: str) -> Optional[E]:
    if raw is None:
        return None
    return decode_enum(enum_cls, raw, field_name)


def parse_timestamp(raw: Any, field_name: str = "createdAt") -> datetime:
    """ISO 8601, with or without a trailing Z. Returned naive, in UTC."""
    if not isinstance(raw, str):
        raise WireDecodeError(f"Invalid {field_name} value {raw!r}", field=field_name, raw_value=raw)
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise WireDecodeError(f"Invalid {field_name} value {raw!r}", field=field_name, raw_value=raw)
    if value.tzinfo is not None:
        value = (value - value.utcoffset()).replace(tzinfo=None)
    return value


def _require(payload: Dict[str, Any], key: str) -> Any:
    if key not in payload or payload[key] is None:
        raise WireDecodeError(f"Missing field {key!r}", field=key)
    return payload[key]


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (haversine) distance."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


@dataclass(frozen=True)
class AuthorRef:
    id: Optional[str]
    name: Optional[str] = None
    role: Optional[Role] = None
    login: Optional[str] = None

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "AuthorRef":
        return cls(
            id=payload.get("id"),
            name=payload.get("nome"),
            role=decode_optional_enum(Role, payload.get("role"), "role"),
            # Older servers only sent email
            login=payload.get("login") or payload.get("email")
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nome": self.name,
            "role": self.role.value if self.role else None,
            "login": self.login,
        }


@dataclass(frozen=True)
class AttachmentRef:
    id: str
    url: str
    mime: str
    size_bytes: int = 0

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "AttachmentRef":
        return cls(
            id=_require(payload, "id"),
            url=_require(payload, "url"),
            mime=_require(payload, "mime"),
            size_bytes=payload.get("tamanhoBytes") or 0
        )

    def to_wire(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "mime": self.mime, "tamanhoBytes": self.size_bytes}


@dataclass(frozen=True)
class LocalMedia:
    """A photo held only on the device (not yet uploaded)."""
    mime: str
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    kind: EventKind
    created_at: datetime
    description: Optional[str] = None
    previous_status: Optional[SolicitationStatus] = None
    new_status: Optional[SolicitationStatus] = None
    author: Optional[AuthorRef] = None

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "HistoryEntry":
        author = payload.get("autor")
        return cls(
            id=str(_require(payload, "id")),
            kind=decode_enum(EventKind, _require(payload, "tipo"), "tipo"),
            created_at=parse_timestamp(_require(payload, "createdAt")),
            description=payload.get("descricao"),
            previous_status=decode_optional_enum(SolicitationStatus, payload.get("antigoStatus"), "antigoStatus"),
            new_status=decode_optional_enum(SolicitationStatus, payload.get("novoStatus"), "novoStatus"),
            author=AuthorRef.from_wire(author) if author else None
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tipo": self.kind.value,
            "descricao": self.description,
            "antigoStatus": self.previous_status.value if self.previous_status else None,
            "novoStatus": self.new_status.value if self.new_status else None,
            "createdAt": self.created_at.isoformat(),
            "autor": self.author.to_wire() if self.author else None,
        }


@dataclass(frozen=True)
class RemoteSolicitation:
    """One item of the authoritative list, as decoded from the server."""
    id: str
    title: str
    description: str
    category: Category
    status: SolicitationStatus
    latitude: float
    longitude: float
    created_at: datetime
    author: AuthorRef
    attachments: Tuple[AttachmentRef, ...] = ()
    attendance_description: Optional[str] = None
    routing_target: Optional[RoutingTarget] = None
    attendance_outcome: Optional[AttendanceOutcome] = None
    revision: Optional[int] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "RemoteSolicitation":
        updated_at = payload.get("updatedAt")
        return cls(
            id=_require(payload, "id"),
            title=_require(payload, "titulo"),
            description=_require(payload, "descricao"),
            category=decode_enum(Category, _require(payload, "categoria"), "categoria"),
            status=decode_enum(SolicitationStatus, _require(payload, "status"), "status"),
            latitude=float(_require(payload, "latitude")),
            longitude=float(_require(payload, "longitude")),
            created_at=parse_timestamp(_require(payload, "createdAt")),
            author=AuthorRef.from_wire(_require(payload, "autor")),
            attachments=tuple(AttachmentRef.from_wire(a) for a in payload.get("anexos") or []),
            attendance_description=payload.get("atendimentoDescricao"),
            routing_target=decode_optional_enum(
                RoutingTarget, payload.get("atendimentoEncaminhamento"), "atendimentoEncaminhamento"
            ),
            attendance_outcome=decode_optional_enum(
                AttendanceOutcome, payload.get("atendimentoStatus"), "atendimentoStatus"
            ),
            revision=payload.get("revisao"),
            updated_at=parse_timestamp(updated_at, "updatedAt") if updated_at else None
        )


@dataclass(frozen=True)
class CachedSolicitation:
    """
    The merged, UI-ready view of one solicitation.

    Server-owned fields come from the latest authoritative item. local_media,
    attendance_draft and routing_draft exist only on the device.
    """
    local_id: str
    canonical_id: Optional[str]
    title: str
    description: str
    category: Category
    status: SolicitationStatus
    latitude: float
    longitude: float
    created_at: datetime
    author: AuthorRef
    attachments: Tuple[AttachmentRef, ...] = ()
    attendance_description: Optional[str] = None
    routing_target: Optional[RoutingTarget] = None
    attendance_outcome: Optional[AttendanceOutcome] = None
    revision: Optional[int] = None
    updated_at: Optional[datetime] = None
    is_mine: bool = False
    history: Tuple[HistoryEntry, ...] = ()
    local_media: Tuple[LocalMedia, ...] = ()
    attendance_draft: Optional[str] = None
    routing_draft: Optional[RoutingTarget] = None
    conflict: bool = False

    @property
    def has_local_changes(self) -> bool:
        return bool(self.local_media) or self.attendance_draft is not None or self.routing_draft is not None

    def distance_to(self, latitude: float, longitude: float) -> float:
        return distance_meters(latitude, longitude, self.latitude, self.longitude)


@dataclass(frozen=True)
class Snapshot:
    """An immutable collection produced by one reconciliation pass."""
    items: Tuple[CachedSolicitation, ...] = ()
    fetched_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def find(self, canonical_id: str) -> Optional[CachedSolicitation]:
        for item in self.items:
            if item.canonical_id == canonical_id:
                return item
        return None

    def find_local(self, local_id: str) -> Optional[CachedSolicitation]:
        for item in self.items:
            if item.local_id == local_id:
                return item
        return None

    def mine(self) -> Tuple[CachedSolicitation, ...]:
        return tuple(item for item in self.items if item.is_mine)

    def nearby(
        self,
        latitude: float,
        longitude: float,
        radius_meters: Optional[float] = None
    ) -> Tuple[CachedSolicitation, ...]:
        """Items sorted by distance from the point, optionally limited to a radius."""
        ranked = sorted(
            ((item.distance_to(latitude, longitude), item) for item in self.items),
            key=lambda pair: pair[0]
        )
        return tuple(
            item for distance, item in ranked
            if radius_meters is None or distance <= radius_meters
        )
