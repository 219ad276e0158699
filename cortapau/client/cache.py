"""
Device-side snapshot store.

Holds the currently published Snapshot and swaps it atomically. Local edits
(drafts, photos not yet uploaded) produce a new snapshot rather than mutating
the published one. Snapshot and session can be persisted as JSON; photo bytes
are not persisted.
"""
import json
import logging
import os
import threading
from dataclasses import replace
from typing import Any, Dict, Optional

from cortapau.client.models import (
    AttachmentRef,
    AuthorRef,
    CachedSolicitation,
    HistoryEntry,
    LocalMedia,
    Snapshot,
    decode_enum,
    decode_optional_enum,
    parse_timestamp
)
from cortapau.client.ownership import Actor
from cortapau.client.reconciler import ReconciliationResult, Reconciler, carry_local_fields
from cortapau.models.enums import (
    AttendanceOutcome,
    Category,
    RoutingTarget,
    SolicitationStatus
)

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1

_UNSET = object()


class SnapshotStore:
    """The single place where the published snapshot is replaced."""

    def __init__(self, snapshot: Optional[Snapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot or Snapshot()

    @property
    def current(self) -> Snapshot:
        return self._snapshot

    def replace(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    def refresh(
        self,
        reconciler: Reconciler,
        actor: Optional[Actor] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> ReconciliationResult:
        """
        Run a pass and publish it. Nothing is published if the pass raises.

        The pass runs without the lock, so local edits may land meanwhile;
        they are re-applied onto the result right before it is published.
        """
        result = reconciler.reconcile(self.current, actor=actor, cancel_event=cancel_event)
        with self._lock:
            latest = {item.canonical_id: item for item in self._snapshot.items if item.canonical_id}
            snapshot = replace(result.snapshot, items=tuple(
                carry_local_fields(item, latest.get(item.canonical_id))
                for item in result.snapshot.items
            ))
            self._snapshot = snapshot
        return replace(result, snapshot=snapshot)

    def upsert(self, item: CachedSolicitation) -> None:
        """Insert or replace by canonical id, then by local id (newest first for inserts)."""
        with self._lock:
            items = list(self._snapshot.items)
            for index, existing in enumerate(items):
                same_canonical = item.canonical_id is not None and existing.canonical_id == item.canonical_id
                if same_canonical or existing.local_id == item.local_id:
                    items[index] = item
                    break
            else:
                items.insert(0, item)
            self._snapshot = replace(self._snapshot, items=tuple(items))

    def edit_local(
        self,
        local_id: str,
        attendance_draft: Any = _UNSET,
        routing_draft: Any = _UNSET,
        add_media: Optional[LocalMedia] = None
    ) -> CachedSolicitation:
        """Record device-only changes on one item. KeyError if the item is unknown."""
        with self._lock:
            items = list(self._snapshot.items)
            for index, existing in enumerate(items):
                if existing.local_id != local_id:
                    continue
                changes: Dict[str, Any] = {}
                if attendance_draft is not _UNSET:
                    changes["attendance_draft"] = attendance_draft
                if routing_draft is not _UNSET:
                    changes["routing_draft"] = routing_draft
                if add_media is not None:
                    changes["local_media"] = existing.local_media + (add_media,)
                updated = replace(existing, **changes)
                if updated.attendance_draft is None and updated.routing_draft is None:
                    updated = replace(updated, conflict=False)
                items[index] = updated
                self._snapshot = replace(self._snapshot, items=tuple(items))
                return updated
        raise KeyError(local_id)

    # Persistence
    def save(self, path: str) -> None:
        data = {
            "version": CACHE_FORMAT_VERSION,
            "fetchedAt": self.current.fetched_at.isoformat() if self.current.fetched_at else None,
            "items": [_item_to_json(item) for item in self.current.items],
        }
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp_path, path)

    @classmethod
    def load(cls, path: str) -> "SnapshotStore":
        """Empty store when the file is missing; decode errors propagate."""
        if not os.path.exists(path):
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if data.get("version") != CACHE_FORMAT_VERSION:
            logger.warning("Ignoring cache file %s with version %r", path, data.get("version"))
            return cls()
        fetched_at = data.get("fetchedAt")
        snapshot = Snapshot(
            items=tuple(_item_from_json(item) for item in data.get("items", [])),
            fetched_at=parse_timestamp(fetched_at, "fetchedAt") if fetched_at else None
        )
        return cls(snapshot)


def save_session(path: str, actor: Optional[Actor]) -> None:
    """Persist the signed-in actor; None clears the session file."""
    if actor is None or not actor.id:
        if os.path.exists(path):
            os.remove(path)
        return
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"userId": actor.id, "login": actor.login, "nome": actor.name}, f, ensure_ascii=False)


def load_session(path: str) -> Optional[Actor]:
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return Actor(id=data.get("userId"), login=data.get("login"), name=data.get("nome"))


def _item_to_json(item: CachedSolicitation) -> Dict[str, Any]:
    return {
        "localId": item.local_id,
        "id": item.canonical_id,
        "titulo": item.title,
        "descricao": item.description,
        "categoria": item.category.value,
        "status": item.status.value,
        "latitude": item.latitude,
        "longitude": item.longitude,
        "createdAt": item.created_at.isoformat(),
        "updatedAt": item.updated_at.isoformat() if item.updated_at else None,
        "autor": item.author.to_wire(),
        "anexos": [a.to_wire() for a in item.attachments],
        "atendimentoDescricao": item.attendance_description,
        "atendimentoEncaminhamento": item.routing_target.value if item.routing_target else None,
        "atendimentoStatus": item.attendance_outcome.value if item.attendance_outcome else None,
        "revisao": item.revision,
        "isMine": item.is_mine,
        "historico": [entry.to_wire() for entry in item.history],
        "rascunhoAtendimento": item.attendance_draft,
        "rascunhoEncaminhamento": item.routing_draft.value if item.routing_draft else None,
        "conflito": item.conflict,
    }


def _item_from_json(data: Dict[str, Any]) -> CachedSolicitation:
    updated_at = data.get("updatedAt")
    return CachedSolicitation(
        local_id=data["localId"],
        canonical_id=data.get("id"),
        title=data["titulo"],
        description=data["descricao"],
        category=decode_enum(Category, data["categoria"], "categoria"),
        status=decode_enum(SolicitationStatus, data["status"], "status"),
        latitude=data["latitude"],
        longitude=data["longitude"],
        created_at=parse_timestamp(data["createdAt"]),
        updated_at=parse_timestamp(updated_at, "updatedAt") if updated_at else None,
        author=AuthorRef.from_wire(data["autor"]),
        attachments=tuple(AttachmentRef.from_wire(a) for a in data.get("anexos", [])),
        attendance_description=data.get("atendimentoDescricao"),
        routing_target=decode_optional_enum(
            RoutingTarget, data.get("atendimentoEncaminhamento"), "atendimentoEncaminhamento"
        ),
        attendance_outcome=decode_optional_enum(
            AttendanceOutcome, data.get("atendimentoStatus"), "atendimentoStatus"
        ),
        revision=data.get("revisao"),
        is_mine=bool(data.get("isMine")),
        history=tuple(HistoryEntry.from_wire(entry) for entry in data.get("historico", [])),
        attendance_draft=data.get("rascunhoAtendimento"),
        routing_draft=decode_optional_enum(
            RoutingTarget, data.get("rascunhoEncaminhamento"), "rascunhoEncaminhamento"
        ),
        conflict=bool(data.get("conflito"))
    )
