"""
Reconciler: merges the authoritative list with the device cache.

One pass:
1. fetch the authoritative list (newest first); a failure here fails the pass
2. match each item to the previous snapshot by canonical id
3. server fields win; only local_media, attendance_draft and routing_draft carry over
4. ownership by id or, as a fallback, by case-insensitive login
5. fetch each item's history concurrently; a failed or late fetch falls back to
   the cached history (or none) for that item only
6. reuse the cached local id or mint a new one
7. return a brand new Snapshot; items the server no longer reports are gone

The previous snapshot is only read. Publishing the result is the caller's job.
"""
import logging
import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from cortapau import config
from cortapau.client.models import (
    CachedSolicitation,
    HistoryEntry,
    RemoteSolicitation,
    Snapshot
)
from cortapau.client.ownership import Actor, is_owned_by
from cortapau.errors import CortaPauError, PartialReconciliationError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.05


class ReconciliationCancelled(CortaPauError):
    """The pass was abandoned; the previous snapshot is still the current one."""


@dataclass(frozen=True)
class ReconciliationResult:
    snapshot: Snapshot
    degraded: Tuple[PartialReconciliationError, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.degraded)


def new_local_id() -> str:
    return str(uuid.uuid4())


def carry_local_fields(
    merged: CachedSolicitation,
    cached: Optional[CachedSolicitation]
) -> CachedSolicitation:
    """
    Re-apply the device-only fields of `cached` onto a merged item.

    Only local_media, attendance_draft and routing_draft travel; every other
    field stays as the server reported it. Drafts are kept even when the
    server moved on; the item is then flagged `conflict` so the UI can ask
    instead of silently overwriting.
    """
    if cached is None:
        return merged

    has_drafts = cached.attendance_draft is not None or cached.routing_draft is not None
    conflict = False
    if has_drafts:
        server_moved = (
            merged.revision is not None
            and cached.revision is not None
            and merged.revision > cached.revision
        )
        conflict = cached.conflict or server_moved

    return replace(
        merged,
        local_id=cached.local_id,
        local_media=cached.local_media,
        attendance_draft=cached.attendance_draft,
        routing_draft=cached.routing_draft,
        conflict=conflict
    )


def merge_item(
    remote: RemoteSolicitation,
    cached: Optional[CachedSolicitation],
    actor: Optional[Actor],
    history: Sequence[HistoryEntry],
    local_id: Optional[str] = None
) -> CachedSolicitation:
    """Build the merged view of one item: server fields plus the cached local fields."""
    merged = CachedSolicitation(
        local_id=local_id or new_local_id(),
        canonical_id=remote.id,
        title=remote.title,
        description=remote.description,
        category=remote.category,
        status=remote.status,
        latitude=remote.latitude,
        longitude=remote.longitude,
        created_at=remote.created_at,
        author=remote.author,
        attachments=remote.attachments,
        attendance_description=remote.attendance_description,
        routing_target=remote.routing_target,
        attendance_outcome=remote.attendance_outcome,
        revision=remote.revision,
        updated_at=remote.updated_at,
        is_mine=is_owned_by(remote.author, actor),
        history=tuple(sorted(history, key=lambda entry: entry.created_at))
    )
    return carry_local_fields(merged, cached)


class Reconciler:
    """Runs reconciliation passes against an ApiClient-like object."""

    def __init__(
        self,
        client,
        max_workers: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        id_factory: Callable[[], str] = new_local_id
    ):
        self.client = client
        self.max_workers = max(1, max_workers if max_workers is not None else config.RECONCILE_MAX_WORKERS)
        self.deadline_seconds = (
            deadline_seconds if deadline_seconds is not None else config.RECONCILE_DEADLINE_SECONDS
        )
        self.id_factory = id_factory

    def reconcile(
        self,
        previous: Optional[Snapshot] = None,
        actor: Optional[Actor] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> ReconciliationResult:
        """
        Run one pass. Raises ReconciliationCancelled if `cancel_event` is set
        before the new snapshot is complete; list-fetch errors propagate.
        """
        previous = previous or Snapshot()
        self._check_cancelled(cancel_event)

        remote_items = self.client.list_solicitations()
        self._check_cancelled(cancel_event)

        cached_by_id: Dict[str, CachedSolicitation] = {
            item.canonical_id: item for item in previous.items if item.canonical_id
        }

        histories, degraded = self._fetch_histories(remote_items, cached_by_id, cancel_event)

        items = tuple(
            merge_item(
                remote,
                cached_by_id.get(remote.id),
                actor,
                histories[index],
                local_id=None if remote.id in cached_by_id else self.id_factory()
            )
            for index, remote in enumerate(remote_items)
        )

        if degraded:
            logger.warning(
                "Reconciliation finished with %d degraded item(s) out of %d",
                len(degraded), len(items)
            )
        else:
            logger.info("Reconciliation finished with %d item(s)", len(items))

        return ReconciliationResult(
            snapshot=Snapshot(items=items, fetched_at=datetime.utcnow()),
            degraded=tuple(degraded)
        )

    def _fetch_histories(
        self,
        remote_items: Sequence[RemoteSolicitation],
        cached_by_id: Dict[str, CachedSolicitation],
        cancel_event: Optional[threading.Event]
    ) -> Tuple[List[Tuple[HistoryEntry, ...]], List[PartialReconciliationError]]:
        """One result slot per item; each worker only fills its own slot."""
        histories: List[Tuple[HistoryEntry, ...]] = [() for _ in remote_items]
        degraded: List[PartialReconciliationError] = []
        if not remote_items:
            return histories, degraded

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(remote_items)),
            thread_name_prefix="cortapau-history"
        )
        try:
            futures: Dict[Future, int] = {
                executor.submit(self.client.list_events, remote.id): index
                for index, remote in enumerate(remote_items)
            }
            pending = set(futures)
            deadline = time.monotonic() + self.deadline_seconds
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    for future in pending:
                        future.cancel()
                    raise ReconciliationCancelled("Reconciliation cancelled")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                _, pending = wait(
                    pending,
                    timeout=min(remaining, POLL_INTERVAL_SECONDS),
                    return_when=FIRST_COMPLETED
                )

            for future, index in futures.items():
                remote = remote_items[index]
                if future in pending:
                    future.cancel()
                    cause: Optional[BaseException] = TimeoutError(
                        f"History fetch exceeded {self.deadline_seconds}s"
                    )
                else:
                    cause = future.exception()
                    if cause is None:
                        histories[index] = tuple(future.result())
                        continue

                cached = cached_by_id.get(remote.id)
                histories[index] = cached.history if cached else ()
                error = PartialReconciliationError(
                    f"Could not load history for solicitation {remote.id}",
                    canonical_id=remote.id,
                    cause=cause
                )
                logger.warning("%s: %s (using %d cached event(s))", error.message, cause, len(histories[index]))
                degraded.append(error)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return histories, degraded

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ReconciliationCancelled("Reconciliation cancelled")
