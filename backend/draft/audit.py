"""
Fire-and-forget audit trail.

record() drops an entry on a bounded queue and returns immediately; a daemon
worker drains the queue into audit_logs using its own sessions. Nothing that
goes wrong in here reaches the caller: a full queue or a failed insert is
logged and the entry is lost.
"""
from __future__ import annotations

import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from draft.errors import AuditFailure
from draft.store import DraftStore
from draft.types import Actor

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class AuditEntry:
    action: str
    league_id: Optional[str]
    actor_type: str
    actor_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    seq: int = 0


def client_ip(headers) -> str:
    """
    Last X-Forwarded-For hop (added by our proxy) rather than the first,
    which the client controls.
    """
    xff = headers.get("x-forwarded-for")
    if xff:
        ips = [ip.strip() for ip in xff.split(",") if ip.strip()]
        if ips:
            return ips[-1]
    return headers.get("x-real-ip") or "unknown"


class AuditRecorder:
    def __init__(self, session_factory: Callable[[], Session], maxsize: int = 1000):
        self.session_factory = session_factory
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.dropped = 0
        self._seq = itertools.count(1)

    # -------------------------
    # Lifecycle
    # -------------------------

    def start(self) -> "AuditRecorder":
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, daemon=True, name="draft-audit")
                self._thread.start()
        return self

    def flush(self) -> None:
        """Block until everything queued so far has been written (or given up on)."""
        if self._thread is None:
            self._drain_inline()
            return
        self._queue.join()

    def close(self) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout=5)

    # -------------------------
    # Producer side
    # -------------------------

    def record(
        self,
        action: str,
        league_id: Optional[str],
        actor: Actor,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        """`created_at` defaults to the wall clock; callers with their own clock pass it in."""
        entry = AuditEntry(
            action=action,
            league_id=league_id,
            actor_type=actor.type.value,
            actor_id=actor.id,
            metadata=dict(metadata or {}),
            ip_address=actor.ip_address,
            created_at=created_at or datetime.now(timezone.utc),
            seq=next(self._seq),
        )
        try:
            self._queue.put_nowait(entry)
        except queue.Full:
            self.dropped += 1
            logger.warning("[audit] Queue full, dropped %s for league %s", action, league_id)

    # -------------------------
    # Worker side
    # -------------------------

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._write([item])
            finally:
                self._queue.task_done()

    def _drain_inline(self) -> None:
        # Used when no worker was started (scripts, tests).
        batch: List[AuditEntry] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
            if item is not _STOP:
                batch.append(item)
        if batch:
            self._write(batch)

    def _write(self, entries: List[AuditEntry]) -> None:
        try:
            db = self.session_factory()
        except Exception:
            logger.exception("[audit] Could not open a session; lost %d entries", len(entries))
            return
        try:
            store = DraftStore(db)
            for e in entries:
                store.insert_audit(
                    e.action, e.league_id, e.actor_type, e.actor_id, e.metadata, e.ip_address, e.created_at, e.seq
                )
            db.commit()
        except Exception as exc:
            db.rollback()
            failure = AuditFailure(f"failed to persist {len(entries)} audit entries: {exc}")
            logger.error("[audit] Failed to log: %s", failure)
        finally:
            db.close()
