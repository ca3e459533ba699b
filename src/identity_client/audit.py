"""IdentityAuditLogger — JSONL audit trail of key lifecycle and proof events.

Every lifecycle event (initialization, key set, lock, unlock, password
change, paperkey issue, proof submission and revocation) is appended as a
single JSON line. Secrets, passwords and mnemonic phrases are never part of
an event; paperkeys are identified by fingerprint only.

If no file path is configured the logger emits to a bounded in-memory buffer
that can be drained via :meth:`IdentityAuditLogger.drain_buffer`; the oldest
events are dropped once it is full.
"""
from __future__ import annotations

import datetime
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1000


@dataclass
class AuditEvent:
    """A single auditable event.

    Parameters
    ----------
    event_type:
        Short snake_case string identifying the event (e.g. "keystore_unlocked").
    account_id:
        Account id of the device key involved, or "" when there is none yet.
    details:
        Arbitrary key-value metadata about the event.
    timestamp:
        UTC datetime of the event. Defaults to now.
    """

    event_type: str
    account_id: str = ""
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "account_id": self.account_id,
            "details": self.details,
        }


class IdentityAuditLogger:
    """Append-only JSONL audit logger.

    Thread-safe. Each call to :meth:`log` appends one JSON line to the
    configured file (or to the in-memory buffer if no path is set). A failed
    file write is logged and does not propagate, so an audit fault never
    turns a completed operation into a failure.

    Parameters
    ----------
    log_path:
        Path to the JSONL log file. Parent directories are created
        automatically. If None, events are buffered in memory only.
    buffer_size:
        Maximum number of buffered events kept in memory.
    """

    def __init__(
        self, log_path: Path | None = None, buffer_size: int = DEFAULT_BUFFER_SIZE
    ) -> None:
        self._log_path = log_path
        self._buffer: deque[str] = deque(maxlen=buffer_size)
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Core logging
    # ------------------------------------------------------------------

    def log(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), separators=(",", ":"))
        with self._lock:
            if self._log_path is not None:
                try:
                    with self._log_path.open("a", encoding="utf-8") as fh:
                        fh.write(line + "\n")
                except OSError as exc:
                    logger.error(
                        "Failed to write audit event %s to %s: %s",
                        event.event_type,
                        self._log_path,
                        exc,
                    )
            else:
                self._buffer.append(line)

    def log_event(self, event_type: str, account_id: str = "", **details: object) -> None:
        """Log a simple event without constructing an :class:`AuditEvent`."""
        self.log(AuditEvent(event_type=event_type, account_id=account_id, details=dict(details)))

    # ------------------------------------------------------------------
    # Convenience event loggers
    # ------------------------------------------------------------------

    def log_initialized(self, base_path: str, has_key: bool, unlocked: bool) -> None:
        self.log_event(
            "client_initialized", base_path=base_path, has_key=has_key, unlocked=unlocked
        )

    def log_key_set(self, account_id: str, provenance: str, uid: str | None) -> None:
        self.log_event("device_key_set", account_id, provenance=provenance, uid=uid)

    def log_lock(self, account_id: str, success: bool) -> None:
        self.log_event("keystore_locked" if success else "keystore_lock_failed", account_id)

    def log_unlock(self, account_id: str, success: bool) -> None:
        """Log an unlock attempt. Failed attempts carry no account id."""
        self.log_event("keystore_unlocked" if success else "keystore_unlock_failed", account_id)

    def log_password_changed(self, account_id: str) -> None:
        self.log_event("password_changed", account_id)

    def log_paperkey(self, account_id: str, fingerprint: str, uid: int) -> None:
        self.log_event("paperkey_added", account_id, fingerprint=fingerprint, uid=str(uid))

    def log_proof(
        self, account_id: str, service: str, external_id: str, cid: str, revoked: bool = False
    ) -> None:
        self.log_event(
            "proof_revoked" if revoked else "proof_submitted",
            account_id,
            service=service,
            external_id=external_id,
            cid=cid,
        )

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory event buffer.

        Only meaningful when no ``log_path`` was configured.
        """
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Read events from the log file (or the buffer).

        Parameters
        ----------
        tail:
            If provided, return only the last *tail* events.

        Returns
        -------
        list[dict[str, object]]
            Parsed event dictionaries in chronological order.
        """
        if self._log_path is None or not self._log_path.exists():
            with self._lock:
                lines = list(self._buffer)
        else:
            with self._lock:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed


__all__ = ["AuditEvent", "IdentityAuditLogger"]
