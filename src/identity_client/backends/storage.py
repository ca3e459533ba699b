"""Content-addressed storage — abstract interface and reference backends.

Documents are JSON objects. A document's content id (cid) is derived from
its canonical encoding, so any backend can verify what it returns::

    cid = "b" + base32(sha256(canonical_json(document))).lower().rstrip("=")

:class:`ContentStore` defines the contract. :class:`InMemoryContentStore`
keeps documents in a dict; :class:`FilesystemContentStore` persists them as
``<cid>.json`` files under a base directory.
"""
from __future__ import annotations

import base64
import hashlib
import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from identity_client.errors import StorageConfigError, StorageError


def canonical_json(document: object) -> bytes:
    """Deterministic JSON encoding: sorted keys, no whitespace, UTF-8."""
    return json.dumps(
        document, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def compute_cid(document: dict[str, object]) -> str:
    digest = hashlib.sha256(canonical_json(document)).digest()
    return "b" + base64.b32encode(digest).decode("ascii").lower().rstrip("=")


class ContentStore(ABC):
    """Abstract base class for content-addressed document storage."""

    @abstractmethod
    def put(self, document: dict[str, object]) -> str:
        """Store *document* and return its cid.

        Raises
        ------
        StorageError
            If the document cannot be persisted.
        """

    @abstractmethod
    def get(self, cid: str) -> dict[str, object]:
        """Fetch the document stored under *cid*.

        Raises
        ------
        StorageError
            If the document is missing, unreadable, or fails its hash check.
        """

    @abstractmethod
    def has(self, cid: str) -> bool:
        """Return True if *cid* is stored locally."""


class InMemoryContentStore(ContentStore):
    """Dict-backed content store. Thread-safe."""

    def __init__(self) -> None:
        self._documents: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, document: dict[str, object]) -> str:
        cid = compute_cid(document)
        with self._lock:
            self._documents[cid] = canonical_json(document)
        return cid

    def get(self, cid: str) -> dict[str, object]:
        with self._lock:
            raw = self._documents.get(cid)
        if raw is None:
            raise StorageError(f"Document {cid} not found.")
        return dict(json.loads(raw))

    def has(self, cid: str) -> bool:
        with self._lock:
            return cid in self._documents

    def discard(self, cid: str) -> None:
        """Drop *cid* from the store (used to simulate lost documents)."""
        with self._lock:
            self._documents.pop(cid, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)


class FilesystemContentStore(ContentStore):
    """Filesystem-backed content store.

    Parameters
    ----------
    base_dir:
        Root directory; created if missing.

    Raises
    ------
    StorageConfigError
        If *base_dir* cannot be created.
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir)
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageConfigError(
                f"Cannot use {self._base_dir} for content storage: {exc}"
            ) from exc

    def put(self, document: dict[str, object]) -> str:
        cid = compute_cid(document)
        try:
            self._path(cid).write_bytes(canonical_json(document))
        except OSError as exc:
            raise StorageError(f"Failed to store {cid}: {exc}") from exc
        return cid

    def get(self, cid: str) -> dict[str, object]:
        path = self._path(cid)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageError(f"Document {cid} not found.") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {cid}: {exc}") from exc
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Document {cid} is corrupted.") from exc
        if compute_cid(document) != cid:
            raise StorageError(f"Document {cid} failed its content hash check.")
        return dict(document)

    def has(self, cid: str) -> bool:
        return self._path(cid).exists()

    def _path(self, cid: str) -> Path:
        safe_name = cid.replace("/", "_").replace("\\", "_")
        return self._base_dir / f"{safe_name}.json"


__all__ = [
    "ContentStore",
    "FilesystemContentStore",
    "InMemoryContentStore",
    "canonical_json",
    "compute_cid",
]
