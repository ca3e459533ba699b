"""Collaborator interfaces (ledger, content storage) and their reference backends."""
from __future__ import annotations

from identity_client.backends.ledger import FileLedger, InMemoryLedger, Ledger, LedgerKey
from identity_client.backends.storage import (
    ContentStore,
    FilesystemContentStore,
    InMemoryContentStore,
    canonical_json,
    compute_cid,
)

__all__ = [
    "ContentStore",
    "FileLedger",
    "FilesystemContentStore",
    "InMemoryContentStore",
    "InMemoryLedger",
    "Ledger",
    "LedgerKey",
    "canonical_json",
    "compute_cid",
]
