"""Ledger collaborator — abstract interface and reference backends.

The ledger is the authority for:

* which account ids (keys) belong to which uid,
* human-readable names bound to a uid,
* the ordered list of claim pointers (cids) anchored for a uid.

:class:`Ledger` defines the contract the client requires.
:class:`InMemoryLedger` implements it in process and
:class:`FileLedger` additionally persists its state as a JSON file so that
separate command-line invocations share one ledger. Neither reproduces the
wire format of a real chain.
"""
from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from identity_client.errors import ChainError
from identity_client.keystore import crypto

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerKey:
    """An account id registered for a uid."""

    account_id: str
    paperkey: bool = False

    def to_dict(self) -> dict[str, object]:
        return {"account_id": self.account_id, "paperkey": self.paperkey}


class Ledger(ABC):
    """Abstract ledger client.

    Every method may raise :class:`~identity_client.errors.ChainError`
    (or :class:`~identity_client.errors.ChainTimeoutError`) on transport
    failure. Implementations never retry internally.
    """

    @abstractmethod
    def genesis(self) -> str:
        """Return the hex genesis hash identifying this ledger."""

    @abstractmethod
    def uid_lookup(self, account_id: str) -> Optional[int]:
        """Return the uid owning *account_id*, or None."""

    @abstractmethod
    def name_lookup(self, name: str) -> Optional[int]:
        """Return the uid bound to the human-readable *name*, or None."""

    @abstractmethod
    def keys(self, uid: int) -> list[LedgerKey]:
        """Return the keys registered for *uid* (empty if the uid is unknown)."""

    @abstractmethod
    def identity(self, uid: int) -> list[str]:
        """Return the claim cids anchored for *uid*, oldest first."""

    @abstractmethod
    def set_identity(self, signer: str, prev: Optional[str], cid: str) -> None:
        """Anchor *cid* as the signer's newest claim.

        *prev* must equal the currently anchored head (None when there is
        none); otherwise the submission is rejected with ChainError.
        """

    @abstractmethod
    def create_account_for(
        self, signer: str, account_id: str, name: Optional[str] = None
    ) -> int:
        """Create a new uid owning *account_id* and return it."""

    @abstractmethod
    def add_key(self, signer: str, account_id: str, paperkey: bool = False) -> None:
        """Register *account_id* as an additional key of the signer's uid."""


class InMemoryLedger(Ledger):
    """Thread-safe in-process ledger.

    Account creation is open: any signer may create a uid for any unused
    account id, which mirrors a development chain with a faucet.
    """

    def __init__(self, genesis: Optional[str] = None) -> None:
        self._genesis = genesis or crypto.random_secret().hex()
        self._next_uid = 0
        self._uid_by_account: dict[str, int] = {}
        self._uid_by_name: dict[str, int] = {}
        self._keys: dict[int, list[LedgerKey]] = {}
        self._claims: dict[int, list[str]] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def genesis(self) -> str:
        return self._genesis

    def uid_lookup(self, account_id: str) -> Optional[int]:
        with self._lock:
            return self._uid_by_account.get(account_id)

    def name_lookup(self, name: str) -> Optional[int]:
        with self._lock:
            return self._uid_by_name.get(name.lower())

    def keys(self, uid: int) -> list[LedgerKey]:
        with self._lock:
            return list(self._keys.get(uid, []))

    def identity(self, uid: int) -> list[str]:
        with self._lock:
            return list(self._claims.get(uid, []))

    # ------------------------------------------------------------------
    # Extrinsics
    # ------------------------------------------------------------------

    def create_account_for(
        self, signer: str, account_id: str, name: Optional[str] = None
    ) -> int:
        with self._lock:
            snapshot = self.to_dict()
            if account_id in self._uid_by_account:
                raise ChainError(f"Account {account_id} already belongs to a uid.")
            if name is not None and name.lower() in self._uid_by_name:
                raise ChainError(f"Name {name!r} is already taken.")
            uid = self._next_uid
            self._next_uid += 1
            self._uid_by_account[account_id] = uid
            self._keys[uid] = [LedgerKey(account_id)]
            self._claims[uid] = []
            if name is not None:
                self._uid_by_name[name.lower()] = uid
            self._persist(snapshot)
        logger.info("Ledger: created uid %d for %s", uid, account_id)
        return uid

    def add_key(self, signer: str, account_id: str, paperkey: bool = False) -> None:
        with self._lock:
            snapshot = self.to_dict()
            uid = self._signer_uid(signer)
            if account_id in self._uid_by_account:
                raise ChainError(f"Account {account_id} already belongs to a uid.")
            self._uid_by_account[account_id] = uid
            self._keys[uid].append(LedgerKey(account_id, paperkey))
            self._persist(snapshot)

    def set_identity(self, signer: str, prev: Optional[str], cid: str) -> None:
        with self._lock:
            snapshot = self.to_dict()
            uid = self._signer_uid(signer)
            claims = self._claims[uid]
            head = claims[-1] if claims else None
            if head != prev:
                raise ChainError(
                    f"Identity of uid {uid} changed concurrently "
                    f"(expected head {prev}, found {head})."
                )
            claims.append(cid)
            self._persist(snapshot)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _signer_uid(self, signer: str) -> int:
        uid = self._uid_by_account.get(signer)
        if uid is None:
            raise ChainError(f"Signer {signer} has no account on the ledger.")
        return uid

    def _persist(self, snapshot: dict[str, object]) -> None:
        """Commit a mutation, restoring *snapshot* if it cannot be persisted."""
        try:
            self._commit()
        except ChainError:
            self._load_dict(snapshot)
            raise

    def _commit(self) -> None:
        """Hook called after every mutation while the lock is held."""

    def to_dict(self) -> dict[str, object]:
        with self._lock:
            return {
                "genesis": self._genesis,
                "next_uid": self._next_uid,
                "names": dict(self._uid_by_name),
                "keys": {
                    str(uid): [key.to_dict() for key in keys]
                    for uid, keys in self._keys.items()
                },
                "claims": {str(uid): list(cids) for uid, cids in self._claims.items()},
            }

    def _load_dict(self, data: dict[str, object]) -> None:
        self._genesis = str(data["genesis"])
        self._next_uid = int(data["next_uid"])  # type: ignore[arg-type]
        self._uid_by_name = {str(k): int(v) for k, v in dict(data["names"]).items()}  # type: ignore[arg-type]
        self._keys = {}
        self._uid_by_account = {}
        for uid_str, entries in dict(data["keys"]).items():  # type: ignore[arg-type]
            uid = int(uid_str)
            keys = [LedgerKey(str(e["account_id"]), bool(e["paperkey"])) for e in entries]
            self._keys[uid] = keys
            for key in keys:
                self._uid_by_account[key.account_id] = uid
        self._claims = {
            int(uid_str): [str(cid) for cid in cids]
            for uid_str, cids in dict(data["claims"]).items()  # type: ignore[arg-type]
        }


class FileLedger(InMemoryLedger):
    """:class:`InMemoryLedger` persisted to a JSON file after every mutation.

    Parameters
    ----------
    path:
        JSON file holding the ledger state. Created on first mutation.

    Raises
    ------
    ChainError
        If an existing ledger file cannot be read or parsed.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        if self._path.exists():
            try:
                self._load_dict(json.loads(self._path.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                raise ChainError(f"Failed to load ledger from {self._path}: {exc}") from exc
        else:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._commit()

    def _commit(self) -> None:
        try:
            self._path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            raise ChainError(f"Failed to persist ledger to {self._path}: {exc}") from exc


__all__ = ["FileLedger", "InMemoryLedger", "Ledger", "LedgerKey"]
