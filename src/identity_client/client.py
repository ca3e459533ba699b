"""IdentityClient — the client context hosts drive.

One :class:`IdentityClient` owns one keystore, one state machine and one
resolver cache; there is no process-global client. Every public method:

1. validates its string arguments (``BadCstrError``),
2. asks the :class:`~identity_client.state.StateMachine` whether the call
   is legal right now, before any disk or network access,
3. delegates to the keystore, the resolver or the proof service.

Mutations of the lifecycle state (``init``, ``set_key``, ``lock``,
``unlock``, ``change_password``) are serialized by a re-entrant mutation
lock. Queries never take that lock.

The message of the most recent failure is kept per client and exposed via
:meth:`IdentityClient.error_message` for diagnostics.
"""
from __future__ import annotations

import functools
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

from identity_client.audit import IdentityAuditLogger
from identity_client.backends.ledger import FileLedger, Ledger
from identity_client.backends.storage import ContentStore, FilesystemContentStore
from identity_client.config import ClientConfig
from identity_client.errors import (
    BadCstrError,
    BadMnemonicError,
    BadSuriError,
    ChainError,
    ErrorCode,
    FailToLockError,
    FailToUnlockError,
    HasDeviceKeyError,
    NoAccountError,
    PasswordTooShortError,
)
from identity_client.identity.github import GithubVerifier
from identity_client.identity.proof import ProofService
from identity_client.identity.resolver import IdentityResolver
from identity_client.identity.services import Service, ServiceVerifier
from identity_client.keystore import crypto
from identity_client.keystore.keys import DeviceKey, InvalidMnemonicError, generate_phrase
from identity_client.keystore.keystore import KeyStore
from identity_client.keystore.suri import InvalidSuriError, Suri
from identity_client.state import ClientState, Operation, StateMachine

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _records_errors(method: F) -> F:
    """Remember the message of any exception raised by *method*."""

    @functools.wraps(method)
    def wrapper(self: "IdentityClient", *args: Any, **kwargs: Any) -> Any:
        try:
            return method(self, *args, **kwargs)
        except Exception as exc:
            self._set_last_error(exc)
            raise

    return wrapper  # type: ignore[return-value]


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise BadCstrError(f"{name} must be a string, got {type(value).__name__}.")
    return value


def _optional_str(value: object, name: str) -> Optional[str]:
    if value is None:
        return None
    return _require_str(value, name)


class IdentityClient:
    """Identity client context.

    Parameters
    ----------
    config:
        Runtime settings. Defaults to ``ClientConfig()``.
    ledger:
        Ledger collaborator. When omitted, :meth:`init` opens a
        :class:`~identity_client.backends.ledger.FileLedger` at
        ``config.ledger_path`` or ``<base_path>/ledger.json``.
    storage:
        Content storage collaborator. When omitted, :meth:`init` opens a
        :class:`~identity_client.backends.storage.FilesystemContentStore` at
        ``config.storage_path`` or ``<base_path>/db``.
    verifiers:
        Proof verifiers keyed by service. Defaults to a
        :class:`~identity_client.identity.github.GithubVerifier`.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        ledger: Optional[Ledger] = None,
        storage: Optional[ContentStore] = None,
        verifiers: Optional[dict[Service, ServiceVerifier]] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._ledger_override = ledger
        self._storage_override = storage
        self._verifiers = verifiers
        self._state = StateMachine()
        self._mutation = threading.RLock()
        self._error_lock = threading.Lock()
        self._last_error: Optional[str] = None

        # Populated by init(); the state machine guarantees they are set
        # before any other operation reads them.
        self.base_path: Optional[Path] = None
        self._keystore: KeyStore
        self._ledger: Ledger
        self._storage: ContentStore
        self._resolver: IdentityResolver
        self._proofs: ProofService
        self._audit: IdentityAuditLogger

    @property
    def state(self) -> ClientState:
        return self._state.state

    @property
    def audit(self) -> IdentityAuditLogger:
        return self._audit

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @_records_errors
    def init(self, base_path: Union[str, Path]) -> ErrorCode:
        """Open the keystore and collaborators under *base_path*.

        The client starts ``UNLOCKED`` if a key exists and its on-disk unlock
        session is still valid, ``LOCKED`` otherwise.

        Raises
        ------
        AlreadyInitializedError
            If the client was already initialized.
        BadCstrError
            If *base_path* is not a non-empty path.
        KeystoreOpenError
            If the keystore directory is unusable.
        ChainError, StorageConfigError
            If a default backend cannot be opened.
        """
        with self._mutation:
            self._state.check(Operation.INIT)
            if isinstance(base_path, str):
                if not base_path:
                    raise BadCstrError("base_path must not be empty.")
                base_path = Path(base_path)
            if not isinstance(base_path, Path):
                raise BadCstrError(f"base_path must be a path, got {type(base_path).__name__}.")

            config = self.config
            keystore = KeyStore.open(base_path / "keystore", kdf_cost=config.kdf_cost)
            ledger = self._ledger_override or FileLedger(
                config.ledger_path or base_path / "ledger.json"
            )
            storage = self._storage_override or FilesystemContentStore(
                config.storage_path or base_path / "db"
            )
            verifiers = self._verifiers
            if verifiers is None:
                verifiers = {
                    Service.GITHUB: GithubVerifier(
                        api_url=config.github_api_url, timeout=config.request_timeout
                    )
                }
            resolver = IdentityResolver(
                ledger, storage, verifiers, cache=config.cache_identities
            )

            self.base_path = base_path
            self._keystore = keystore
            self._ledger = ledger
            self._storage = storage
            self._resolver = resolver
            self._proofs = ProofService(ledger, storage, resolver)
            self._audit = IdentityAuditLogger(
                base_path / "audit.jsonl" if config.audit_log else None
            )

            unlocked = keystore.restore_session()
            has_key = keystore.has_device_key()
            self._state.mark_initialized(has_key=has_key, unlocked=unlocked)

        logger.info(
            "Client initialized at %s (state=%s)", base_path, self._state.state.value
        )
        self._audit.log_initialized(str(base_path), has_key, unlocked)
        return ErrorCode.OK

    @_records_errors
    def set_key(
        self,
        password: str,
        suri: Optional[str] = None,
        phrase: Optional[str] = None,
    ) -> dict[str, Optional[str]]:
        """Create, derive or restore the device key and store it under *password*.

        A mnemonic *phrase* takes precedence over a seed URI; with neither,
        a fresh key is generated. The store is left unlocked.

        Returns
        -------
        dict
            ``{"account_id": ..., "uid": ...}``; ``uid`` is None when the
            account has no uid on the ledger yet.

        Raises
        ------
        HasDeviceKeyError
            If a key already exists. The stored key is left untouched.
        PasswordTooShortError
            If *password* is shorter than ``min_password_length``.
        BadMnemonicError
            If *phrase* is invalid or carries less than 256 bits of entropy.
        BadSuriError
            If *suri* is malformed or seed URIs are disabled.
        """
        password = _require_str(password, "password")
        suri = _optional_str(suri, "suri")
        phrase = _optional_str(phrase, "phrase")

        with self._mutation:
            self._state.check(Operation.SET_KEY)
            if self._keystore.has_device_key():
                raise HasDeviceKeyError()
            if len(password) < self.config.min_password_length:
                raise PasswordTooShortError(
                    f"Password too short: at least {self.config.min_password_length} "
                    "characters are required."
                )
            device_key = self._derive_key(suri, phrase)
            provenance = device_key.provenance.value
            account_id = self._keystore.initialize(device_key, password)
            self._state.mark_key_set()
        logger.info("Device key set: %s (%s)", account_id, provenance)

        # Network phase runs outside the mutation lock.
        try:
            uid = self._ledger.uid_lookup(account_id)
        except ChainError as exc:
            logger.warning("UID lookup for %s failed: %s", account_id, exc)
            uid = None
        uid_str = None if uid is None else str(uid)
        self._audit.log_key_set(account_id, provenance, uid_str)
        return {"account_id": account_id, "uid": uid_str}

    def _derive_key(self, suri: Optional[str], phrase: Optional[str]) -> DeviceKey:
        if phrase is not None:
            try:
                return DeviceKey.from_mnemonic(phrase)
            except InvalidMnemonicError as exc:
                raise BadMnemonicError(str(exc)) from exc
        if suri is not None:
            if not self.config.allow_seed_uri:
                raise BadSuriError("Seed URIs are disabled in this build.")
            try:
                return DeviceKey.from_seed(Suri.parse(suri).seed)
            except InvalidSuriError as exc:
                raise BadSuriError(str(exc)) from exc
        return DeviceKey.generate()

    @_records_errors
    def lock(self) -> ErrorCode:
        """Forget the decrypted key and invalidate the unlock session.

        Raises
        ------
        FailToLockError
            If the session noise cannot be zeroed. The in-memory key is
            wiped and the client is ``LOCKED`` regardless.
        """
        with self._mutation:
            self._state.check(Operation.LOCK)
            account_id = self._keystore.stored_account_id() or ""
            try:
                self._keystore.lock()
            except FailToLockError:
                self._state.mark_locked()
                self._audit.log_lock(account_id, success=False)
                raise
            self._state.mark_locked()
        logger.info("Keystore locked")
        self._audit.log_lock(account_id, success=True)
        return ErrorCode.LOCKED_OK

    @_records_errors
    def unlock(self, password: str) -> ErrorCode:
        """Decrypt the device key with *password*.

        Raises
        ------
        FailToUnlockError
            If the password is wrong. Nothing persisted changes.
        """
        password = _require_str(password, "password")
        with self._mutation:
            self._state.check(Operation.UNLOCK)
            try:
                account_id = self._keystore.unlock(password)
            except FailToUnlockError:
                self._audit.log_unlock("", success=False)
                raise
            self._state.mark_unlocked()
        logger.info("Keystore unlocked")
        self._audit.log_unlock(account_id, success=True)
        return ErrorCode.UNLOCKED_OK

    @_records_errors
    def change_password(self, new_password: str) -> ErrorCode:
        """Re-protect the device key with *new_password*.

        Raises
        ------
        PasswordTooShortError
            If *new_password* is shorter than ``min_password_length``.
        """
        new_password = _require_str(new_password, "new_password")
        with self._mutation:
            self._state.check(Operation.CHANGE_PASSWORD)
            if len(new_password) < self.config.min_password_length:
                raise PasswordTooShortError()
            self._keystore.change_password(new_password)
            account_id = self._keystore.account_id()
        self._audit.log_password_changed(account_id)
        return ErrorCode.OK

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @_records_errors
    def has_device_key(self) -> bool:
        self._state.check(Operation.HAS_DEVICE_KEY)
        return self._keystore.has_device_key()

    @_records_errors
    def account_id(self) -> str:
        """Return the account id of the unlocked device key."""
        self._state.check(Operation.ACCOUNT_ID)
        return self._keystore.account_id()

    @_records_errors
    def signer_account_id(self) -> str:
        """Return the account id that signs ledger submissions."""
        self._state.check(Operation.SIGNER_ACCOUNT_ID)
        return self._keystore.account_id()

    @_records_errors
    def resolve_uid(self, identifier: str) -> Optional[str]:
        """Return the uid named by *identifier* as a string, or None.

        Raises
        ------
        UnknownServiceError
            If a ``name@service`` identifier names an unsupported service.
        ChainError, StorageError
            On collaborator failure.
        """
        self._state.check(Operation.RESOLVE_UID)
        identifier = _require_str(identifier, "identifier")
        uid = self._resolver.resolve_uid(identifier)
        return None if uid is None else str(uid)

    @_records_errors
    def identity(self, uid: Union[str, int]) -> dict[str, object]:
        """Return the identity record of *uid* as a plain dict.

        Raises
        ------
        BadUidError
            If *uid* is not a non-negative decimal integer.
        StorageError
            If none of the identity's claims can be loaded.
        """
        self._state.check(Operation.IDENTITY)
        return self._resolver.identity(uid).to_dict()

    # ------------------------------------------------------------------
    # Signed operations
    # ------------------------------------------------------------------

    @_records_errors
    def prove_identity(self, service: Union[int, str], external_id: str) -> dict[str, object]:
        """Anchor a claim that *external_id* on *service* belongs to this identity.

        Returns the submission: claim cid and seqno, the proof text to
        publish, publishing instructions and status ``pending``.

        Raises
        ------
        LockedError
            If the keystore is locked. No collaborator is contacted.
        UnknownServiceError
            If *service* is not supported.
        NoAccountError
            If the device key has no uid.
        ChainError, StorageError
            On collaborator failure.
        """
        self._state.check(Operation.PROVE_IDENTITY)
        external_id = _require_str(external_id, "external_id")
        submission = self._proofs.prove(self._keystore, service, external_id)
        self._audit.log_proof(
            self._keystore.account_id(),
            submission.service.label,
            submission.external_id,
            submission.cid,
        )
        return submission.to_dict()

    @_records_errors
    def revoke_identity(self, service: Union[int, str]) -> bool:
        """Revoke the newest live proof for *service*; False if there is none."""
        self._state.check(Operation.REVOKE_IDENTITY)
        parsed = Service.parse(service)
        revoked = self._proofs.revoke(self._keystore, parsed)
        if revoked:
            self._audit.log_proof(
                self._keystore.account_id(), parsed.label, "", "", revoked=True
            )
        return revoked

    @_records_errors
    def add_paperkey(self) -> str:
        """Issue a new paperkey for the current uid and return its phrase.

        The phrase is returned exactly once and never stored; only its
        fingerprint is kept locally.

        Raises
        ------
        NoAccountError
            If the device key has no uid.
        """
        self._state.check(Operation.ADD_PAPERKEY)
        signer = self._keystore.account_id()
        uid = self._ledger.uid_lookup(signer)
        if uid is None:
            raise NoAccountError()

        phrase = generate_phrase()
        paperkey = DeviceKey.from_mnemonic(phrase)
        try:
            paperkey_account = paperkey.account_id
        finally:
            paperkey.zeroize()
        self._ledger.add_key(signer, paperkey_account, paperkey=True)
        fingerprint = crypto.fingerprint(paperkey_account)
        self._keystore.add_paperkey_fingerprint(fingerprint)
        self._resolver.invalidate(uid)
        logger.info("Paperkey %s added to uid %d", fingerprint, uid)
        self._audit.log_paperkey(signer, fingerprint, uid)
        return phrase

    @_records_errors
    def create_account_for(self, account_id: str, name: Optional[str] = None) -> str:
        """Create a uid owning *account_id* and return it.

        Raises
        ------
        BadCstrError
            If *account_id* is not a valid account id.
        ChainError
            If the ledger rejects the account.
        """
        self._state.check(Operation.CREATE_ACCOUNT)
        account_id = _require_str(account_id, "account_id")
        name = _optional_str(name, "name")
        if not crypto.is_account_id(account_id):
            raise BadCstrError(f"Invalid account id {account_id!r}.")
        uid = self._ledger.create_account_for(self._keystore.account_id(), account_id, name)
        self._resolver.invalidate()
        return str(uid)

    @_records_errors
    def add_key(self, account_id: str) -> ErrorCode:
        """Register another device's *account_id* under the current uid."""
        self._state.check(Operation.ADD_KEY)
        account_id = _require_str(account_id, "account_id")
        if not crypto.is_account_id(account_id):
            raise BadCstrError(f"Invalid account id {account_id!r}.")
        signer = self._keystore.account_id()
        uid = self._ledger.uid_lookup(signer)
        if uid is None:
            raise NoAccountError()
        self._ledger.add_key(signer, account_id)
        self._resolver.invalidate(uid)
        return ErrorCode.OK

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def error_message(self) -> Optional[str]:
        """Return the message of the most recent failure, or None."""
        with self._error_lock:
            return self._last_error

    def last_error_length(self) -> int:
        """Return the UTF-8 byte length of :meth:`error_message` (0 when none)."""
        message = self.error_message()
        return 0 if message is None else len(message.encode("utf-8"))

    def _set_last_error(self, exc: BaseException) -> None:
        with self._error_lock:
            self._last_error = str(exc) or type(exc).__name__


__all__ = ["IdentityClient"]
