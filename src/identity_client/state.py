"""Key lifecycle state machine.

:class:`StateMachine` is the single authority on whether an operation is
legal right now. Every client entry point calls :meth:`StateMachine.check`
before touching the keystore, the ledger or content storage, so a call that
cannot succeed fails fast with no side effects.

States::

    UNINITIALIZED --init--> LOCKED (no key, or key without a live session)
                        \\--> UNLOCKED (key with a live session)
    LOCKED   --set_key / unlock--> UNLOCKED
    UNLOCKED --lock-->             LOCKED
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum

from identity_client.errors import (
    AlreadyInitializedError,
    HasDeviceKeyError,
    LockedError,
    NoDeviceKeyError,
    UninitializedError,
)


class ClientState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class Operation(str, Enum):
    """Every operation the client exposes, used as the dispatch kind."""

    INIT = "init"
    HAS_DEVICE_KEY = "has_device_key"
    SET_KEY = "set_key"
    LOCK = "lock"
    UNLOCK = "unlock"
    CHANGE_PASSWORD = "change_password"
    ADD_PAPERKEY = "add_paperkey"
    RESOLVE_UID = "resolve_uid"
    IDENTITY = "identity"
    PROVE_IDENTITY = "prove_identity"
    REVOKE_IDENTITY = "revoke_identity"
    ACCOUNT_ID = "account_id"
    SIGNER_ACCOUNT_ID = "signer_account_id"
    CREATE_ACCOUNT = "create_account_for"
    ADD_KEY = "add_key"


class Gate(Enum):
    NONE = "none"
    INITIALIZED = "initialized"
    NO_KEY = "no_key"
    HAS_KEY = "has_key"
    UNLOCKED = "unlocked"


GATES: dict[Operation, Gate] = {
    Operation.INIT: Gate.NONE,
    Operation.HAS_DEVICE_KEY: Gate.INITIALIZED,
    Operation.RESOLVE_UID: Gate.INITIALIZED,
    Operation.IDENTITY: Gate.INITIALIZED,
    Operation.SET_KEY: Gate.NO_KEY,
    Operation.LOCK: Gate.HAS_KEY,
    Operation.UNLOCK: Gate.HAS_KEY,
    Operation.CHANGE_PASSWORD: Gate.UNLOCKED,
    Operation.ADD_PAPERKEY: Gate.UNLOCKED,
    Operation.PROVE_IDENTITY: Gate.UNLOCKED,
    Operation.REVOKE_IDENTITY: Gate.UNLOCKED,
    Operation.ACCOUNT_ID: Gate.UNLOCKED,
    Operation.SIGNER_ACCOUNT_ID: Gate.UNLOCKED,
    Operation.CREATE_ACCOUNT: Gate.UNLOCKED,
    Operation.ADD_KEY: Gate.UNLOCKED,
}


@dataclass(frozen=True)
class StateSnapshot:
    state: ClientState
    has_key: bool

    @property
    def initialized(self) -> bool:
        return self.state is not ClientState.UNINITIALIZED


class StateMachine:
    """Tracks :class:`ClientState` and the presence of a device key.

    Thread-safe. Transitions and checks take an internal lock that is held
    only for the in-memory update, never across I/O.
    """

    def __init__(self) -> None:
        self._state = ClientState.UNINITIALIZED
        self._has_key = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            return StateSnapshot(self._state, self._has_key)

    @property
    def state(self) -> ClientState:
        return self.snapshot().state

    def check(self, operation: Operation) -> StateSnapshot:
        """Raise if *operation* is illegal in the current state.

        Returns the snapshot the decision was based on.

        Raises
        ------
        UninitializedError, AlreadyInitializedError, HasDeviceKeyError,
        NoDeviceKeyError, LockedError
        """
        snapshot = self.snapshot()
        gate = GATES[operation]
        if gate is Gate.NONE:
            if snapshot.initialized:
                raise AlreadyInitializedError()
            return snapshot
        if not snapshot.initialized:
            raise UninitializedError()
        if gate is Gate.INITIALIZED:
            return snapshot
        if gate is Gate.NO_KEY:
            if snapshot.has_key:
                raise HasDeviceKeyError()
            return snapshot
        if not snapshot.has_key:
            raise NoDeviceKeyError()
        if gate is Gate.UNLOCKED and snapshot.state is not ClientState.UNLOCKED:
            raise LockedError()
        return snapshot

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_initialized(self, has_key: bool, unlocked: bool) -> None:
        with self._lock:
            if self._state is not ClientState.UNINITIALIZED:
                raise AlreadyInitializedError()
            self._has_key = has_key
            self._state = (
                ClientState.UNLOCKED if has_key and unlocked else ClientState.LOCKED
            )

    def mark_key_set(self) -> None:
        with self._lock:
            self._require_initialized()
            self._has_key = True
            self._state = ClientState.UNLOCKED

    def mark_unlocked(self) -> None:
        with self._lock:
            self._require_initialized()
            self._state = ClientState.UNLOCKED

    def mark_locked(self) -> None:
        with self._lock:
            self._require_initialized()
            self._state = ClientState.LOCKED

    def _require_initialized(self) -> None:
        if self._state is ClientState.UNINITIALIZED:
            raise UninitializedError()


__all__ = ["ClientState", "GATES", "Gate", "Operation", "StateMachine", "StateSnapshot"]
