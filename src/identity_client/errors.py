"""Error codes and exception types for the identity client.

Every failure the client can report carries an :class:`ErrorCode`. The
numeric values are the ones exposed across the host boundary, so they are
stable: hosts branch on them programmatically and fetch the human-readable
text separately through :meth:`IdentityClient.error_message`.

The exception hierarchy follows four families:

usage
    The operation is illegal in the current lifecycle state
    (:class:`UninitializedError`, :class:`AlreadyInitializedError`,
    :class:`HasDeviceKeyError`, :class:`NoDeviceKeyError`,
    :class:`LockedError`).
input
    A malformed argument, detected before any side effect
    (:class:`BadCstrError`, :class:`BadSuriError`,
    :class:`BadMnemonicError`, :class:`BadUidError`,
    :class:`PasswordTooShortError`, :class:`UnknownServiceError`).
collaborator
    A local storage fault (:class:`KeystoreOpenError`,
    :class:`FailToLockError`, :class:`FailToUnlockError`) or a remote one
    (:class:`ChainError`, :class:`StorageError` and their timeout variants).
unknown
    Anything unclassified, reported as :attr:`ErrorCode.UNKNOWN`.
"""
from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Result codes shared by every boundary operation."""

    UNKNOWN = -1
    OK = 1
    BAD_CSTR = 2
    CHAIN_ERROR = 3
    STORAGE_CONFIG_ERROR = 4
    KEYSTORE_OPEN_ERROR = 5
    STORAGE_ERROR = 6
    UNINITIALIZED = 7
    ALREADY_INITIALIZED = 8
    HAS_DEVICE_KEY = 9
    PASSWORD_TOO_SHORT = 10
    BAD_SURI = 11
    BAD_MNEMONIC = 12
    BAD_UID = 13
    FAIL_TO_LOCK = 14
    LOCKED_OK = 15
    FAIL_TO_UNLOCK = 16
    UNLOCKED_OK = 17
    UNKNOWN_SERVICE = 18
    LOCKED = 19
    NO_DEVICE_KEY = 20


class IdentityClientError(Exception):
    """Base class for every error the identity client reports."""

    code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "unknown error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# ------------------------------------------------------------------
# Usage errors
# ------------------------------------------------------------------


class UninitializedError(IdentityClientError):
    code = ErrorCode.UNINITIALIZED
    default_message = "Client is not initialized. Call init() first."


class AlreadyInitializedError(IdentityClientError):
    code = ErrorCode.ALREADY_INITIALIZED
    default_message = "Client is already initialized."


class HasDeviceKeyError(IdentityClientError):
    code = ErrorCode.HAS_DEVICE_KEY
    default_message = "Device key is already configured."


class NoDeviceKeyError(IdentityClientError):
    code = ErrorCode.NO_DEVICE_KEY
    default_message = "No device key is configured. Call set_key() first."


class LockedError(IdentityClientError):
    code = ErrorCode.LOCKED
    default_message = "Keystore is locked. Call unlock() first."


# ------------------------------------------------------------------
# Input errors
# ------------------------------------------------------------------


class BadCstrError(IdentityClientError):
    code = ErrorCode.BAD_CSTR
    default_message = "Argument is missing or is not a valid string."


class BadSuriError(IdentityClientError):
    code = ErrorCode.BAD_SURI
    default_message = "Invalid secret URI."


class BadMnemonicError(IdentityClientError):
    code = ErrorCode.BAD_MNEMONIC
    default_message = "Invalid paperkey."


class BadUidError(IdentityClientError):
    code = ErrorCode.BAD_UID
    default_message = "Invalid uid."


class NoAccountError(BadUidError):
    """The signing key is not associated with any uid on the ledger."""

    default_message = "Failed to find account associated with key."


class PasswordTooShortError(IdentityClientError):
    code = ErrorCode.PASSWORD_TOO_SHORT
    default_message = "Password too short."


class UnknownServiceError(IdentityClientError):
    code = ErrorCode.UNKNOWN_SERVICE
    default_message = "Unknown service."


# ------------------------------------------------------------------
# Collaborator errors
# ------------------------------------------------------------------


class KeystoreOpenError(IdentityClientError):
    code = ErrorCode.KEYSTORE_OPEN_ERROR
    default_message = "Failed to open keystore."


class FailToLockError(IdentityClientError):
    code = ErrorCode.FAIL_TO_LOCK
    default_message = "Failed to lock keystore."


class FailToUnlockError(IdentityClientError):
    code = ErrorCode.FAIL_TO_UNLOCK
    default_message = "Failed to unlock keystore."


class ChainError(IdentityClientError):
    code = ErrorCode.CHAIN_ERROR
    default_message = "Ledger request failed."


class ChainTimeoutError(ChainError):
    default_message = "Ledger request timed out."


class StorageConfigError(IdentityClientError):
    code = ErrorCode.STORAGE_CONFIG_ERROR
    default_message = "Invalid content storage configuration."


class StorageError(IdentityClientError):
    code = ErrorCode.STORAGE_ERROR
    default_message = "Content storage request failed."


class StorageTimeoutError(StorageError):
    default_message = "Content storage request timed out."


class UnknownError(IdentityClientError):
    code = ErrorCode.UNKNOWN


class ChannelBusyError(ValueError):
    """Raised when a host dispatches onto a port that is still in flight."""

    def __init__(self, port: int) -> None:
        super().__init__(
            f"Port {port} already has a pending request. "
            "Wait for its completion before reusing it."
        )
        self.port = port


def error_code_for(exc: BaseException) -> ErrorCode:
    """Return the boundary code for *exc*.

    Unclassified exceptions map to :attr:`ErrorCode.UNKNOWN`; they are never
    folded into a known kind.
    """
    if isinstance(exc, IdentityClientError):
        return exc.code
    return ErrorCode.UNKNOWN


__all__ = [
    "AlreadyInitializedError",
    "BadCstrError",
    "BadMnemonicError",
    "BadSuriError",
    "BadUidError",
    "ChainError",
    "ChainTimeoutError",
    "ChannelBusyError",
    "ErrorCode",
    "FailToLockError",
    "FailToUnlockError",
    "HasDeviceKeyError",
    "IdentityClientError",
    "KeystoreOpenError",
    "LockedError",
    "NoAccountError",
    "NoDeviceKeyError",
    "PasswordTooShortError",
    "StorageConfigError",
    "StorageError",
    "StorageTimeoutError",
    "UninitializedError",
    "UnknownError",
    "UnknownServiceError",
    "error_code_for",
]
