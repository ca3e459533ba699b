"""identity-client — device keys, identity resolution and ownership proofs.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Quick start
-----------
::

    from identity_client import ClientConfig, IdentityClient, Service

    client = IdentityClient(ClientConfig())
    client.init("/path/to/state")
    client.set_key("correct horse battery")
    client.prove_identity(Service.GITHUB, "octocat")
"""
from __future__ import annotations

__version__: str = "0.1.0"

from identity_client.audit import AuditEvent, IdentityAuditLogger
from identity_client.client import IdentityClient
from identity_client.config import ClientConfig

# ------------------------------------------------------------------
# Dispatch
# ------------------------------------------------------------------
from identity_client.dispatch import (
    CallbackSink,
    Completion,
    CompletionSink,
    Dispatcher,
    FutureSink,
    PendingRequest,
)

# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------
from identity_client.errors import (
    AlreadyInitializedError,
    BadCstrError,
    BadMnemonicError,
    BadSuriError,
    BadUidError,
    ChainError,
    ChainTimeoutError,
    ChannelBusyError,
    ErrorCode,
    FailToLockError,
    FailToUnlockError,
    HasDeviceKeyError,
    IdentityClientError,
    KeystoreOpenError,
    LockedError,
    NoAccountError,
    NoDeviceKeyError,
    PasswordTooShortError,
    StorageConfigError,
    StorageError,
    StorageTimeoutError,
    UninitializedError,
    UnknownError,
    UnknownServiceError,
    error_code_for,
)

# ------------------------------------------------------------------
# Identity
# ------------------------------------------------------------------
from identity_client.identity import (
    GithubVerifier,
    IdentityRecord,
    IdentityResolver,
    MissingClaim,
    ProofClaim,
    ProofService,
    ProofStatus,
    ProofSubmission,
    Service,
    ServiceVerifier,
)

# ------------------------------------------------------------------
# Keystore and state
# ------------------------------------------------------------------
from identity_client.keystore import DeviceKey, KeyProvenance, KeyStore
from identity_client.state import ClientState, Operation, StateMachine

__all__ = [
    "__version__",
    # Client
    "ClientConfig",
    "IdentityClient",
    "AuditEvent",
    "IdentityAuditLogger",
    # Dispatch
    "CallbackSink",
    "Completion",
    "CompletionSink",
    "Dispatcher",
    "FutureSink",
    "PendingRequest",
    # Errors
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
    # Identity
    "GithubVerifier",
    "IdentityRecord",
    "IdentityResolver",
    "MissingClaim",
    "ProofClaim",
    "ProofService",
    "ProofStatus",
    "ProofSubmission",
    "Service",
    "ServiceVerifier",
    # Keystore and state
    "ClientState",
    "DeviceKey",
    "KeyProvenance",
    "KeyStore",
    "Operation",
    "StateMachine",
]
