"""Keystore subsystem — device key derivation, encryption at rest, lock/unlock."""
from __future__ import annotations

from identity_client.keystore.keys import (
    DeviceKey,
    InvalidMnemonicError,
    KeyProvenance,
    NotEnoughEntropyError,
    generate_phrase,
)
from identity_client.keystore.keystore import KeyStore
from identity_client.keystore.suri import DEV_PHRASE, InvalidSuriError, Suri

__all__ = [
    "DEV_PHRASE",
    "DeviceKey",
    "InvalidMnemonicError",
    "InvalidSuriError",
    "KeyProvenance",
    "KeyStore",
    "NotEnoughEntropyError",
    "Suri",
    "generate_phrase",
]
