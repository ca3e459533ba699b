"""KeyStore — encrypted device key storage with password lock/unlock.

Layout on disk (all files ``0o600``)::

    <path>/encrypted_device_key   nonce || AES-GCM(random_key, device_seed)
    <path>/public_device_key      random_key XOR kdf(password)
    <path>/encrypted_random_key   random_key XOR hash(noise)     (unlocked only)
    <path>/noise                  random bytes, zeroed on lock
    <path>/device_key.json        account id and derivation provenance
    <path>/paperkeys.json         fingerprints of issued paperkeys

The password never touches disk. Unlocking recovers the random key from the
public device key and the password, authenticates it against the encrypted
device key, then stores the random key masked with a fresh noise file so the
session survives a restart. Locking zeroes the noise file and the in-memory
seed; after that only the password can recover the key.

The decrypted seed is held in memory between unlock and lock and is only
reachable through :meth:`KeyStore.sign` and :meth:`KeyStore.account_id`.
"""
from __future__ import annotations

import datetime
import json
import logging
import threading
from pathlib import Path
from typing import Optional

from identity_client.errors import (
    FailToLockError,
    FailToUnlockError,
    KeystoreOpenError,
    LockedError,
    NoDeviceKeyError,
)
from identity_client.keystore import crypto
from identity_client.keystore.files import NoiseFile, SecretFile, write_private
from identity_client.keystore.keys import DeviceKey, KeyProvenance

logger = logging.getLogger(__name__)


class KeyStore:
    """Password-protected storage for a single device key.

    Thread-safe. The in-memory seed is guarded by an internal lock, so a
    signature is never computed from a seed that is concurrently being
    zeroed.

    Parameters
    ----------
    path:
        Directory holding the keystore files.
    kdf_cost:
        Scrypt work factor exponent for password keys.
    """

    def __init__(self, path: Path, kdf_cost: int = 14) -> None:
        self.path = Path(path)
        self._kdf_cost = kdf_cost
        self._edk = SecretFile(self.path / "encrypted_device_key", crypto.AUTH_SECRET_LEN)
        self._pdk = SecretFile(self.path / "public_device_key")
        self._erk = SecretFile(self.path / "encrypted_random_key")
        self._noise = NoiseFile(self.path / "noise")
        self._info = self.path / "device_key.json"
        self._paperkeys = self.path / "paperkeys.json"
        self._device_key: Optional[DeviceKey] = None
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: Path, kdf_cost: int = 14) -> "KeyStore":
        """Open (creating if needed) the keystore directory at *path*.

        Raises
        ------
        KeystoreOpenError
            If the directory cannot be created or is not writable.
        """
        store = cls(path, kdf_cost=kdf_cost)
        try:
            store.path.mkdir(parents=True, exist_ok=True)
            probe = store.path / ".probe"
            probe.write_bytes(b"")
            probe.unlink()
        except OSError as exc:
            raise KeystoreOpenError(f"Failed to open keystore at {store.path}: {exc}") from exc
        return store

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_device_key(self) -> bool:
        return self._edk.exists()

    @property
    def is_unlocked(self) -> bool:
        with self._lock:
            return self._device_key is not None

    def account_id(self) -> str:
        with self._lock:
            return self._unlocked_key().account_id

    def stored_account_id(self) -> Optional[str]:
        """Return the account id recorded on disk; readable while locked."""
        try:
            info = json.loads(self._info.read_text(encoding="utf-8"))
            return str(info["account_id"])
        except (OSError, ValueError, KeyError):
            return None

    def provenance(self) -> KeyProvenance:
        with self._lock:
            return self._unlocked_key().provenance

    def sign(self, data: bytes) -> bytes:
        """Sign *data* with the device key.

        Raises
        ------
        LockedError
            If the keystore is locked.
        """
        with self._lock:
            return self._unlocked_key().sign(data)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def restore_session(self) -> bool:
        """Reload the device key from a still-valid unlock session on disk.

        Returns ``True`` when the keystore comes back unlocked; any missing,
        zeroed or corrupted session file leaves it locked.
        """
        if not (self.has_device_key() and self._erk.exists() and self._noise.exists()):
            return False
        try:
            random_key = crypto.xor(self._erk.read(), self._noise.read_secret())
            seed = crypto.auth_decrypt(self._edk.read(), random_key)
        except (OSError, crypto.AuthenticationError):
            return False
        with self._lock:
            self._device_key = DeviceKey.from_seed(seed, self._stored_provenance())
        return True

    def initialize(self, device_key: DeviceKey, password: str) -> str:
        """Encrypt and persist *device_key* under *password*, leaving it unlocked.

        The encrypted device key is written last, so :meth:`has_device_key`
        only turns true once every other file is in place.

        Returns
        -------
        str
            The account id of the stored key.
        """
        random_key = crypto.random_secret()
        password_key = crypto.derive_password_key(password, self._kdf_cost)
        self._pdk.write(crypto.xor(random_key, password_key))
        self._open_session(random_key)
        info = {"account_id": device_key.account_id, "provenance": device_key.provenance.value}
        write_private(self._info, json.dumps(info).encode("utf-8"))
        self._edk.write(crypto.auth_encrypt(bytes(device_key.seed), random_key))
        with self._lock:
            self._replace_key(device_key)
        logger.info("Device key stored in %s (%s)", self.path, device_key.provenance.value)
        return device_key.account_id

    def unlock(self, password: str) -> str:
        """Decrypt the device key with *password*.

        Nothing on disk changes unless the password is correct.

        Raises
        ------
        NoDeviceKeyError
            If no key has been stored.
        FailToUnlockError
            If the password is wrong or the session files cannot be written.
        """
        if not self.has_device_key():
            raise NoDeviceKeyError()
        try:
            password_key = crypto.derive_password_key(password, self._kdf_cost)
            random_key = crypto.xor(self._pdk.read(), password_key)
            seed = crypto.auth_decrypt(self._edk.read(), random_key)
        except crypto.AuthenticationError as exc:
            raise FailToUnlockError("Failed to unlock keystore: wrong password.") from exc
        except OSError as exc:
            raise FailToUnlockError(f"Failed to unlock keystore: {exc}") from exc
        try:
            self._open_session(random_key)
        except OSError as exc:
            raise FailToUnlockError(f"Failed to unlock keystore: {exc}") from exc
        device_key = DeviceKey.from_seed(seed, self._stored_provenance())
        with self._lock:
            self._replace_key(device_key)
        return device_key.account_id

    def lock(self) -> None:
        """Forget the decrypted key and zero the session noise.

        Safe to call when already locked. The in-memory seed is wiped before
        the noise file is flushed.

        Raises
        ------
        FailToLockError
            If the noise file cannot be zeroed.
        """
        with self._lock:
            self._replace_key(None)
        try:
            self._noise.zeroize()
        except OSError as exc:
            raise FailToLockError(f"Failed to lock keystore: {exc}") from exc

    def change_password(self, new_password: str) -> None:
        """Re-wrap the random key for *new_password*. Requires an unlocked store."""
        with self._lock:
            self._unlocked_key()
        random_key = crypto.xor(self._erk.read(), self._noise.read_secret())
        password_key = crypto.derive_password_key(new_password, self._kdf_cost)
        self._pdk.write(crypto.xor(random_key, password_key))
        logger.info("Keystore password changed for %s", self.path)

    # ------------------------------------------------------------------
    # Paperkeys
    # ------------------------------------------------------------------

    def add_paperkey_fingerprint(self, fingerprint: str) -> None:
        entries = self._read_paperkeys()
        entries.append(
            {
                "fingerprint": fingerprint,
                "created_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            }
        )
        write_private(self._paperkeys, json.dumps(entries, indent=2).encode("utf-8"))

    def paperkey_fingerprints(self) -> list[str]:
        return [str(entry["fingerprint"]) for entry in self._read_paperkeys()]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _open_session(self, random_key: bytes) -> None:
        self._noise.generate()
        self._erk.write(crypto.xor(random_key, self._noise.read_secret()))

    def _unlocked_key(self) -> DeviceKey:
        if self._device_key is None:
            if not self.has_device_key():
                raise NoDeviceKeyError()
            raise LockedError()
        return self._device_key

    def _replace_key(self, device_key: Optional[DeviceKey]) -> None:
        if self._device_key is not None and self._device_key is not device_key:
            self._device_key.zeroize()
        self._device_key = device_key

    def _stored_provenance(self) -> KeyProvenance:
        try:
            info = json.loads(self._info.read_text(encoding="utf-8"))
            return KeyProvenance(info["provenance"])
        except (OSError, ValueError, KeyError):
            return KeyProvenance.GENERATED

    def _read_paperkeys(self) -> list[dict[str, object]]:
        if not self._paperkeys.exists():
            return []
        return list(json.loads(self._paperkeys.read_text(encoding="utf-8")))


__all__ = ["KeyStore"]
