"""Tests for identity_client.keystore.keystore — encrypted storage and lock/unlock."""
from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from identity_client.errors import (
    FailToLockError,
    FailToUnlockError,
    KeystoreOpenError,
    LockedError,
    NoDeviceKeyError,
)
from identity_client.keystore.keys import DeviceKey, KeyProvenance
from identity_client.keystore.keystore import KeyStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def keystore(tmp_path: Path) -> KeyStore:
    return KeyStore.open(tmp_path / "keystore", kdf_cost=4)


@pytest.fixture()
def stored(keystore: KeyStore, password: str) -> KeyStore:
    keystore.initialize(DeviceKey.generate(), password)
    return keystore


def _snapshot(path: Path) -> dict[str, bytes]:
    return {entry.name: entry.read_bytes() for entry in sorted(path.iterdir())}


# ---------------------------------------------------------------------------
# Opening
# ---------------------------------------------------------------------------


class TestOpen:
    def test_creates_directory(self, tmp_path: Path) -> None:
        store = KeyStore.open(tmp_path / "a" / "b", kdf_cost=4)
        assert store.path.is_dir()
        assert store.has_device_key() is False

    def test_path_that_is_a_file_fails(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(KeystoreOpenError):
            KeyStore.open(blocker, kdf_cost=4)


# ---------------------------------------------------------------------------
# Initialize
# ---------------------------------------------------------------------------


class TestInitialize:
    def test_leaves_store_unlocked(self, keystore: KeyStore, password: str) -> None:
        key = DeviceKey.generate()
        expected = key.account_id
        account_id = keystore.initialize(key, password)
        assert account_id == expected
        assert keystore.is_unlocked
        assert keystore.has_device_key()
        assert keystore.account_id() == expected

    def test_files_are_owner_only(self, stored: KeyStore) -> None:
        for name in ("encrypted_device_key", "public_device_key", "noise", "device_key.json"):
            mode = stat.S_IMODE(os.stat(stored.path / name).st_mode)
            assert mode == 0o600, name

    def test_password_is_not_on_disk(self, stored: KeyStore, password: str) -> None:
        for content in _snapshot(stored.path).values():
            assert password.encode("utf-8") not in content

    def test_stored_account_id_readable_while_locked(self, stored: KeyStore) -> None:
        account_id = stored.account_id()
        stored.lock()
        assert stored.stored_account_id() == account_id

    def test_stored_account_id_none_without_key(self, keystore: KeyStore) -> None:
        assert keystore.stored_account_id() is None


# ---------------------------------------------------------------------------
# Lock / unlock
# ---------------------------------------------------------------------------


class TestLockUnlock:
    def test_lock_blocks_signing(self, stored: KeyStore) -> None:
        stored.lock()
        assert not stored.is_unlocked
        with pytest.raises(LockedError):
            stored.sign(b"data")
        with pytest.raises(LockedError):
            stored.account_id()

    def test_lock_is_idempotent(self, stored: KeyStore) -> None:
        stored.lock()
        stored.lock()
        assert not stored.is_unlocked

    def test_unlock_restores_same_key(self, stored: KeyStore, password: str) -> None:
        account_id = stored.account_id()
        stored.lock()
        assert stored.unlock(password) == account_id
        assert stored.account_id() == account_id

    def test_wrong_password_changes_nothing(self, stored: KeyStore, password: str) -> None:
        stored.lock()
        before = _snapshot(stored.path)
        with pytest.raises(FailToUnlockError):
            stored.unlock("not the password")
        assert _snapshot(stored.path) == before
        assert not stored.is_unlocked

    def test_unlock_without_key(self, keystore: KeyStore) -> None:
        with pytest.raises(NoDeviceKeyError):
            keystore.unlock("whatever123")

    def test_sign_without_key(self, keystore: KeyStore) -> None:
        with pytest.raises(NoDeviceKeyError):
            keystore.sign(b"data")

    def test_lock_zeroes_noise(self, stored: KeyStore) -> None:
        stored.lock()
        assert (stored.path / "noise").read_bytes() == bytes(
            len((stored.path / "noise").read_bytes())
        )

    def test_lock_failure_still_wipes_memory(
        self, stored: KeyStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken() -> None:
            raise OSError("disk full")

        monkeypatch.setattr(stored._noise, "zeroize", broken)
        with pytest.raises(FailToLockError):
            stored.lock()
        assert not stored.is_unlocked

    def test_provenance_survives_unlock(self, keystore: KeyStore, password: str) -> None:
        keystore.initialize(DeviceKey.from_seed(b"\x07" * 32), password)
        keystore.lock()
        keystore.unlock(password)
        assert keystore.provenance() is KeyProvenance.SEED_URI


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestRestoreSession:
    def test_reopened_store_is_unlocked(self, stored: KeyStore, tmp_path: Path) -> None:
        account_id = stored.account_id()
        reopened = KeyStore.open(stored.path, kdf_cost=4)
        assert reopened.restore_session() is True
        assert reopened.account_id() == account_id

    def test_locked_store_stays_locked(self, stored: KeyStore) -> None:
        stored.lock()
        reopened = KeyStore.open(stored.path, kdf_cost=4)
        assert reopened.restore_session() is False
        assert not reopened.is_unlocked

    def test_no_key_no_session(self, keystore: KeyStore) -> None:
        assert keystore.restore_session() is False


# ---------------------------------------------------------------------------
# Password change and paperkeys
# ---------------------------------------------------------------------------


class TestChangePassword:
    def test_new_password_unlocks(self, stored: KeyStore, password: str) -> None:
        account_id = stored.account_id()
        stored.change_password("brand new password")
        stored.lock()
        with pytest.raises(FailToUnlockError):
            stored.unlock(password)
        assert stored.unlock("brand new password") == account_id

    def test_requires_unlocked(self, stored: KeyStore) -> None:
        stored.lock()
        with pytest.raises(LockedError):
            stored.change_password("brand new password")


class TestPaperkeyFingerprints:
    def test_empty_by_default(self, keystore: KeyStore) -> None:
        assert keystore.paperkey_fingerprints() == []

    def test_fingerprints_accumulate(self, stored: KeyStore) -> None:
        stored.add_paperkey_fingerprint("aaaa")
        stored.add_paperkey_fingerprint("bbbb")
        assert stored.paperkey_fingerprints() == ["aaaa", "bbbb"]
