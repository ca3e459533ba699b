"""Fixed-size secret files with owner-only permissions.

Every write goes through :func:`write_private`: the buffer is written to a
sibling ``.tmp`` file created with mode ``0o600``, flushed with fsync, then moved
into place, so readers never observe a half-written secret.
"""
from __future__ import annotations

import os
from pathlib import Path

from identity_client.keystore import crypto

NOISE_BLOCK = 4096
NOISE_BLOCKS = 16


def write_private(path: Path, data: bytes) -> None:
    tmp = path.with_name(path.name + ".tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        os.write(fd, data)
        os.fsync(fd)
    finally:
        os.close(fd)
    os.replace(tmp, path)


def _read_exact(path: Path, length: int) -> bytes:
    data = path.read_bytes()
    if len(data) != length:
        raise OSError(f"{path.name}: expected {length} bytes, found {len(data)}")
    return data


class SecretFile:
    """A file holding exactly *length* secret bytes."""

    def __init__(self, path: Path, length: int = crypto.SECRET_LEN) -> None:
        self.path = path
        self.length = length

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> bytes:
        return _read_exact(self.path, self.length)

    def write(self, data: bytes) -> None:
        if len(data) != self.length:
            raise ValueError(f"{self.path.name}: expected {self.length} bytes")
        write_private(self.path, data)

    def remove(self) -> None:
        self.path.unlink(missing_ok=True)


class NoiseFile:
    """Random noise whose hash keys the unlocked session.

    Zeroizing the file makes the encrypted random key undecryptable, which
    is how the keystore locks.
    """

    size = NOISE_BLOCK * NOISE_BLOCKS

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def generate(self) -> None:
        write_private(self.path, crypto.random_secret(self.size))

    def read_secret(self) -> bytes:
        return crypto.hash_noise(_read_exact(self.path, self.size))

    def zeroize(self) -> None:
        if not self.path.exists():
            return
        fd = os.open(self.path, os.O_WRONLY)
        try:
            zeros = bytes(NOISE_BLOCK)
            for _ in range(NOISE_BLOCKS):
                os.write(fd, zeros)
            os.fsync(fd)
        finally:
            os.close(fd)


__all__ = ["NoiseFile", "SecretFile", "write_private"]
