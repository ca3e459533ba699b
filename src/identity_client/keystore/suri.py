"""Seed URIs — deterministic key derivation for tests and development.

Grammar::

    suri      := phrase? junction* ("///" password)?
    phrase    := "0x" 64 hex digits | BIP-39 mnemonic | ""   (empty = dev phrase)
    junction  := "//" hard-name

Only hard junctions are supported because Ed25519 has no soft derivation.
Examples: ``//Alice``, ``//Alice//stash``, ``0x<seed>``,
``"<mnemonic>//0///secret"``.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field

from identity_client.keystore import crypto
from identity_client.keystore.keys import (
    InvalidMnemonicError,
    mini_secret_from_phrase,
)

DEV_PHRASE = "bottom drive obey lake curtain smoke basket hold race lonely fit walk"

_SURI_RE = re.compile(
    r"^(?P<phrase>[^/]*)(?P<path>(?://?[^/]+)*)(?:///(?P<password>.*))?$"
)
_JUNCTION_RE = re.compile(r"/(/?[^/]+)")
_HEX_SEED_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

_HDKD_CONTEXT = b"\x2cEd25519HDKD"  # SCALE-encoded "Ed25519HDKD"


class InvalidSuriError(ValueError):
    """The string is not a valid seed URI."""


@dataclass(frozen=True)
class Suri:
    """A parsed seed URI holding the derived 32-byte seed."""

    seed: bytes = field(repr=False)

    def __repr__(self) -> str:
        return "Suri(*****)"

    @classmethod
    def parse(cls, value: str) -> "Suri":
        """Parse *value* and derive its seed.

        Raises
        ------
        InvalidSuriError
            On malformed syntax, soft junctions, or an invalid phrase.
        """
        match = _SURI_RE.match(value)
        if match is None:
            raise InvalidSuriError(f"Invalid suri encoded key pair: {value!r}")
        phrase = match.group("phrase").strip()
        password = match.group("password") or ""
        seed = _root_seed(phrase or DEV_PHRASE, password)
        for junction in _JUNCTION_RE.findall(match.group("path")):
            if not junction.startswith("/"):
                raise InvalidSuriError("soft junctions are not supported for ed25519 keys")
            seed = _derive_hard(seed, _chain_code(junction[1:]))
        return cls(seed)


def _root_seed(phrase: str, password: str) -> bytes:
    if _HEX_SEED_RE.match(phrase):
        if password:
            raise InvalidSuriError("a raw hex seed cannot carry a password")
        return bytes.fromhex(phrase[2:])
    if phrase.startswith("0x"):
        raise InvalidSuriError("hex seeds must be exactly 32 bytes")
    try:
        return mini_secret_from_phrase(phrase, password)
    except InvalidMnemonicError as exc:
        raise InvalidSuriError("invalid phrase in suri") from exc


def _compact_len(length: int) -> bytes:
    if length < 1 << 6:
        return bytes([length << 2])
    if length < 1 << 14:
        return ((length << 2) | 0b01).to_bytes(2, "little")
    return ((length << 2) | 0b10).to_bytes(4, "little")


def _chain_code(name: str) -> bytes:
    if name.isdigit():
        encoded = int(name).to_bytes(8, "little")
    else:
        raw = name.encode("utf-8")
        encoded = _compact_len(len(raw)) + raw
    if len(encoded) > crypto.SECRET_LEN:
        return hashlib.blake2b(encoded, digest_size=crypto.SECRET_LEN).digest()
    return encoded.ljust(crypto.SECRET_LEN, b"\x00")


def _derive_hard(seed: bytes, chain_code: bytes) -> bytes:
    return hashlib.blake2b(
        _HDKD_CONTEXT + seed + chain_code, digest_size=crypto.SECRET_LEN
    ).digest()


__all__ = ["DEV_PHRASE", "InvalidSuriError", "Suri"]
