"""Cryptographic primitives used by the keystore.

Thin wrappers around the ``cryptography`` package:

* :func:`derive_password_key` — Scrypt password stretching to a 32-byte key.
* :func:`auth_encrypt` / :func:`auth_decrypt` — AES-256-GCM over a 32-byte
  secret; the blob layout is ``nonce || ciphertext || tag``.
* :func:`ed25519_public_key` / :func:`ed25519_sign` / :func:`ed25519_verify`
  — signing with a 32-byte seed held as raw bytes.
* :func:`encode_account_id` / :func:`decode_account_id` — checksummed base58
  account addresses derived from an Ed25519 public key.

Account id encoding
-------------------
1. Prepend the one-byte network prefix ``ACCOUNT_PREFIX`` to the 32-byte
   public key.
2. Append the first two bytes of ``blake2b-512(b"SS58PRE" || payload)``.
3. Encode the 35-byte result with base58btc.
"""
from __future__ import annotations

import hashlib
import secrets

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

SECRET_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16
AUTH_SECRET_LEN = NONCE_LEN + SECRET_LEN + TAG_LEN

ACCOUNT_PREFIX = 42
_CHECKSUM_LEN = 2
_ACCOUNT_ID_LEN = 1 + SECRET_LEN + _CHECKSUM_LEN

_KDF_SALT = b"identity-client/password-kdf/v1"
_AEAD_CONTEXT = b"identity-client/device-key/v1"

_BASE58_ALPHABET: bytes = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


class AuthenticationError(Exception):
    """Raised when an authenticated ciphertext fails verification."""


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


def random_secret(length: int = SECRET_LEN) -> bytes:
    """Return *length* bytes from the operating system CSPRNG."""
    return secrets.token_bytes(length)


def xor(left: bytes, right: bytes) -> bytes:
    """XOR two equal-length byte strings."""
    if len(left) != len(right):
        raise ValueError("xor operands must have the same length")
    return bytes(a ^ b for a, b in zip(left, right))


def zeroize(buffer: bytearray) -> None:
    """Overwrite *buffer* with zero bytes in place."""
    for index in range(len(buffer)):
        buffer[index] = 0


def derive_password_key(password: str, cost: int = 14) -> bytes:
    """Stretch *password* into a 32-byte key with Scrypt (``n = 2**cost``)."""
    kdf = Scrypt(salt=_KDF_SALT, length=SECRET_LEN, n=2**cost, r=8, p=1)
    return kdf.derive(password.encode("utf-8"))


def hash_noise(noise: bytes) -> bytes:
    """Reduce the noise file contents to a 32-byte key."""
    return hashlib.blake2b(noise, digest_size=SECRET_LEN, person=b"noise-hash").digest()


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------


def auth_encrypt(secret: bytes, key: bytes) -> bytes:
    """Encrypt a 32-byte *secret* under *key* with AES-256-GCM."""
    nonce = random_secret(NONCE_LEN)
    return nonce + AESGCM(key).encrypt(nonce, bytes(secret), _AEAD_CONTEXT)


def auth_decrypt(blob: bytes, key: bytes) -> bytes:
    """Decrypt a blob produced by :func:`auth_encrypt`.

    Raises
    ------
    AuthenticationError
        If *key* is wrong or the blob was tampered with.
    """
    if len(blob) != AUTH_SECRET_LEN:
        raise AuthenticationError("encrypted secret has the wrong length")
    nonce, ciphertext = blob[:NONCE_LEN], blob[NONCE_LEN:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, _AEAD_CONTEXT)
    except InvalidTag as exc:
        raise AuthenticationError("authentication failed") from exc


# ---------------------------------------------------------------------------
# Ed25519
# ---------------------------------------------------------------------------


def ed25519_public_key(seed: bytes) -> bytes:
    """Return the 32-byte raw public key for a 32-byte Ed25519 seed."""
    private_key = Ed25519PrivateKey.from_private_bytes(bytes(seed))
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def ed25519_sign(seed: bytes, data: bytes) -> bytes:
    """Sign *data* with the Ed25519 key for *seed*; returns 64 bytes."""
    return Ed25519PrivateKey.from_private_bytes(bytes(seed)).sign(data)


def ed25519_verify(public_key: bytes, signature: bytes, data: bytes) -> bool:
    """Return ``True`` if *signature* over *data* is valid for *public_key*."""
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, data)
        return True
    except (InvalidSignature, ValueError):
        return False


# ---------------------------------------------------------------------------
# Base58 and account ids
# ---------------------------------------------------------------------------


def base58_encode(data: bytes) -> str:
    """Encode *data* to a base58btc string."""
    n = int.from_bytes(data, "big")
    result: list[bytes] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_BASE58_ALPHABET[remainder : remainder + 1])
    # Preserve leading zero bytes as '1' characters
    for byte in data:
        if byte == 0:
            result.append(b"1")
        else:
            break
    return b"".join(reversed(result)).decode("ascii")


def base58_decode(encoded: str) -> bytes:
    """Decode a base58btc string.

    Raises
    ------
    ValueError
        If the string contains a character outside the base58btc alphabet.
    """
    alphabet = _BASE58_ALPHABET.decode("ascii")
    n = 0
    for char in encoded:
        index = alphabet.find(char)
        if index < 0:
            raise ValueError(f"Invalid base58 character {char!r}")
        n = n * 58 + index
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_size = len(encoded) - len(encoded.lstrip("1"))
    return b"\x00" * pad_size + body


def _checksum(payload: bytes) -> bytes:
    return hashlib.blake2b(b"SS58PRE" + payload, digest_size=64).digest()[:_CHECKSUM_LEN]


def encode_account_id(public_key: bytes) -> str:
    """Return the account id string for a 32-byte public key."""
    if len(public_key) != SECRET_LEN:
        raise ValueError("public key must be 32 bytes")
    payload = bytes([ACCOUNT_PREFIX]) + public_key
    return base58_encode(payload + _checksum(payload))


def decode_account_id(account_id: str) -> bytes:
    """Return the public key encoded in *account_id*.

    Raises
    ------
    ValueError
        If the string is not a well-formed account id for this network.
    """
    raw = base58_decode(account_id)
    if len(raw) != _ACCOUNT_ID_LEN:
        raise ValueError(f"account id {account_id!r} has the wrong length")
    payload, checksum = raw[:-_CHECKSUM_LEN], raw[-_CHECKSUM_LEN:]
    if payload[0] != ACCOUNT_PREFIX:
        raise ValueError(f"account id {account_id!r} has the wrong network prefix")
    if _checksum(payload) != checksum:
        raise ValueError(f"account id {account_id!r} has a bad checksum")
    return payload[1:]


def is_account_id(value: str) -> bool:
    """Return ``True`` if *value* decodes as an account id."""
    try:
        decode_account_id(value)
    except ValueError:
        return False
    return True


def fingerprint(account_id: str) -> str:
    """Short, stable fingerprint for an account id (16 hex characters)."""
    return hashlib.sha256(account_id.encode("ascii")).hexdigest()[:16]


__all__ = [
    "ACCOUNT_PREFIX",
    "AUTH_SECRET_LEN",
    "AuthenticationError",
    "SECRET_LEN",
    "auth_decrypt",
    "auth_encrypt",
    "base58_decode",
    "base58_encode",
    "decode_account_id",
    "derive_password_key",
    "ed25519_public_key",
    "ed25519_sign",
    "ed25519_verify",
    "encode_account_id",
    "fingerprint",
    "hash_noise",
    "is_account_id",
    "random_secret",
    "xor",
    "zeroize",
]
