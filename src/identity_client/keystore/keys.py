"""Device keys, passwords and BIP-39 recovery phrases.

A :class:`DeviceKey` is a 32-byte Ed25519 seed plus a record of where it
came from. It can be:

* generated from fresh entropy,
* restored from a 24-word mnemonic phrase (the phrase's 256 bits of entropy
  *are* the seed, so restoration is deterministic),
* derived from a seed URI (development builds only, see
  :mod:`identity_client.keystore.suri`).

Mnemonic handling uses ``bip_utils``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from bip_utils import (
    Bip39Languages,
    Bip39MnemonicDecoder,
    Bip39MnemonicGenerator,
    Bip39MnemonicValidator,
    Bip39WordsNum,
    SubstrateBip39SeedGenerator,
)

from identity_client.keystore import crypto


class KeyProvenance(str, Enum):
    """How a device key was produced."""

    GENERATED = "generated"
    SEED_URI = "seed_uri"
    MNEMONIC = "mnemonic"


class InvalidMnemonicError(ValueError):
    """The phrase is not a valid English BIP-39 mnemonic."""


class NotEnoughEntropyError(InvalidMnemonicError):
    """The phrase encodes fewer than 256 bits of entropy."""

    def __init__(self) -> None:
        super().__init__(
            "Mnemonic didn't contain enough entropy. "
            "Needs to provide at least 256 bits of entropy."
        )


@dataclass
class DeviceKey:
    """A device signing key.

    The seed is held in a ``bytearray`` so that :meth:`zeroize` can wipe it.
    """

    seed: bytearray = field(repr=False)
    provenance: KeyProvenance = KeyProvenance.GENERATED

    @classmethod
    def generate(cls) -> "DeviceKey":
        return cls(bytearray(crypto.random_secret()), KeyProvenance.GENERATED)

    @classmethod
    def from_seed(
        cls, seed: bytes, provenance: KeyProvenance = KeyProvenance.SEED_URI
    ) -> "DeviceKey":
        if len(seed) != crypto.SECRET_LEN:
            raise ValueError("device key seed must be 32 bytes")
        return cls(bytearray(seed), provenance)

    @classmethod
    def from_mnemonic(cls, phrase: str) -> "DeviceKey":
        """Restore a key from a mnemonic phrase.

        Raises
        ------
        InvalidMnemonicError
            If the phrase is not a valid English BIP-39 mnemonic.
        NotEnoughEntropyError
            If the phrase carries fewer than 256 bits of entropy.
        """
        entropy = mnemonic_entropy(phrase)
        if len(entropy) < crypto.SECRET_LEN:
            raise NotEnoughEntropyError()
        return cls(bytearray(entropy[: crypto.SECRET_LEN]), KeyProvenance.MNEMONIC)

    @property
    def public_key(self) -> bytes:
        return crypto.ed25519_public_key(bytes(self.seed))

    @property
    def account_id(self) -> str:
        return crypto.encode_account_id(self.public_key)

    def sign(self, data: bytes) -> bytes:
        return crypto.ed25519_sign(bytes(self.seed), data)

    def zeroize(self) -> None:
        crypto.zeroize(self.seed)


def normalize_phrase(phrase: str) -> str:
    return " ".join(phrase.lower().split())


def mnemonic_entropy(phrase: str) -> bytes:
    """Return the entropy bytes encoded by an English BIP-39 *phrase*."""
    normalized = normalize_phrase(phrase)
    try:
        if not Bip39MnemonicValidator(Bip39Languages.ENGLISH).IsValid(normalized):
            raise InvalidMnemonicError("Invalid paperkey.")
        return bytes(Bip39MnemonicDecoder(Bip39Languages.ENGLISH).Decode(normalized))
    except InvalidMnemonicError:
        raise
    except Exception as exc:
        raise InvalidMnemonicError("Invalid paperkey.") from exc


def generate_phrase() -> str:
    """Return a fresh 24-word English mnemonic (256 bits of entropy)."""
    mnemonic = Bip39MnemonicGenerator(Bip39Languages.ENGLISH).FromWordsNumber(
        Bip39WordsNum.WORDS_NUM_24
    )
    return str(mnemonic)


def phrase_for_entropy(entropy: bytes) -> str:
    """Return the English mnemonic that encodes *entropy*."""
    return str(Bip39MnemonicGenerator(Bip39Languages.ENGLISH).FromEntropy(entropy))


def mini_secret_from_phrase(phrase: str, password: str = "") -> bytes:
    """Derive the 32-byte Substrate mini-secret of an English BIP-39 *phrase*.

    Raises
    ------
    InvalidMnemonicError
        If the phrase is not a valid English BIP-39 mnemonic.
    """
    mnemonic_entropy(phrase)
    generator = SubstrateBip39SeedGenerator(normalize_phrase(phrase), Bip39Languages.ENGLISH)
    return bytes(generator.Generate(password))[: crypto.SECRET_LEN]


__all__ = [
    "DeviceKey",
    "InvalidMnemonicError",
    "KeyProvenance",
    "NotEnoughEntropyError",
    "generate_phrase",
    "mini_secret_from_phrase",
    "mnemonic_entropy",
    "normalize_phrase",
    "phrase_for_entropy",
]
