"""Shared fixtures: fast keystore settings, in-memory backends, a fake gist host."""
from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from identity_client.backends.ledger import InMemoryLedger
from identity_client.backends.storage import InMemoryContentStore
from identity_client.client import IdentityClient
from identity_client.config import ClientConfig
from identity_client.identity.github import GithubVerifier
from identity_client.identity.services import Service
from identity_client.keystore.keys import DeviceKey

PASSWORD = "correct horse battery"

# A valid 24-word phrase (all-zero entropy) with a well-known checksum word.
ZERO_PHRASE = " ".join(["abandon"] * 23 + ["art"])


class PublishedGists(GithubVerifier):
    """GithubVerifier whose gists live in a dict instead of on github.com."""

    def __init__(self) -> None:
        super().__init__(api_url="https://github.invalid")
        self.gists: dict[str, list[tuple[str, str]]] = {}

    def publish(self, user: str, content: str) -> str:
        entries = self.gists.setdefault(user.lower(), [])
        url = f"https://gist.github.com/{user}/{len(entries) + 1}"
        entries.append((url, content))
        return url

    def _find_proofs(self, user: str) -> list[tuple[str, str]]:
        return list(self.gists.get(user.lower(), []))


@pytest.fixture()
def password() -> str:
    return PASSWORD


@pytest.fixture()
def zero_phrase() -> str:
    return ZERO_PHRASE


@pytest.fixture()
def config() -> ClientConfig:
    return ClientConfig(kdf_cost=4, allow_seed_uri=True, max_workers=4)


@pytest.fixture()
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture()
def storage() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture()
def gists() -> PublishedGists:
    return PublishedGists()


@pytest.fixture()
def make_client(
    tmp_path: Path,
    config: ClientConfig,
    ledger: InMemoryLedger,
    storage: InMemoryContentStore,
    gists: PublishedGists,
):
    """Factory for clients sharing one ledger and content store."""

    def _make(name: str = "device", initialize: bool = True) -> IdentityClient:
        client = IdentityClient(
            config, ledger=ledger, storage=storage, verifiers={Service.GITHUB: gists}
        )
        if initialize:
            client.init(tmp_path / name)
        return client

    return _make


@pytest.fixture()
def client(make_client) -> IdentityClient:
    return make_client()


@pytest.fixture()
def registered_client(client: IdentityClient, ledger: InMemoryLedger) -> IdentityClient:
    """An unlocked client whose device key owns uid 0."""
    result = client.set_key(PASSWORD)
    ledger.create_account_for(result["account_id"], result["account_id"], name="alice")
    return client


class KeySigner:
    """Signs with a bare DeviceKey, standing in for an unlocked keystore."""

    def __init__(self, key: DeviceKey | None = None) -> None:
        self.key = key or DeviceKey.generate()

    def account_id(self) -> str:
        return self.key.account_id

    def sign(self, data: bytes) -> bytes:
        return self.key.sign(data)


@pytest.fixture()
def make_signer(ledger: InMemoryLedger):
    """Factory for signers that own a fresh uid on the shared ledger."""

    def _make(name: str | None = None) -> KeySigner:
        signer = KeySigner()
        ledger.create_account_for(signer.account_id(), signer.account_id(), name=name)
        return signer

    return _make


@pytest.fixture()
def signer(make_signer) -> KeySigner:
    """Owner of uid 0, registered under the handle ``alice``."""
    return make_signer("alice")


@pytest.fixture()
def stranger() -> KeySigner:
    """A signer whose account has no uid."""
    return KeySigner()


@pytest.fixture()
def publish(gists: PublishedGists) -> Callable[[str, str], str]:
    """Publish proof text as a gist of the given user; returns the gist URL."""
    return gists.publish
