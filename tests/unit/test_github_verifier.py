"""Tests for identity_client.identity.github — gist proofs over a fake HTTP session."""
from __future__ import annotations

from typing import Any, Optional

import pytest
import requests

from identity_client.errors import StorageError, StorageTimeoutError
from identity_client.identity.claims import Claim, UnsignedClaim, ownership_body
from identity_client.identity.github import (
    GIST_NAME,
    GithubVerifier,
    parse_signature,
    parse_uid,
)
from identity_client.identity.services import Service
from identity_client.keystore.keys import DeviceKey

API = "https://api.github.test"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        return self._payload


class FakeSession:
    """Maps URLs to responses (or exceptions) and records every request."""

    def __init__(self, routes: Optional[dict[str, Any]] = None) -> None:
        self.routes: dict[str, Any] = routes or {}
        self.requested: list[str] = []

    def get(self, url: str, timeout: float) -> FakeResponse:
        self.requested.append(url)
        outcome = self.routes.get(url, FakeResponse(404))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def claim() -> Claim:
    key = DeviceKey.generate()
    unsigned = UnsignedClaim(
        genesis="ab" * 32,
        uid=12,
        public=key.account_id,
        prev=None,
        seqno=1,
        ctime=1_700_000_000_000,
        body=ownership_body(Service.GITHUB, "octocat"),
    )
    return Claim(unsigned, key.sign(unsigned.challenge()))


def _published(verifier: GithubVerifier, claim: Claim, user: str = "octocat") -> FakeSession:
    raw_url = f"https://gist.githubusercontent.test/{user}/raw/{GIST_NAME}"
    return FakeSession(
        {
            f"{API}/users/{user}/gists": FakeResponse(
                payload=[
                    {"html_url": "https://gist.github.com/1", "files": {"notes.txt": {}}},
                    {
                        "html_url": "https://gist.github.com/2",
                        "files": {GIST_NAME: {"raw_url": raw_url}},
                    },
                ]
            ),
            raw_url: FakeResponse(text=verifier.proof_text(claim, user)),
        }
    )


# ---------------------------------------------------------------------------
# Proof text
# ---------------------------------------------------------------------------


class TestProofText:
    def test_text_names_uid_and_signature(self, claim: Claim) -> None:
        text = GithubVerifier(API).proof_text(claim, "octocat")
        assert "I am octocat on github." in text
        assert parse_uid(text) == 12
        assert parse_signature(text) == claim.signature_b64

    def test_parsers_ignore_unrelated_text(self) -> None:
        assert parse_uid("hello") is None
        assert parse_signature("hello") is None

    def test_instructions_name_the_file(self) -> None:
        assert GIST_NAME in GithubVerifier(API).instructions()

    def test_default_session_sets_accept_header(self) -> None:
        verifier = GithubVerifier(API)
        assert verifier._session.headers["Accept"] == "application/vnd.github+json"


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestVerify:
    def test_finds_matching_gist(self, claim: Claim) -> None:
        verifier = GithubVerifier(API)
        verifier._session = _published(verifier, claim)  # type: ignore[assignment]
        assert verifier.verify("octocat", claim.signature_b64) == "https://gist.github.com/2"

    def test_other_signature_not_found(self, claim: Claim) -> None:
        verifier = GithubVerifier(API)
        verifier._session = _published(verifier, claim)  # type: ignore[assignment]
        assert verifier.verify("octocat", "c29tZXRoaW5nIGVsc2U=") is None

    def test_unknown_user(self) -> None:
        verifier = GithubVerifier(API, session=FakeSession())  # type: ignore[arg-type]
        assert verifier.verify("ghost", "sig") is None

    def test_transport_failure_is_not_a_match(self) -> None:
        session = FakeSession(
            {f"{API}/users/octocat/gists": requests.ConnectionError("refused")}
        )
        verifier = GithubVerifier(API, session=session)  # type: ignore[arg-type]
        assert verifier.verify("octocat", "sig") is None


class TestCandidates:
    def test_returns_uid_from_proof(self, claim: Claim) -> None:
        verifier = GithubVerifier(API)
        verifier._session = _published(verifier, claim)  # type: ignore[assignment]
        assert verifier.candidates("octocat") == [12]

    def test_no_gists(self) -> None:
        verifier = GithubVerifier(API, session=FakeSession())  # type: ignore[arg-type]
        assert verifier.candidates("ghost") == []

    def test_timeout_raises(self) -> None:
        session = FakeSession({f"{API}/users/octocat/gists": requests.Timeout("slow")})
        verifier = GithubVerifier(API, session=session)  # type: ignore[arg-type]
        with pytest.raises(StorageTimeoutError):
            verifier.candidates("octocat")

    def test_server_error_raises(self) -> None:
        session = FakeSession({f"{API}/users/octocat/gists": FakeResponse(502)})
        verifier = GithubVerifier(API, session=session)  # type: ignore[arg-type]
        with pytest.raises(StorageError, match="HTTP 502"):
            verifier.candidates("octocat")

    def test_trailing_slash_in_api_url(self, claim: Claim) -> None:
        verifier = GithubVerifier(API + "/")
        session = _published(verifier, claim)
        verifier._session = session  # type: ignore[assignment]
        verifier.candidates("octocat")
        assert session.requested[0] == f"{API}/users/octocat/gists"
