"""GithubVerifier — proofs published as public gists.

A user proves a Github account by creating a public gist containing a file
named :data:`GIST_NAME` whose content is the text produced by
:meth:`GithubVerifier.proof_text`. The text embeds the uid and the claim
signature, which is all that is needed to go both ways:

* ``verify``: find the gist carrying a given signature (identity lookup),
* ``candidates``: read the uids named by a user's gists (``user@github``
  resolution).
"""
from __future__ import annotations

import json
import logging
import re
from typing import Optional

import requests

from identity_client.errors import StorageError, StorageTimeoutError
from identity_client.identity.claims import Claim
from identity_client.identity.services import Service, ServiceVerifier

logger = logging.getLogger(__name__)

GIST_NAME = "identity-proof.md"

PROOF_TEMPLATE = """\
### Identity proof

I hereby claim:

  * I am {username} on github.
  * I am uid {uid} on the ledger {genesis}.
  * I am using the device key {public}.

To claim this, I am signing this object:

```json
{object}
```

with the key {public}, yielding the signature:

```
{signature}
```

And finally, I am proving ownership of the github account by posting this as a gist.
"""

INSTRUCTIONS = """\
Publish the proof to make it verifiable:

  1. Go to https://gist.github.com/ while signed in as the claimed account.
  2. Name the file "{gist_name}".
  3. Paste the proof text as the file content.
  4. Create a public gist.
"""

_UID_RE = re.compile(r"^\s*\* I am uid (\d+) on the ledger ", re.MULTILINE)
_SIGNATURE_RE = re.compile(r"yielding the signature:\s*```\s*\n(\S+)\s*\n```")


def parse_uid(content: str) -> Optional[int]:
    match = _UID_RE.search(content)
    return int(match.group(1)) if match else None


def parse_signature(content: str) -> Optional[str]:
    match = _SIGNATURE_RE.search(content)
    return match.group(1) if match else None


class GithubVerifier(ServiceVerifier):
    """Github gist verifier over the public REST API.

    Parameters
    ----------
    api_url:
        Base URL of the Github REST API.
    timeout:
        Per-request timeout in seconds.
    session:
        ``requests.Session`` to use. A new one is created when omitted.
    """

    service = Service.GITHUB

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers.update({"Accept": "application/vnd.github+json"})
        self._session = session

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def proof_text(self, claim: Claim, external_id: str) -> str:
        unsigned = claim.claim
        return PROOF_TEMPLATE.format(
            username=external_id,
            uid=unsigned.uid,
            genesis=unsigned.genesis,
            public=unsigned.public,
            object=json.dumps(unsigned.to_dict(), indent=2, sort_keys=True),
            signature=claim.signature_b64,
        )

    def instructions(self) -> str:
        return INSTRUCTIONS.format(gist_name=GIST_NAME)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def verify(self, external_id: str, signature: str) -> Optional[str]:
        try:
            proofs = self._find_proofs(external_id)
        except StorageError as exc:
            logger.warning("Github proof lookup for %s failed: %s", external_id, exc)
            return None
        for html_url, content in proofs:
            if parse_signature(content) == signature:
                return html_url
        return None

    def candidates(self, external_id: str) -> list[int]:
        uids: list[int] = []
        for _, content in self._find_proofs(external_id):
            uid = parse_uid(content)
            if uid is not None and uid not in uids:
                uids.append(uid)
        return uids

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _find_proofs(self, user: str) -> list[tuple[str, str]]:
        """Return ``(html_url, content)`` for every proof gist of *user*."""
        gists = self._get(f"{self._api_url}/users/{user}/gists")
        if gists is None:
            return []
        proofs: list[tuple[str, str]] = []
        for gist in gists.json():
            files = gist.get("files") or {}
            proof_file = files.get(GIST_NAME)
            if not proof_file or "raw_url" not in proof_file:
                continue
            raw = self._get(proof_file["raw_url"])
            if raw is None:
                continue
            proofs.append((str(gist.get("html_url", "")), raw.text))
        return proofs

    def _get(self, url: str) -> Optional[requests.Response]:
        """GET *url*; None on 404.

        Raises
        ------
        StorageTimeoutError
            If the request times out.
        StorageError
            On any other transport failure or error status.
        """
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.Timeout as exc:
            raise StorageTimeoutError(f"Request to {url} timed out.") from exc
        except requests.RequestException as exc:
            raise StorageError(f"Request to {url} failed: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise StorageError(f"Request to {url} failed: HTTP {response.status_code}")
        return response


__all__ = ["GIST_NAME", "GithubVerifier", "parse_signature", "parse_uid"]
