"""Identity claims — signed statements anchored on the ledger.

A claim is a JSON document stored in content storage and referenced from
the ledger by its cid::

    {
      "claim": {
        "genesis": "<ledger genesis hex>",
        "uid": 7,
        "public": "<account id of the signing key>",
        "prev": "<cid of the previous claim>" | null,
        "seqno": 3,
        "ctime": 1700000000000,
        "expire_in": null,
        "body": {"type": "ownership", "service": "github", "external_id": "octocat"}
      },
      "signature": "<base64 Ed25519 signature over the canonical claim>"
    }

The signed challenge is the canonical (sorted-key, compact) JSON encoding of
the ``claim`` object. A ``revoke`` body (``{"type": "revoke", "seqno": N}``)
withdraws the ownership claim with sequence number ``N``.
"""
from __future__ import annotations

import base64
import binascii
import datetime
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from identity_client.backends.storage import canonical_json
from identity_client.identity.services import Service

OWNERSHIP = "ownership"
REVOKE = "revoke"


class MalformedClaimError(ValueError):
    """A stored document is not a well-formed claim."""


class ProofStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    REVOKED = "revoked"
    EXPIRED = "expired"


def now_millis() -> int:
    return int(time.time() * 1000)


def ownership_body(service: Service, external_id: str) -> dict[str, object]:
    return {"type": OWNERSHIP, "service": service.label, "external_id": external_id}


def revoke_body(seqno: int) -> dict[str, object]:
    return {"type": REVOKE, "seqno": seqno}


@dataclass(frozen=True)
class UnsignedClaim:
    """The signed part of a claim."""

    genesis: str
    uid: int
    public: str
    prev: Optional[str]
    seqno: int
    ctime: int
    body: dict[str, object]
    expire_in: Optional[int] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "genesis": self.genesis,
            "uid": self.uid,
            "public": self.public,
            "prev": self.prev,
            "seqno": self.seqno,
            "ctime": self.ctime,
            "expire_in": self.expire_in,
            "body": dict(self.body),
        }

    def challenge(self) -> bytes:
        """Return the canonical bytes that get signed."""
        return canonical_json(self.to_dict())

    @property
    def kind(self) -> str:
        return str(self.body.get("type", ""))

    def expired(self, now_ms: Optional[int] = None) -> bool:
        if self.expire_in is None:
            return False
        current = now_millis() if now_ms is None else now_ms
        return current > self.ctime + self.expire_in


@dataclass(frozen=True)
class Claim:
    """An :class:`UnsignedClaim` together with its signature."""

    claim: UnsignedClaim
    signature: bytes

    @property
    def signature_b64(self) -> str:
        return base64.b64encode(self.signature).decode("ascii")

    def to_document(self) -> dict[str, object]:
        return {"claim": self.claim.to_dict(), "signature": self.signature_b64}

    @classmethod
    def from_document(cls, document: dict[str, object]) -> "Claim":
        """Parse a stored claim document.

        Raises
        ------
        MalformedClaimError
            If any field is missing or has the wrong type.
        """
        try:
            raw = document["claim"]
            if not isinstance(raw, dict):
                raise MalformedClaimError("claim must be an object")
            body = raw["body"]
            if not isinstance(body, dict) or body.get("type") not in (OWNERSHIP, REVOKE):
                raise MalformedClaimError("unsupported claim body")
            prev = raw["prev"]
            expire_in = raw.get("expire_in")
            unsigned = UnsignedClaim(
                genesis=str(raw["genesis"]),
                uid=int(raw["uid"]),
                public=str(raw["public"]),
                prev=None if prev is None else str(prev),
                seqno=int(raw["seqno"]),
                ctime=int(raw["ctime"]),
                body=dict(body),
                expire_in=None if expire_in is None else int(expire_in),
            )
            signature = base64.b64decode(str(document["signature"]), validate=True)
        except MalformedClaimError:
            raise
        except (KeyError, TypeError, ValueError, binascii.Error) as exc:
            raise MalformedClaimError(f"malformed claim document: {exc}") from exc
        return cls(unsigned, signature)


@dataclass
class ProofClaim:
    """One ownership claim of an identity and its current standing.

    Parameters
    ----------
    service:
        Service the external account lives on.
    external_id:
        Account name on that service.
    seqno:
        Sequence number of the claim in the identity's chain.
    cid:
        Content id of the stored claim document.
    signature:
        Base64 signature over the canonical claim.
    status:
        Verification status.
    proof_url:
        Public location of the published proof, once accepted.
    ctime:
        Claim creation time in milliseconds since the epoch.
    """

    service: Service
    external_id: str
    seqno: int
    cid: str
    signature: str
    status: ProofStatus = ProofStatus.PENDING
    proof_url: Optional[str] = None
    ctime: int = 0

    @property
    def handle(self) -> str:
        return f"{self.external_id}@{self.service.label}"

    def to_dict(self) -> dict[str, object]:
        return {
            "service": self.service.label,
            "external_id": self.external_id,
            "seqno": self.seqno,
            "cid": self.cid,
            "signature": self.signature,
            "status": self.status.value,
            "proof_url": self.proof_url,
            "created_at": datetime.datetime.fromtimestamp(
                self.ctime / 1000, tz=datetime.timezone.utc
            ).isoformat(),
        }


@dataclass(frozen=True)
class MissingClaim:
    """A claim pointer whose body could not be fetched or parsed."""

    seqno: int
    cid: str
    reason: str

    def to_dict(self) -> dict[str, object]:
        return {"seqno": self.seqno, "cid": self.cid, "reason": self.reason}


@dataclass
class IdentityRecord:
    """Everything known about a uid: its keys and its proofs."""

    uid: int
    owner: Optional[str]
    keys: list[str] = field(default_factory=list)
    proofs: list[ProofClaim] = field(default_factory=list)
    missing: list[MissingClaim] = field(default_factory=list)
    paperkey_fingerprints: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing

    def proofs_for(self, service: Service) -> list[ProofClaim]:
        return [proof for proof in self.proofs if proof.service is service]

    def to_dict(self) -> dict[str, object]:
        return {
            "uid": str(self.uid),
            "owner": self.owner,
            "keys": list(self.keys),
            "proofs": [proof.to_dict() for proof in self.proofs],
            "missing": [entry.to_dict() for entry in self.missing],
            "paperkey_fingerprints": list(self.paperkey_fingerprints),
            "complete": self.complete,
        }


__all__ = [
    "Claim",
    "IdentityRecord",
    "MalformedClaimError",
    "MissingClaim",
    "OWNERSHIP",
    "ProofClaim",
    "ProofStatus",
    "REVOKE",
    "UnsignedClaim",
    "now_millis",
    "ownership_body",
    "revoke_body",
]
