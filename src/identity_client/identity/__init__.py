"""Identity resolution and proof pipeline."""
from __future__ import annotations

from identity_client.identity.claims import (
    Claim,
    IdentityRecord,
    MissingClaim,
    ProofClaim,
    ProofStatus,
    UnsignedClaim,
)
from identity_client.identity.github import GithubVerifier
from identity_client.identity.identifier import Identifier, IdentifierKind, parse_uid
from identity_client.identity.proof import ProofService, ProofSubmission
from identity_client.identity.resolver import IdentityResolver
from identity_client.identity.services import Service, ServiceVerifier

__all__ = [
    "Claim",
    "GithubVerifier",
    "IdentityRecord",
    "IdentityResolver",
    "Identifier",
    "IdentifierKind",
    "MissingClaim",
    "ProofClaim",
    "ProofService",
    "ProofStatus",
    "ProofSubmission",
    "Service",
    "ServiceVerifier",
    "UnsignedClaim",
    "parse_uid",
]
