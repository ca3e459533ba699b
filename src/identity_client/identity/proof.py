"""ProofService — create, sign and anchor identity claims.

Proving an external account takes three collaborator round-trips:

1. read the current claim head of the signer's uid from the ledger,
2. store the signed claim in content storage,
3. anchor the new cid with ``Ledger.set_identity(signer, prev, cid)``.

The ledger rejects step 3 when another claim was anchored in between, so
concurrent submissions never fork the chain. External verification is not
polled here; it happens whenever the identity is next resolved.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

from identity_client.backends.ledger import Ledger
from identity_client.backends.storage import ContentStore
from identity_client.errors import BadCstrError, NoAccountError
from identity_client.identity.claims import (
    Claim,
    ProofStatus,
    UnsignedClaim,
    now_millis,
    ownership_body,
    revoke_body,
)
from identity_client.identity.resolver import IdentityResolver
from identity_client.identity.services import Service

logger = logging.getLogger(__name__)


class Signer(Protocol):
    def account_id(self) -> str: ...

    def sign(self, data: bytes) -> bytes: ...


@dataclass
class ProofSubmission:
    """Result of a successful :meth:`ProofService.prove` call."""

    service: Service
    external_id: str
    uid: int
    seqno: int
    cid: str
    proof: str
    instructions: str
    status: ProofStatus = ProofStatus.PENDING

    def to_dict(self) -> dict[str, object]:
        return {
            "service": self.service.label,
            "external_id": self.external_id,
            "uid": str(self.uid),
            "seqno": self.seqno,
            "cid": self.cid,
            "proof": self.proof,
            "instructions": self.instructions,
            "status": self.status.value,
        }


class ProofService:
    """Submits ownership and revoke claims for the signer's uid.

    Parameters
    ----------
    ledger:
        Ledger collaborator.
    storage:
        Content storage for claim bodies.
    resolver:
        Resolver whose cache is invalidated after every anchored claim. Its
        verifiers render the proof text.
    clock:
        Returns the current time in milliseconds; replaceable in tests.
    expire_in:
        Lifetime in milliseconds stamped on new ownership claims, or None
        for claims that never expire.
    """

    def __init__(
        self,
        ledger: Ledger,
        storage: ContentStore,
        resolver: IdentityResolver,
        clock: Callable[[], int] = now_millis,
        expire_in: Optional[int] = None,
    ) -> None:
        self._ledger = ledger
        self._storage = storage
        self._resolver = resolver
        self._clock = clock
        self._expire_in = expire_in

    def prove(
        self, signer: Signer, service: Union[int, str, Service], external_id: str
    ) -> ProofSubmission:
        """Anchor an ownership claim for *external_id* on *service*.

        Raises
        ------
        UnknownServiceError
            If *service* is not supported.
        BadCstrError
            If *external_id* is empty.
        NoAccountError
            If the signer's account has no uid.
        ChainError
            If the ledger rejects or cannot accept the claim.
        StorageError
            If the claim body cannot be stored.
        """
        service = Service.parse(service)
        external_id = external_id.strip()
        if not external_id:
            raise BadCstrError("External id must not be empty.")
        uid = self._signer_uid(signer)
        claim, cid = self._anchor(
            signer, uid, ownership_body(service, external_id), self._expire_in
        )

        verifier = self._resolver.verifier(service)
        if verifier is not None:
            proof_text = verifier.proof_text(claim, external_id)
            instructions = verifier.instructions()
        else:
            proof_text = claim.signature_b64
            instructions = f"Publish the signature on {service.label} as {external_id}."
        logger.info(
            "Proof submitted: uid=%d %s@%s seqno=%d",
            uid,
            external_id,
            service.label,
            claim.claim.seqno,
        )
        return ProofSubmission(
            service=service,
            external_id=external_id,
            uid=uid,
            seqno=claim.claim.seqno,
            cid=cid,
            proof=proof_text,
            instructions=instructions,
        )

    def revoke(self, signer: Signer, service: Union[int, str, Service]) -> bool:
        """Revoke the newest live ownership claim for *service*.

        Returns
        -------
        bool
            True if a revoke claim was anchored, False if there was nothing
            to revoke.
        """
        service = Service.parse(service)
        uid = self._signer_uid(signer)
        self._resolver.invalidate(uid)
        record = self._resolver.identity(uid)
        live = [
            proof
            for proof in record.proofs_for(service)
            if proof.status not in (ProofStatus.REVOKED, ProofStatus.REJECTED)
        ]
        if not live:
            return False
        target = live[-1]
        self._anchor(signer, uid, revoke_body(target.seqno), None)
        logger.info(
            "Proof revoked: uid=%d %s seqno=%d", uid, target.handle, target.seqno
        )
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _signer_uid(self, signer: Signer) -> int:
        uid = self._ledger.uid_lookup(signer.account_id())
        if uid is None:
            raise NoAccountError()
        return uid

    def _anchor(
        self,
        signer: Signer,
        uid: int,
        body: dict[str, object],
        expire_in: Optional[int],
    ) -> tuple[Claim, str]:
        account_id = signer.account_id()
        cids = self._ledger.identity(uid)
        prev = cids[-1] if cids else None
        unsigned = UnsignedClaim(
            genesis=self._ledger.genesis(),
            uid=uid,
            public=account_id,
            prev=prev,
            seqno=len(cids) + 1,
            ctime=self._clock(),
            body=body,
            expire_in=expire_in,
        )
        claim = Claim(unsigned, signer.sign(unsigned.challenge()))
        cid = self._storage.put(claim.to_document())
        try:
            self._ledger.set_identity(account_id, prev, cid)
        finally:
            self._resolver.invalidate(uid)
        return claim, cid


__all__ = ["ProofService", "ProofSubmission", "Signer"]
