"""IdentityResolver — identifiers to uids, uids to verified identity records.

The ledger holds the ordered claim pointers and the keys of every uid;
content storage holds the claim bodies. The resolver joins the two,
verifies each claim and derives the status of every proof:

``REJECTED``
    The claim body failed verification (uid, genesis, seqno, prev pointer,
    signing key or signature).
``EXPIRED``
    The claim carries an ``expire_in`` that has elapsed.
``REVOKED``
    A later valid revoke claim names this claim's seqno.
``ACCEPTED``
    The service verifier found the published proof.
``PENDING``
    Anything else: anchored, but no published proof was found.

Complete records without pending proofs are kept in a read-through cache.
The ledger and storage stay the source of truth;
:meth:`IdentityResolver.invalidate` drops entries that a local write has
made stale.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional, Union

from identity_client.backends.ledger import Ledger
from identity_client.backends.storage import ContentStore
from identity_client.errors import BadCstrError, StorageError, UnknownServiceError
from identity_client.identity.claims import (
    OWNERSHIP,
    REVOKE,
    Claim,
    IdentityRecord,
    MalformedClaimError,
    MissingClaim,
    ProofClaim,
    ProofStatus,
)
from identity_client.identity.identifier import Identifier, IdentifierKind, parse_uid
from identity_client.identity.services import Service, ServiceVerifier
from identity_client.keystore import crypto

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Resolves identifiers and assembles :class:`IdentityRecord` objects.

    Thread-safe. Cache reads and writes take a short internal lock; ledger,
    storage and verifier calls happen outside it.

    Parameters
    ----------
    ledger:
        Ledger collaborator.
    storage:
        Content storage collaborator holding claim bodies.
    verifiers:
        Service verifiers keyed by :class:`Service`. Services without a
        verifier keep their proofs ``PENDING`` and cannot be resolved.
    cache:
        Keep complete records and positive lookups in memory.
    """

    def __init__(
        self,
        ledger: Ledger,
        storage: ContentStore,
        verifiers: Optional[dict[Service, ServiceVerifier]] = None,
        cache: bool = True,
    ) -> None:
        self._ledger = ledger
        self._storage = storage
        self._verifiers: dict[Service, ServiceVerifier] = dict(verifiers or {})
        self._cache_enabled = cache
        self._records: dict[int, IdentityRecord] = {}
        self._lookups: dict[tuple[IdentifierKind, str], int] = {}
        self._lock = threading.Lock()

    def verifier(self, service: Service) -> Optional[ServiceVerifier]:
        return self._verifiers.get(service)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_uid(self, identifier: str) -> Optional[int]:
        """Return the uid named by *identifier*, or None when nothing matches.

        Raises
        ------
        BadCstrError
            If *identifier* is empty or malformed.
        UnknownServiceError
            If a ``name@service`` identifier names an unsupported service.
        ChainError
            If the ledger cannot be queried.
        StorageError
            If a service verifier or content storage cannot be queried.
        """
        parsed = Identifier.parse(identifier)
        if parsed.kind is IdentifierKind.UID:
            uid = parsed.uid
            return uid if self._ledger.keys(uid) else None
        if parsed.kind is IdentifierKind.SERVICE:
            return self._resolve_service(parsed)

        key = (parsed.kind, parsed.value.lower())
        with self._lock:
            cached = self._lookups.get(key)
        if cached is not None:
            return cached
        if parsed.kind is IdentifierKind.ACCOUNT:
            uid = self._ledger.uid_lookup(parsed.value)
        else:
            uid = self._ledger.name_lookup(parsed.value)
        # Account and name bindings never change once made, so only hits are kept.
        if uid is not None and self._cache_enabled:
            with self._lock:
                self._lookups[key] = uid
        return uid

    def _resolve_service(self, parsed: Identifier) -> Optional[int]:
        if parsed.service is None:
            raise BadCstrError(f"Identifier {parsed.value!r} names no service.")
        verifier = self._verifiers.get(parsed.service)
        if verifier is None:
            logger.debug("No verifier configured for %s", parsed.service.label)
            return None
        wanted = parsed.value.lower()
        for uid in verifier.candidates(parsed.value):
            record = self.identity(uid)
            for proof in record.proofs_for(parsed.service):
                if proof.external_id.lower() == wanted and proof.status is ProofStatus.ACCEPTED:
                    return uid
        return None

    # ------------------------------------------------------------------
    # Identity records
    # ------------------------------------------------------------------

    def identity(self, uid: Union[int, str]) -> IdentityRecord:
        """Return the identity record of *uid*.

        Claim bodies that cannot be fetched or parsed are reported in
        ``record.missing`` and the rest of the record is still returned.

        Raises
        ------
        BadUidError
            If *uid* is not a non-negative decimal integer. Raised before
            any collaborator call.
        ChainError
            If the ledger cannot be queried.
        StorageError
            If every referenced claim body fails to load.
        """
        uid = parse_uid(uid)
        with self._lock:
            cached = self._records.get(uid)
        if cached is not None:
            return cached

        record = self._build_record(uid)
        if self._cache_enabled and _cacheable(record):
            with self._lock:
                self._records[uid] = record
        return record

    def invalidate(self, uid: Optional[int] = None) -> None:
        """Drop the cached record of *uid*, or every cached entry when None."""
        with self._lock:
            if uid is None:
                self._records.clear()
                self._lookups.clear()
            else:
                self._records.pop(uid, None)

    def _build_record(self, uid: int) -> IdentityRecord:
        keys = self._ledger.keys(uid)
        cids = self._ledger.identity(uid)
        genesis = self._ledger.genesis()

        owner = next((key.account_id for key in keys if not key.paperkey), None)
        record = IdentityRecord(
            uid=uid,
            owner=owner,
            keys=[key.account_id for key in keys],
            paperkey_fingerprints=[
                crypto.fingerprint(key.account_id) for key in keys if key.paperkey
            ],
        )
        key_ids = set(record.keys)

        proofs_by_seqno: dict[int, ProofClaim] = {}
        for index, cid in enumerate(cids):
            seqno = index + 1
            prev = cids[index - 1] if index > 0 else None
            try:
                claim = Claim.from_document(self._storage.get(cid))
            except (StorageError, MalformedClaimError) as exc:
                record.missing.append(MissingClaim(seqno, cid, str(exc)))
                continue

            problem = _check_claim(claim, uid, genesis, seqno, prev, key_ids)
            if problem is not None:
                logger.debug("Claim %s of uid %d rejected: bad %s", cid, uid, problem)

            body = claim.claim.body
            if claim.claim.kind == OWNERSHIP:
                try:
                    service = Service.parse(str(body.get("service", "")))
                except UnknownServiceError as exc:
                    record.missing.append(MissingClaim(seqno, cid, exc.message))
                    continue
                proof = ProofClaim(
                    service=service,
                    external_id=str(body.get("external_id", "")),
                    seqno=seqno,
                    cid=cid,
                    signature=claim.signature_b64,
                    ctime=claim.claim.ctime,
                )
                if problem is not None:
                    proof.status = ProofStatus.REJECTED
                elif claim.claim.expired():
                    proof.status = ProofStatus.EXPIRED
                record.proofs.append(proof)
                proofs_by_seqno[seqno] = proof
            elif claim.claim.kind == REVOKE and problem is None:
                target = proofs_by_seqno.get(_int_or_none(body.get("seqno")))
                if target is not None and target.status is not ProofStatus.REJECTED:
                    target.status = ProofStatus.REVOKED

        if cids and len(record.missing) == len(cids):
            raise StorageError(f"None of the {len(cids)} claims of uid {uid} could be loaded.")
        if record.missing:
            logger.warning(
                "Identity %d is partial: %d of %d claims missing",
                uid,
                len(record.missing),
                len(cids),
            )

        for proof in record.proofs:
            if proof.status is not ProofStatus.PENDING:
                continue
            verifier = self._verifiers.get(proof.service)
            if verifier is None:
                continue
            proof_url = verifier.verify(proof.external_id, proof.signature)
            if proof_url is not None:
                proof.status = ProofStatus.ACCEPTED
                proof.proof_url = proof_url
        return record


def _cacheable(record: IdentityRecord) -> bool:
    # A pending proof may be published at any moment.
    return record.complete and all(
        proof.status is not ProofStatus.PENDING for proof in record.proofs
    )


def _int_or_none(value: object) -> Optional[int]:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _check_claim(
    claim: Claim,
    uid: int,
    genesis: str,
    seqno: int,
    prev: Optional[str],
    key_ids: set[str],
) -> Optional[str]:
    """Return the name of the first failed check, or None if *claim* is valid."""
    unsigned = claim.claim
    if unsigned.uid != uid:
        return "uid"
    if unsigned.genesis != genesis:
        return "genesis"
    if unsigned.seqno != seqno:
        return "seqno"
    if unsigned.prev != prev:
        return "prev"
    if unsigned.public not in key_ids:
        return "key"
    try:
        public_key = crypto.decode_account_id(unsigned.public)
    except ValueError:
        return "key"
    if not crypto.ed25519_verify(public_key, claim.signature, unsigned.challenge()):
        return "signature"
    return None


__all__ = ["IdentityResolver"]
