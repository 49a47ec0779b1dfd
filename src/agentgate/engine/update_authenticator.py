"""Update authenticator — the signature-gated state transition.

An authorized agent signs an EIP-712 ``UpdateRequest`` that references a
commitment digest. Submitting the request consumes that digest and
applies the update. Checks run in a fixed order and the first failure
aborts the operation before anything is written:

1. ``now <= expiry``                        else Expired
2. digest not consumed                      else AlreadyConsumed
3. agent is authorized                      else NotAuthorized
4. signature is well-formed and recovers    else InvalidSignature
5. recovered signer == request.agent        else SignerMismatch
6. payload URI passes the validator         else DomainNotAllowed / TooLong

The digest, not the payload, is the uniqueness key: once consumed, no
request referencing it can succeed again, whatever it carries.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from agentgate.crypto.hashing import normalize_digest
from agentgate.crypto.signatures import SignatureLike, SigningDomain, recover_update_signer
from agentgate.engine.commitments import NonceCommitmentStore
from agentgate.errors import Expired, NotAuthorized, SignerMismatch
from agentgate.governance.authorization import AuthorizationLedger
from agentgate.models.update import UpdateRecord, UpdateRequest
from agentgate.persistence.event_log import EventKind, EventLog
from agentgate.validation.payload_uri import PayloadURIValidator

logger = logging.getLogger(__name__)


class UpdateAuthenticator:
    """Verifies signed update requests and applies them exactly once."""

    def __init__(
        self,
        domain: SigningDomain,
        authorization: AuthorizationLedger,
        store: NonceCommitmentStore,
        validator: Optional[PayloadURIValidator] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._domain = domain
        self._authorization = authorization
        self._store = store
        self._validator = validator
        self._event_log = event_log if event_log is not None else EventLog()
        self._latest_by_target: dict[int, UpdateRecord] = {}
        self._by_digest: dict[str, UpdateRecord] = {}

    @property
    def domain(self) -> SigningDomain:
        return self._domain

    def submit_update(
        self,
        request: UpdateRequest,
        signature: SignatureLike,
        now: Optional[int] = None,
    ) -> UpdateRecord:
        """Authenticate ``request`` and apply it, consuming its digest.

        Returns the UpdateRecord describing the applied update.
        """
        now = int(time.time()) if now is None else now

        with self._store.lock:
            if now > request.expiry:
                logger.warning(
                    "Expired update for digest %s (expiry %d, now %d)",
                    request.digest, request.expiry, now,
                )
                raise Expired(f"request expired at {request.expiry}, now {now}")

            self._store.require_unconsumed(request.digest)

            if not self._authorization.is_authorized(request.agent):
                logger.warning("Update from unauthorized agent %s", request.agent)
                raise NotAuthorized(f"agent {request.agent} is not authorized")

            signer = recover_update_signer(request, self._domain, signature)
            if signer != request.agent:
                logger.warning(
                    "Signer mismatch for digest %s: claimed %s, recovered %s",
                    request.digest, request.agent, signer,
                )
                raise SignerMismatch(
                    f"signature recovered {signer}, request names {request.agent}"
                )

            payload_uri = request.payload_uri
            if self._validator is not None:
                payload_uri = self._validator.sanitize(payload_uri)

            record = UpdateRecord(
                target_id=request.target_id,
                payload_uri=payload_uri,
                agent=request.agent,
                digest=request.digest,
                applied_at=now,
            )
            self._event_log.record_many(
                [
                    (
                        EventKind.UPDATE_APPLIED,
                        request.agent,
                        {
                            "target_id": record.target_id,
                            "payload_uri": record.payload_uri,
                            "agent": record.agent,
                            "digest": record.digest,
                            "applied_at": record.applied_at,
                        },
                    ),
                    (
                        EventKind.COMMITMENT_CONSUMED,
                        request.agent,
                        {"digest": record.digest, "path": "signed_update"},
                    ),
                ],
                timestamp=now,
            )
            self._store.consume(request.digest)
            self._latest_by_target[record.target_id] = record
            self._by_digest[record.digest] = record

        logger.info(
            "Applied update to target %d by %s (digest %s)",
            record.target_id, record.agent, record.digest,
        )
        return record

    def latest_update(self, target_id: int) -> Optional[UpdateRecord]:
        """The most recent update applied to ``target_id``, if any."""
        return self._latest_by_target.get(target_id)

    def update_for_digest(self, digest: str) -> Optional[UpdateRecord]:
        """The update applied under ``digest``, if it was consumed by a signed update."""
        return self._by_digest.get(normalize_digest(digest))

    def update_records(self) -> list[UpdateRecord]:
        return sorted(self._by_digest.values(), key=lambda r: (r.applied_at, r.digest))

    def restore(self, records: list[UpdateRecord]) -> None:
        """Rebuild the applied-update index from a persisted snapshot."""
        self._by_digest = {}
        self._latest_by_target = {}
        for record in sorted(records, key=lambda r: r.applied_at):
            self._by_digest[record.digest] = record
            self._latest_by_target[record.target_id] = record
