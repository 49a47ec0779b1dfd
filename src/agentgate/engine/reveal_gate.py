"""Nonce reveal gate — consume a commitment by disclosing its nonce.

The caller's own identity is the authentication factor: the digest is
recomputed from the disclosed nonce and the caller's address, so only the
identity that made the commitment can burn it this way. The reveal path
shares the consumption table with signed updates, so a digest already
consumed by an update cannot be revealed afterwards, and vice versa.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from agentgate.crypto.hashing import HexLike, commitment_digest, normalize_address
from agentgate.engine.commitments import NonceCommitmentStore
from agentgate.errors import Unauthorized
from agentgate.governance.authorization import AuthorizationLedger
from agentgate.models.commitment import RevealRecord
from agentgate.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class NonceRevealGate:
    """Direct-disclosure path for authorized agents."""

    def __init__(
        self,
        authorization: AuthorizationLedger,
        store: NonceCommitmentStore,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._authorization = authorization
        self._store = store
        self._event_log = event_log if event_log is not None else EventLog()

    def reveal(self, caller: str, nonce: HexLike, now: Optional[int] = None) -> RevealRecord:
        """Disclose ``nonce`` as ``caller`` and consume ``H(nonce || caller)``."""
        if not self._authorization.is_authorized(caller):
            logger.warning("Reveal from unauthorized caller %s", caller)
            raise Unauthorized(f"caller {caller} is not an authorized agent")

        caller = normalize_address(caller, "caller")
        digest = commitment_digest(nonce, caller)
        now = int(time.time()) if now is None else now

        with self._store.lock:
            self._store.require_unconsumed(digest)
            self._event_log.record_many(
                [
                    (EventKind.NONCE_REVEALED, caller, {"digest": digest, "caller": caller}),
                    (EventKind.COMMITMENT_CONSUMED, caller, {"digest": digest, "path": "reveal"}),
                ],
                timestamp=now,
            )
            self._store.consume(digest, revealed=True)

        logger.info("Nonce revealed by %s (digest %s)", caller, digest)
        return RevealRecord(digest=digest, revealed=True)
