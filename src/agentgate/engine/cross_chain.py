"""Cross-chain nonce ledger — consumption gated by Merkle inclusion.

A remote domain publishes (through the controller) a trusted root over
the ``(domain_id, nonce)`` pairs it has committed. Anyone holding an
inclusion proof for a pair may consume it here exactly once. Entries are
keyed by the pair, so the same nonce under different domains is
independent. Proofs are checked only against the current root; a proof
built for a rotated-out root fails.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterable, Optional, Union

from agentgate.crypto.hashing import cross_chain_leaf, require_uint256
from agentgate.crypto.merkle import MerkleProof, root_from_path
from agentgate.errors import AlreadyConsumed, InvalidProof
from agentgate.governance.root_publisher import TrustedRootPublisher
from agentgate.models.commitment import CrossChainEntry
from agentgate.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)

ProofLike = Union[MerkleProof, list[str]]


class CrossChainNonceLedger:
    """Consumption ledger for remote-domain nonces."""

    def __init__(
        self,
        roots: TrustedRootPublisher,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._roots = roots
        self._event_log = event_log if event_log is not None else EventLog()
        self._consumed: dict[tuple[int, int], bool] = {}
        self._lock = threading.Lock()

    def is_consumed(self, domain_id: int, nonce: int) -> bool:
        return self._consumed.get((domain_id, nonce), False)

    def entry(self, domain_id: int, nonce: int) -> CrossChainEntry:
        return CrossChainEntry(domain_id, nonce, self.is_consumed(domain_id, nonce))

    def consume_with_proof(
        self,
        domain_id: int,
        nonce: int,
        proof: ProofLike,
        caller: Optional[str] = None,
        now: Optional[int] = None,
    ) -> CrossChainEntry:
        """Consume ``(domain_id, nonce)`` if ``proof`` places it under the current root."""
        require_uint256(domain_id, "domain_id")
        require_uint256(nonce, "nonce")
        now = int(time.time()) if now is None else now
        key = (domain_id, nonce)
        with self._lock:
            return self._consume(key, proof, caller, now)

    def _consume(
        self,
        key: tuple[int, int],
        proof: ProofLike,
        caller: Optional[str],
        now: int,
    ) -> CrossChainEntry:
        domain_id, nonce = key
        if self._consumed.get(key, False):
            raise AlreadyConsumed(f"nonce {nonce} for domain {domain_id} already consumed")

        leaf = cross_chain_leaf(domain_id, nonce)
        trusted = self._roots.current
        if isinstance(proof, MerkleProof):
            if proof.leaf_hash != leaf:
                raise InvalidProof(
                    f"proof is for leaf {proof.leaf_hash}, expected {leaf}"
                )
            path = proof.path
            proof_version = proof.root_version
        else:
            path = list(proof)
            proof_version = None

        try:
            computed = root_from_path(leaf, path)
        except ValueError as exc:
            raise InvalidProof(f"malformed proof: {exc}") from exc

        if computed != trusted.root:
            logger.warning(
                "Invalid proof for domain %d nonce %d: computed %s, trusted %s "
                "(proof built for version %s, current version %d)",
                domain_id, nonce, computed, trusted.root, proof_version, trusted.version,
            )
            raise InvalidProof(
                f"proof does not match trusted root version {trusted.version}"
                + (f" (proof built for version {proof_version})" if proof_version is not None else "")
            )

        self._event_log.record(
            EventKind.CROSS_CHAIN_NONCE_CONSUMED,
            actor_id=caller or "anonymous",
            payload={"domain_id": domain_id, "nonce": nonce, "root_version": trusted.version},
            timestamp=now,
        )
        self._consumed[key] = True
        logger.info("Consumed cross-chain nonce %d for domain %d", nonce, domain_id)
        return CrossChainEntry(domain_id, nonce, True)

    def consumed_entries(self) -> list[tuple[int, int]]:
        return sorted(k for k, flag in self._consumed.items() if flag)

    def restore(self, entries: Iterable[tuple[int, int]]) -> None:
        """Replace the ledger from a persisted snapshot."""
        self._consumed = {(int(d), int(n)): True for d, n in entries}
