"""Nonce commitment store — the single consumption table for both local paths.

Signed updates and direct reveals draw on the same ``consumed`` map, so a
digest used by one path can never be used by the other. ``consume`` is a
single check-and-set under the store lock. Callers that need to do more
work between their own check and the final write (verifying a signature,
recording the event) hold ``lock`` across the whole sequence; the lock is
re-entrant so ``consume`` still re-checks inside it.
"""

from __future__ import annotations

import threading
from typing import Iterable

from agentgate.crypto.hashing import normalize_digest
from agentgate.errors import AlreadyConsumed
from agentgate.models.commitment import Commitment, RevealRecord


class NonceCommitmentStore:
    """Monotonic, single-use commitment table keyed by digest."""

    def __init__(self) -> None:
        self._consumed: dict[str, bool] = {}
        self._revealed: dict[str, bool] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def is_consumed(self, digest: str) -> bool:
        return self._consumed.get(normalize_digest(digest), False)

    def is_revealed(self, digest: str) -> bool:
        return self._revealed.get(normalize_digest(digest), False)

    def commitment(self, digest: str) -> Commitment:
        digest = normalize_digest(digest)
        return Commitment(digest=digest, consumed=self._consumed.get(digest, False))

    def reveal_record(self, digest: str) -> RevealRecord:
        digest = normalize_digest(digest)
        return RevealRecord(digest=digest, revealed=self._revealed.get(digest, False))

    def require_unconsumed(self, digest: str) -> str:
        """Return the normalized digest, or raise AlreadyConsumed."""
        digest = normalize_digest(digest)
        if self._consumed.get(digest, False):
            raise AlreadyConsumed(f"commitment {digest} already consumed")
        return digest

    def consume(self, digest: str, revealed: bool = False) -> Commitment:
        """Mark ``digest`` consumed (and optionally revealed) in one step."""
        with self._lock:
            digest = self.require_unconsumed(digest)
            self._consumed[digest] = True
            if revealed:
                self._revealed[digest] = True
            return Commitment(digest=digest, consumed=True)

    def consumed_digests(self) -> list[str]:
        return sorted(d for d, flag in self._consumed.items() if flag)

    def revealed_digests(self) -> list[str]:
        return sorted(d for d, flag in self._revealed.items() if flag)

    def restore(self, consumed: Iterable[str], revealed: Iterable[str]) -> None:
        """Replace the table from a persisted snapshot."""
        with self._lock:
            self._consumed = {normalize_digest(d): True for d in consumed}
            self._revealed = {normalize_digest(d): True for d in revealed}
