"""Trusted root publisher — the controller-owned Merkle root of remote nonces.

The root summarizes the set of nonces already committed on remote
domains. Only the controller may replace it: a permissionless update
would let anyone publish a root admitting arbitrary nonces. Replacement
is a single assignment, so every later proof is checked against exactly
one root, and each replacement bumps a version counter that proofs may
carry for debugging.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from agentgate.crypto.hashing import ZERO_DIGEST, normalize_digest
from agentgate.governance.controller import ControllerCapability
from agentgate.models.commitment import TrustedRoot
from agentgate.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class TrustedRootPublisher:
    """Holds the current versioned trusted root."""

    def __init__(
        self,
        controller: ControllerCapability,
        initial_root: str = ZERO_DIGEST,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._controller = controller
        self._event_log = event_log if event_log is not None else EventLog()
        self._current = TrustedRoot(root=normalize_digest(initial_root, "initial_root"))

    @property
    def current(self) -> TrustedRoot:
        return self._current

    @property
    def current_root(self) -> str:
        return self._current.root

    def update_root(
        self, caller: str, new_root: str, now: Optional[int] = None
    ) -> TrustedRoot:
        """Replace the trusted root. Controller only.

        Returns the new TrustedRoot with its version incremented.
        """
        self._controller.require(caller, "update_root")
        new_root = normalize_digest(new_root, "new_root")
        now = int(time.time()) if now is None else now

        previous = self._current
        updated = TrustedRoot(root=new_root, version=previous.version + 1, updated_at=now)

        self._event_log.record(
            EventKind.ROOT_UPDATED,
            actor_id=self._controller.address,
            payload={
                "root": updated.root,
                "previous_root": previous.root,
                "version": updated.version,
                "updated_at": updated.updated_at,
            },
            timestamp=now,
        )
        self._current = updated
        logger.info("Trusted root rotated to %s (version %d)", updated.root, updated.version)
        return updated

    def restore(self, root: TrustedRoot) -> None:
        """Reinstate a persisted root without emitting an event."""
        self._current = TrustedRoot(
            root=normalize_digest(root.root, "root"),
            version=root.version,
            updated_at=root.updated_at,
        )
