"""Authorization ledger — which agent identities may act.

Mutated only by the controller. Revocation takes effect for later calls
and never unwinds commitments that were already consumed.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from agentgate.crypto.hashing import normalize_address
from agentgate.governance.controller import ControllerCapability
from agentgate.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class AuthorizationLedger:
    """Maps agent identity to an authorized flag.

    Usage:
        ledger = AuthorizationLedger(ControllerCapability(controller))
        ledger.authorize(controller, agent)
        ledger.is_authorized(agent)  # True
        ledger.revoke(controller, agent)
    """

    def __init__(
        self,
        controller: ControllerCapability,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._controller = controller
        self._event_log = event_log if event_log is not None else EventLog()
        self._authorized: dict[str, bool] = {}

    def authorize(self, caller: str, identity: str, now: Optional[int] = None) -> None:
        """Grant ``identity`` agent rights. Controller only."""
        self._set(caller, identity, True, now)

    def revoke(self, caller: str, identity: str, now: Optional[int] = None) -> None:
        """Withdraw agent rights from ``identity``. Controller only."""
        self._set(caller, identity, False, now)

    def is_authorized(self, identity: str) -> bool:
        try:
            return self._authorized.get(normalize_address(identity, "identity"), False)
        except ValueError:
            return False

    def authorized_agents(self) -> list[str]:
        return sorted(a for a, flag in self._authorized.items() if flag)

    def restore(self, agents: Iterable[str]) -> None:
        """Replace the ledger contents from a persisted snapshot."""
        self._authorized = {normalize_address(a, "identity"): True for a in agents}

    def _set(self, caller: str, identity: str, authorized: bool, now: Optional[int]) -> None:
        action = "authorize" if authorized else "revoke"
        self._controller.require(caller, action)
        identity = normalize_address(identity, "identity")

        self._event_log.record(
            EventKind.AUTHORIZATION_CHANGED,
            actor_id=self._controller.address,
            payload={"identity": identity, "authorized": authorized},
            timestamp=now,
        )
        self._authorized[identity] = authorized
        logger.info("Agent %s %s", identity, "authorized" if authorized else "revoked")
