"""Controller capability — the single privileged identity.

Authorization changes, trusted-root rotation and validator policy are
mutated only through entry points that call ``require`` first. The
capability is passed to each administered component at construction;
there is no ambient global authority.
"""

from __future__ import annotations

import logging

from agentgate.crypto.hashing import normalize_address
from agentgate.errors import Unauthorized

logger = logging.getLogger(__name__)


class ControllerCapability:
    """Checks that a caller is the configured controller."""

    def __init__(self, controller: str) -> None:
        self._controller = normalize_address(controller, "controller")

    @property
    def address(self) -> str:
        return self._controller

    def is_controller(self, caller: str) -> bool:
        try:
            return normalize_address(caller, "caller") == self._controller
        except ValueError:
            return False

    def require(self, caller: str, action: str) -> None:
        """Raise Unauthorized unless ``caller`` is the controller."""
        if not self.is_controller(caller):
            logger.warning("Rejected %s from non-controller %s", action, caller)
            raise Unauthorized(f"{action}: caller {caller} is not the controller")
