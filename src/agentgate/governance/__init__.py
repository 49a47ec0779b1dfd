"""Controller-gated administration: agent authorization and trusted roots."""

from agentgate.governance.authorization import AuthorizationLedger
from agentgate.governance.controller import ControllerCapability
from agentgate.governance.root_publisher import TrustedRootPublisher

__all__ = ["AuthorizationLedger", "ControllerCapability", "TrustedRootPublisher"]
