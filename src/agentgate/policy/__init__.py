"""Protocol parameters loaded from the config directory."""

from agentgate.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
