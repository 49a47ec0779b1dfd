"""Payload locator validation."""

from agentgate.validation.payload_uri import PayloadURIValidator

__all__ = ["PayloadURIValidator"]
