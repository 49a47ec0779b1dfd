"""agentgate — authenticated agent updates with commit/reveal nonces and cross-chain replay protection."""

__version__ = "0.2.0"
