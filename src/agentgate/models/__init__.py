"""Data models for updates, commitments, and trusted roots."""

from agentgate.models.commitment import Commitment, CrossChainEntry, RevealRecord, TrustedRoot
from agentgate.models.update import UpdateRecord, UpdateRequest

__all__ = [
    "Commitment",
    "CrossChainEntry",
    "RevealRecord",
    "TrustedRoot",
    "UpdateRecord",
    "UpdateRequest",
]
