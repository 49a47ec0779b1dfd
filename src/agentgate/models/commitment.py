"""Commitment, reveal, cross-chain and trusted-root record models.

These are read-side views of protocol state. The ledgers own the
underlying maps; records are built on demand and are immutable.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Commitment:
    """A one-time commitment digest and whether it has been used."""
    digest: str
    consumed: bool = False


@dataclass(frozen=True)
class RevealRecord:
    """Whether the nonce behind a digest was disclosed through the reveal path.

    Tracked apart from ``consumed`` so observers can tell a reveal from a
    signed update even though both draw on the same consumption flag.
    """
    digest: str
    revealed: bool = False


@dataclass(frozen=True)
class CrossChainEntry:
    """Consumption state of one nonce under one remote domain."""
    domain_id: int
    nonce: int
    consumed: bool = False


@dataclass(frozen=True)
class TrustedRoot:
    """The current trusted Merkle root for remote nonce commitments.

    ``version`` increases by one on every replacement; the initial root
    is version 0.
    """
    root: str
    version: int = 0
    updated_at: int = 0

    def to_dict(self) -> dict:
        return {"root": self.root, "version": self.version, "updated_at": self.updated_at}
