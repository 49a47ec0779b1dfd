"""Signed update request and the record left behind when one is applied."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from agentgate.crypto.hashing import normalize_address, normalize_digest, require_uint256


@dataclass(frozen=True)
class UpdateRequest:
    """An agent's request to point ``target_id`` at a new payload.

    The request is carried with a detached EIP-712 signature over exactly
    these five fields. It is never persisted; only its effect is.
    """
    agent: str
    target_id: int
    payload_uri: str
    digest: str
    expiry: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "agent", normalize_address(self.agent, "agent"))
        object.__setattr__(self, "digest", normalize_digest(self.digest))
        require_uint256(self.target_id, "target_id")
        require_uint256(self.expiry, "expiry")
        if not isinstance(self.payload_uri, str):
            raise ValueError("payload_uri must be a string")

    def typed_message(self) -> dict[str, Any]:
        """Message fields as they appear in the EIP-712 struct."""
        return {
            "agent": self.agent,
            "targetId": self.target_id,
            "payloadURI": self.payload_uri,
            "digest": bytes.fromhex(self.digest[2:]),
            "expiry": self.expiry,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent,
            "target_id": self.target_id,
            "payload_uri": self.payload_uri,
            "digest": self.digest,
            "expiry": self.expiry,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> UpdateRequest:
        return UpdateRequest(
            agent=data["agent"],
            target_id=int(data["target_id"]),
            payload_uri=data["payload_uri"],
            digest=data["digest"],
            expiry=int(data["expiry"]),
        )


@dataclass(frozen=True)
class UpdateRecord:
    """The surviving effect of an applied update."""
    target_id: int
    payload_uri: str
    agent: str
    digest: str
    applied_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "payload_uri": self.payload_uri,
            "agent": self.agent,
            "digest": self.digest,
            "applied_at": self.applied_at,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> UpdateRecord:
        return UpdateRecord(
            target_id=int(data["target_id"]),
            payload_uri=data["payload_uri"],
            agent=data["agent"],
            digest=data["digest"],
            applied_at=int(data["applied_at"]),
        )
