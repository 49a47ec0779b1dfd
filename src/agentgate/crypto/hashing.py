"""Hashing and encoding helpers shared by every component.

All digests are Keccak-256, rendered as ``0x``-prefixed lowercase hex
(66 characters). Identities are EIP-55 checksummed addresses. Integers
that travel on the wire (target ids, expiries, domain ids, nonces) are
unsigned 256-bit values.
"""

from __future__ import annotations

from typing import Union

from eth_utils import (
    decode_hex,
    encode_hex,
    is_address,
    is_hex,
    keccak,
    to_checksum_address,
)
from web3 import Web3


UINT256_MAX = 2**256 - 1
ZERO_ADDRESS = "0x" + "0" * 40
ZERO_DIGEST = "0x" + "0" * 64

HexLike = Union[str, bytes, int]


def keccak_hex(data: bytes) -> str:
    """Keccak-256 of raw bytes as 0x-hex."""
    return encode_hex(keccak(primitive=data))


def require_uint256(value: int, name: str = "value") -> int:
    """Reject anything that is not an unsigned 256-bit integer."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"{name} out of uint256 range: {value}")
    return value


def to_bytes32(value: HexLike, name: str = "value") -> bytes:
    """Coerce an int, hex string or byte string into 32 big-endian bytes.

    Shorter inputs are left-padded, so ``1``, ``"0x01"`` and ``b"\\x01"``
    all denote the same word.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return require_uint256(value, name).to_bytes(32, "big")
    if isinstance(value, str):
        if not is_hex(value):
            raise ValueError(f"{name} is not valid hex: {value!r}")
        raw = decode_hex(value)
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise ValueError(f"{name} must be int, hex str or bytes")
    if len(raw) > 32:
        raise ValueError(f"{name} exceeds 32 bytes ({len(raw)})")
    return raw.rjust(32, b"\x00")


def normalize_digest(value: HexLike, name: str = "digest") -> str:
    """Canonical 0x-hex form of a 32-byte digest."""
    return encode_hex(to_bytes32(value, name))


def require_bytes32(value: Union[str, bytes], name: str = "node") -> str:
    """Canonical 0x-hex form of a value that is exactly 32 bytes long.

    Unlike ``normalize_digest`` nothing is padded: tree nodes are full
    words, so a short or oversized value is rejected.
    """
    if isinstance(value, str):
        if not is_hex(value):
            raise ValueError(f"{name} is not valid hex: {value!r}")
        raw = decode_hex(value)
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise ValueError(f"{name} must be a hex str or bytes")
    if len(raw) != 32:
        raise ValueError(f"{name} must be exactly 32 bytes, got {len(raw)}")
    return encode_hex(raw)


def normalize_address(value: str, name: str = "address") -> str:
    """EIP-55 checksummed form of an address; raises ValueError if malformed."""
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"{name} is not a valid address: {value!r}")
    return to_checksum_address(value)


def commitment_digest(nonce: HexLike, agent: str) -> str:
    """Commitment digest binding a secret nonce to the committing identity.

    ``keccak256(nonce_bytes32 || address_bytes20)``. Binding the identity
    means a nonce seen in the clear cannot be replayed by another agent to
    reproduce the same digest.
    """
    nonce_bytes = to_bytes32(nonce, "nonce")
    agent_bytes = decode_hex(normalize_address(agent, "agent"))
    return keccak_hex(nonce_bytes + agent_bytes)


def cross_chain_leaf(domain_id: int, nonce: int) -> str:
    """Merkle leaf for a remote (domain, nonce) pair.

    ``keccak256(keccak256(abi.encode(domain_id, nonce)))``. The outer hash
    has a 32-byte preimage while every internal node hashes 64 bytes, so
    an internal node can never be passed off as a leaf.
    """
    require_uint256(domain_id, "domain_id")
    require_uint256(nonce, "nonce")
    inner = Web3.solidity_keccak(["uint256", "uint256"], [domain_id, nonce])
    return keccak_hex(bytes(inner))


def hash_pair(left: str, right: str) -> str:
    """Hash two tree nodes, smaller operand first.

    Canonical ordering makes proof verification independent of whether a
    sibling sat on the left or the right.
    """
    a = decode_hex(require_bytes32(left, "node"))
    b = decode_hex(require_bytes32(right, "node"))
    if b < a:
        a, b = b, a
    return keccak_hex(a + b)
