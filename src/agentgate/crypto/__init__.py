"""Cryptographic primitives — Keccak hashing, Merkle proofs, EIP-712 signatures."""

from agentgate.crypto.hashing import commitment_digest, cross_chain_leaf, keccak_hex
from agentgate.crypto.merkle import MerkleProof, MerkleTree, verify_proof

__all__ = [
    "commitment_digest",
    "cross_chain_leaf",
    "keccak_hex",
    "MerkleProof",
    "MerkleTree",
    "verify_proof",
]
