"""Merkle tree over Keccak-256 leaves with sorted-pair hashing.

Leaves are sorted before tree construction so the root depends only on
the leaf set. Sibling pairs are hashed smaller-first, so an inclusion
proof is a plain list of sibling hashes with no left/right markers. An
unpaired node at the end of a level is promoted unchanged, which keeps
roots compatible with the common Solidity ``MerkleProof`` verifiers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from agentgate.crypto.hashing import hash_pair, keccak_hex, normalize_digest, require_bytes32


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf.

    ``root_version`` optionally records which trusted-root version the
    proof was computed against. It is informational only.
    """
    leaf_hash: str
    path: list[str] = field(default_factory=list)
    root: str = ""
    root_version: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "leaf_hash": self.leaf_hash,
            "path": list(self.path),
            "root": self.root,
            "root_version": self.root_version,
        }

    @staticmethod
    def from_dict(data: dict) -> MerkleProof:
        return MerkleProof(
            leaf_hash=require_bytes32(data["leaf_hash"], "leaf_hash"),
            path=[require_bytes32(p, "path") for p in data.get("path", [])],
            root=data.get("root", ""),
            root_version=data.get("root_version"),
        )


class MerkleTree:
    """A deterministic Merkle tree using Keccak-256.

    Usage:
        tree = MerkleTree()
        tree.add_leaf(cross_chain_leaf(1, 42))
        tree.add_leaf(cross_chain_leaf(1, 43))
        root = tree.compute_root()
        proof = tree.inclusion_proof(cross_chain_leaf(1, 42))
    """

    def __init__(self) -> None:
        self._leaves: list[str] = []
        self._tree: list[list[str]] = []
        self._computed = False

    def add_leaf(self, leaf_hash: str) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(normalize_digest(leaf_hash, "leaf_hash"))

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def compute_root(self) -> str:
        """Compute the Merkle root.

        If no leaves, returns the hash of the empty string (null root).
        """
        self._computed = True
        if not self._leaves:
            self._tree = []
            return keccak_hex(b"")

        sorted_leaves = sorted(self._leaves)
        self._tree = [sorted_leaves]

        current_level = sorted_leaves
        while len(current_level) > 1:
            next_level: list[str] = []
            for i in range(0, len(current_level), 2):
                if i + 1 < len(current_level):
                    next_level.append(hash_pair(current_level[i], current_level[i + 1]))
                else:
                    next_level.append(current_level[i])
            self._tree.append(next_level)
            current_level = next_level

        return current_level[0]

    def inclusion_proof(
        self, leaf_hash: str, root_version: Optional[int] = None
    ) -> MerkleProof | None:
        """Generate an inclusion proof for a leaf.

        Returns None if the leaf is not in the tree.
        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        if not self._tree:
            return None

        leaf_hash = normalize_digest(leaf_hash, "leaf_hash")
        sorted_leaves = self._tree[0]
        if leaf_hash not in sorted_leaves:
            return None

        current_idx = sorted_leaves.index(leaf_hash)
        path: list[str] = []
        for level in self._tree[:-1]:
            sibling_idx = current_idx ^ 1
            if sibling_idx < len(level):
                path.append(level[sibling_idx])
            current_idx //= 2

        return MerkleProof(
            leaf_hash=leaf_hash,
            path=path,
            root=self._tree[-1][0],
            root_version=root_version,
        )


def root_from_path(leaf_hash: str, path: list[str]) -> str:
    """Fold a sibling path onto a leaf and return the resulting root.

    Every sibling must be a full 32-byte node; short values are not padded.
    """
    computed = normalize_digest(leaf_hash, "leaf_hash")
    for sibling in path:
        computed = hash_pair(computed, sibling)
    return computed


def verify_proof(leaf_hash: str, path: list[str], root: str) -> bool:
    """Check that ``path`` proves ``leaf_hash`` is a member of ``root``."""
    return root_from_path(leaf_hash, path) == normalize_digest(root, "root")
