#!/usr/bin/env python3
"""Publish a new trusted cross-chain root from a list of remote nonces.

Reads ``domain_id:nonce`` pairs (one per line, ``#`` comments allowed),
builds the sorted-pair Keccak tree, publishes its root through the
protocol service as the controller, and writes one inclusion proof per
pair to ``data/proofs/root-v<version>.json`` for relayers to hand out.

Usage:
    python3 tools/publish_root.py nonces.txt

Reads:
    AGENTGATE_CONTROLLER from a .env file at the project root, falling back
    to the controller in config/protocol_params.json.
"""

import json
import sys
from pathlib import Path

# Add src to path for agentgate imports
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from agentgate.crypto.hashing import cross_chain_leaf
from agentgate.crypto.merkle import MerkleTree
from agentgate.persistence.event_log import EventLog
from agentgate.persistence.state_store import StateStore
from agentgate.policy.resolver import PolicyResolver
from agentgate.service import ProtocolService

CONFIG_DIR = ROOT / "config"
DATA_DIR = ROOT / "data"


def read_pairs(path: Path) -> list[tuple[int, int]]:
    pairs: list[tuple[int, int]] = []
    for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        domain_id, sep, nonce = line.partition(":")
        if not sep:
            raise ValueError(f"{path}:{line_no}: expected domain_id:nonce, got {line!r}")
        pairs.append((int(domain_id, 0), int(nonce, 0)))
    return pairs


def main(
    argv: list[str],
    config_dir: Path = CONFIG_DIR,
    data_dir: Path = DATA_DIR,
    env_file: Path = ROOT / ".env",
) -> int:
    if len(argv) != 1:
        print("Usage: publish_root.py <nonce-list-file>")
        return 1

    resolver = PolicyResolver.from_config_dir(config_dir, env_file=env_file)
    controller = resolver.controller_address()

    try:
        pairs = read_pairs(Path(argv[0]))
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1
    if not pairs:
        print("ERROR: nonce list is empty")
        return 1

    data_dir.mkdir(parents=True, exist_ok=True)
    service = ProtocolService(
        resolver,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )

    tree = MerkleTree()
    for domain_id, nonce in pairs:
        tree.add_leaf(cross_chain_leaf(domain_id, nonce))
    root = tree.compute_root()

    result = service.update_root(controller, root)
    if not result.success:
        print(f"ERROR: {'; '.join(result.errors)}")
        return 1
    version = result.data["version"]

    proofs = []
    for domain_id, nonce in pairs:
        proof = tree.inclusion_proof(cross_chain_leaf(domain_id, nonce), root_version=version)
        proofs.append({"domain_id": domain_id, "nonce": nonce, "proof": proof.to_dict()})

    proofs_dir = data_dir / "proofs"
    proofs_dir.mkdir(parents=True, exist_ok=True)
    out_path = proofs_dir / f"root-v{version}.json"
    out_path.write_text(
        json.dumps({"root": root, "version": version, "proofs": proofs}, indent=2) + "\n",
        encoding="utf-8",
    )

    print("=" * 60)
    print("TRUSTED ROOT PUBLISHED")
    print("=" * 60)
    print(f"  Root:      {root}")
    print(f"  Version:   {version}")
    print(f"  Leaves:    {tree.leaf_count}")
    print(f"  Proofs:    {out_path}")
    for warning in result.warnings:
        print(f"  Warning:   {warning}")
    print()
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
