#!/usr/bin/env python3
"""agentgate invariant checks against protocol config and persisted state."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from eth_utils import is_checksum_address, is_hex


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
DATA_DIR = ROOT / "data"
PARAMS_FILE = "protocol_params.json"
STATE_FILE = "state.json"


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_digest(value: object, label: str, errors: list[str]) -> None:
    if not isinstance(value, str) or not value.startswith("0x") or len(value) != 66 or not is_hex(value):
        errors.append(f"{label} must be a 0x-prefixed 32-byte hex string, got {value!r}")


def check_state(state: dict, errors: list[str]) -> None:
    """Cross-ledger invariants on a saved snapshot."""
    consumed = set(state.get("consumed", []))
    revealed = set(state.get("revealed", []))
    stray = sorted(revealed - consumed)
    if stray:
        errors.append(f"revealed digests not marked consumed: {stray}")

    for record in state.get("updates", []):
        if record.get("digest") not in consumed:
            errors.append(f"applied update digest not consumed: {record.get('digest')}")

    root = state.get("trusted_root", {})
    if root:
        check_digest(root.get("root"), "state trusted_root.root", errors)
        if root.get("version", 0) < 0:
            errors.append("trusted_root.version must be >= 0")

    for pair in state.get("cross_chain_consumed", []):
        if len(pair) != 2 or any(not isinstance(v, int) or v < 0 for v in pair):
            errors.append(f"malformed cross-chain entry: {pair!r}")


def check(config_dir: Optional[Path] = None, data_dir: Optional[Path] = None) -> int:
    config_dir = Path(config_dir) if config_dir is not None else CONFIG_DIR
    data_dir = Path(data_dir) if data_dir is not None else DATA_DIR
    params = load_json(config_dir / PARAMS_FILE)
    errors: list[str] = []

    # --- Signing domain invariants ---
    domain = params.get("signing_domain", {})
    for key in ("name", "version", "chain_id", "verifying_contract"):
        if key not in domain:
            errors.append(f"signing_domain missing field: {key}")
    if not domain.get("name"):
        errors.append("signing_domain.name must not be empty")
    chain_id = domain.get("chain_id")
    if not isinstance(chain_id, int) or chain_id <= 0:
        errors.append(f"signing_domain.chain_id must be a positive integer, got {chain_id!r}")
    contract = domain.get("verifying_contract", "")
    if not is_checksum_address(contract):
        errors.append(f"verifying_contract must be a checksummed address, got {contract!r}")

    # --- Controller invariants ---
    controller = params.get("controller", "")
    if not is_checksum_address(controller):
        errors.append(f"controller must be a checksummed address, got {controller!r}")
    elif int(controller, 16) == 0:
        errors.append("controller must not be the zero address")

    check_digest(params.get("initial_trusted_root"), "initial_trusted_root", errors)

    # --- Payload URI policy invariants ---
    policy = params.get("payload_uri", {})
    max_length = policy.get("max_length", 0)
    if not isinstance(max_length, int) or max_length <= 0:
        errors.append(f"payload_uri.max_length must be > 0, got {max_length!r}")
    allowed = policy.get("allowed_domains", [])
    if not allowed:
        errors.append("payload_uri.allowed_domains must not be empty")
    if len(set(allowed)) != len(allowed):
        errors.append("payload_uri.allowed_domains contains duplicates")
    for host in allowed:
        if host != host.lower() or "/" in host:
            errors.append(f"allowed domain must be a lower-case host name: {host!r}")
    for scheme, host in policy.get("scheme_gateways", {}).items():
        if scheme in ("http", "https"):
            errors.append(f"scheme gateway cannot remap {scheme}")
        if host not in allowed:
            errors.append(f"gateway host for {scheme}:// is not allow-listed: {host}")

    # --- Persisted state invariants ---
    state_path = data_dir / STATE_FILE
    if state_path.exists():
        check_state(load_json(state_path), errors)

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
