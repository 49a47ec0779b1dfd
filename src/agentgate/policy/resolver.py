"""Policy resolver — typed access to ``config/protocol_params.json``.

The config directory is the single source of protocol parameters: the
EIP-712 signing domain, the controller identity, the initial trusted
root, and the payload URI policy. Missing keys fail at load time rather
than on first use.

Deployment-specific values may be overridden from the environment, read
from a ``.env`` file with python-dotenv:

    AGENTGATE_CONTROLLER          controller address
    AGENTGATE_CHAIN_ID            EIP-712 chain id
    AGENTGATE_VERIFYING_CONTRACT  EIP-712 verifying contract
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from agentgate.crypto.hashing import normalize_address, normalize_digest
from agentgate.crypto.signatures import SigningDomain


PARAMS_FILE = "protocol_params.json"

_REQUIRED_KEYS = ("signing_domain", "controller", "initial_trusted_root", "payload_uri")
_DOMAIN_KEYS = ("name", "version", "chain_id", "verifying_contract")


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


class PolicyResolver:
    """Resolves protocol parameters.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        domain = resolver.signing_domain()
    """

    def __init__(self, params: dict[str, Any]) -> None:
        for key in _REQUIRED_KEYS:
            if key not in params:
                raise KeyError(f"protocol params missing required key: {key}")
        for key in _DOMAIN_KEYS:
            if key not in params["signing_domain"]:
                raise KeyError(f"signing_domain missing required key: {key}")
        self._params = params

    @classmethod
    def from_config_dir(
        cls, config_dir: Path, env_file: Optional[Path] = None
    ) -> PolicyResolver:
        """Load params from ``config_dir``; apply environment overrides if ``env_file`` is given."""
        params = load_json(Path(config_dir) / PARAMS_FILE)
        if env_file is not None:
            load_dotenv(env_file)
            params = _apply_env_overrides(params)
        return cls(params)

    def signing_domain(self) -> SigningDomain:
        domain = self._params["signing_domain"]
        return SigningDomain(
            name=domain["name"],
            version=domain["version"],
            chain_id=int(domain["chain_id"]),
            verifying_contract=domain["verifying_contract"],
        )

    def controller_address(self) -> str:
        return normalize_address(self._params["controller"], "controller")

    def initial_trusted_root(self) -> str:
        return normalize_digest(self._params["initial_trusted_root"], "initial_trusted_root")

    def payload_uri_policy(self) -> dict[str, Any]:
        policy = self._params["payload_uri"]
        return {
            "max_length": int(policy["max_length"]),
            "allowed_domains": list(policy["allowed_domains"]),
            "scheme_gateways": dict(policy.get("scheme_gateways", {})),
        }

    def as_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._params)


def _apply_env_overrides(params: dict[str, Any]) -> dict[str, Any]:
    params = copy.deepcopy(params)
    controller = os.getenv("AGENTGATE_CONTROLLER")
    if controller:
        params["controller"] = controller
    chain_id = os.getenv("AGENTGATE_CHAIN_ID")
    if chain_id:
        params["signing_domain"]["chain_id"] = int(chain_id)
    contract = os.getenv("AGENTGATE_VERIFYING_CONTRACT")
    if contract:
        params["signing_domain"]["verifying_contract"] = contract
    return params
