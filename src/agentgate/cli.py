"""agentgate CLI — command-line interface for the update protocol.

Usage:
    python -m agentgate.cli status
    python -m agentgate.cli authorize --caller 0xController --agent 0xAgent
    python -m agentgate.cli commitment-digest --nonce 0x01 --agent 0xAgent
    python -m agentgate.cli sign-update --request request.json --env .env
    python -m agentgate.cli submit-update --request request.json --signature 0x...
    python -m agentgate.cli reveal --caller 0xAgent --nonce 0x01
    python -m agentgate.cli build-tree --pairs 1:42 1:43
    python -m agentgate.cli update-root --caller 0xController --root 0x...
    python -m agentgate.cli consume-cross-chain --domain-id 1 --nonce 42 --proof proof.json
    python -m agentgate.cli check-invariants
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from agentgate.crypto.hashing import cross_chain_leaf
from agentgate.crypto.merkle import MerkleProof, MerkleTree
from agentgate.crypto.signatures import sign_update
from agentgate.models.update import UpdateRequest
from agentgate.persistence.event_log import EventLog
from agentgate.persistence.state_store import StateStore
from agentgate.policy.resolver import PolicyResolver
from agentgate.service import ProtocolService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"

AGENT_KEY_ENV = "AGENTGATE_AGENT_KEY"


def _make_service(
    config_dir: Path, data_dir: Path = DEFAULT_DATA, env_file: Optional[Path] = None
) -> ProtocolService:
    """Create a ProtocolService with durable persistence."""
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(config_dir, env_file=env_file)
    event_log = EventLog(storage_path=data_dir / "events.jsonl")
    state_store = StateStore(storage_path=data_dir / "state.json")
    return ProtocolService(resolver, event_log=event_log, state_store=state_store)


def _service(args: argparse.Namespace) -> ProtocolService:
    return _make_service(args.config, args.data, args.env)


def _parse_int(value: str) -> int:
    """Accept decimal or 0x-prefixed integers."""
    return int(value, 0)


def _read_json(path: Path) -> Any:
    with Path(path).open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _report(result: ServiceResult) -> int:
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed ({result.error_code}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_authorize(args: argparse.Namespace) -> int:
    return _report(_service(args).authorize_agent(args.caller, args.agent))


def cmd_revoke(args: argparse.Namespace) -> int:
    return _report(_service(args).revoke_agent(args.caller, args.agent))


def cmd_is_authorized(args: argparse.Namespace) -> int:
    authorized = _service(args).is_authorized(args.agent)
    print(json.dumps({"agent": args.agent, "authorized": authorized}))
    return 0


def cmd_commitment_digest(args: argparse.Namespace) -> int:
    try:
        digest = ProtocolService.commitment_digest(args.nonce, args.agent)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(digest)
    return 0


def cmd_sign_update(args: argparse.Namespace) -> int:
    if args.env is not None:
        load_dotenv(args.env)
    private_key = os.getenv(AGENT_KEY_ENV)
    if not private_key:
        print(f"Failed: {AGENT_KEY_ENV} is not set", file=sys.stderr)
        return 1
    try:
        request = UpdateRequest.from_dict(_read_json(args.request))
    except (KeyError, ValueError) as e:
        print(f"Failed: invalid request: {e}", file=sys.stderr)
        return 1
    domain = PolicyResolver.from_config_dir(args.config, env_file=args.env).signing_domain()
    print("0x" + sign_update(request, domain, private_key).hex())
    return 0


def cmd_submit_update(args: argparse.Namespace) -> int:
    try:
        request = UpdateRequest.from_dict(_read_json(args.request))
    except (KeyError, ValueError) as e:
        print(f"Failed: invalid request: {e}", file=sys.stderr)
        return 1
    return _report(_service(args).submit_update(request, args.signature))


def cmd_reveal(args: argparse.Namespace) -> int:
    return _report(_service(args).reveal_nonce(args.caller, args.nonce))


def cmd_update_root(args: argparse.Namespace) -> int:
    return _report(_service(args).update_root(args.caller, args.root))


def cmd_consume_cross_chain(args: argparse.Namespace) -> int:
    raw = _read_json(args.proof)
    try:
        if isinstance(raw, dict):
            proof = MerkleProof.from_dict(raw)
        elif isinstance(raw, list):
            proof = raw
        else:
            raise ValueError("expected a proof object or a list of sibling hashes")
    except (KeyError, TypeError, ValueError) as e:
        print(f"Failed: invalid proof: {e}", file=sys.stderr)
        return 1
    service = _service(args)
    return _report(
        service.consume_cross_chain(args.domain_id, args.nonce, proof, caller=args.caller)
    )


def cmd_build_tree(args: argparse.Namespace) -> int:
    pairs: list[tuple[int, int]] = []
    for item in args.pairs:
        domain_id, sep, nonce = item.partition(":")
        if not sep:
            print(f"Failed: expected domain_id:nonce, got {item!r}", file=sys.stderr)
            return 1
        pairs.append((_parse_int(domain_id), _parse_int(nonce)))

    tree = MerkleTree()
    for domain_id, nonce in pairs:
        tree.add_leaf(cross_chain_leaf(domain_id, nonce))
    root = tree.compute_root()
    proofs = []
    for domain_id, nonce in pairs:
        proof = tree.inclusion_proof(cross_chain_leaf(domain_id, nonce), args.root_version)
        proofs.append({"domain_id": domain_id, "nonce": nonce, "proof": proof.to_dict()})
    print(json.dumps({"root": root, "proofs": proofs}, indent=2))
    return 0


def cmd_register_domain(args: argparse.Namespace) -> int:
    return _report(_service(args).register_domain(args.caller, args.domain))


def cmd_unregister_domain(args: argparse.Namespace) -> int:
    return _report(_service(args).unregister_domain(args.caller, args.domain))


def cmd_set_max_length(args: argparse.Namespace) -> int:
    return _report(_service(args).set_max_uri_length(args.caller, args.max_length))


def cmd_sanitize_uri(args: argparse.Namespace) -> int:
    return _report(_service(args).sanitize_uri(args.uri))


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run protocol invariant checks."""
    # Import and run the existing check_invariants tool
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(config_dir=args.config, data_dir=args.data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentgate",
        description="agentgate — authenticated agent update protocol CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_DATA,
        help="Path to data directory for events and state (default: data/)",
    )
    parser.add_argument("--env", type=Path, help="Optional .env file with deployment overrides")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show protocol status")

    # authorize / revoke
    for name, help_text in (("authorize", "Authorize an agent"), ("revoke", "Revoke an agent")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--caller", required=True, help="Caller address (must be the controller)")
        p.add_argument("--agent", required=True, help="Agent address")

    # is-authorized
    p_is = sub.add_parser("is-authorized", help="Check an agent's authorization")
    p_is.add_argument("--agent", required=True, help="Agent address")

    # commitment-digest
    p_cd = sub.add_parser("commitment-digest", help="Compute H(nonce || agent)")
    p_cd.add_argument("--nonce", required=True, help="Nonce (0x-hex, up to 32 bytes)")
    p_cd.add_argument("--agent", required=True, help="Agent address")

    # sign-update
    p_sign = sub.add_parser("sign-update", help=f"Sign a request with ${AGENT_KEY_ENV}")
    p_sign.add_argument("--request", type=Path, required=True, help="Update request JSON file")

    # submit-update
    p_sub = sub.add_parser("submit-update", help="Submit a signed update request")
    p_sub.add_argument("--request", type=Path, required=True, help="Update request JSON file")
    p_sub.add_argument("--signature", required=True, help="65-byte signature (0x-hex)")

    # reveal
    p_rev = sub.add_parser("reveal", help="Consume a commitment by revealing its nonce")
    p_rev.add_argument("--caller", required=True, help="Agent address")
    p_rev.add_argument("--nonce", required=True, help="Nonce (0x-hex, up to 32 bytes)")

    # update-root
    p_root = sub.add_parser("update-root", help="Replace the trusted cross-chain root")
    p_root.add_argument("--caller", required=True, help="Caller address (must be the controller)")
    p_root.add_argument("--root", required=True, help="New root (0x-hex, 32 bytes)")

    # consume-cross-chain
    p_cc = sub.add_parser("consume-cross-chain", help="Consume a remote nonce with a proof")
    p_cc.add_argument("--domain-id", type=_parse_int, required=True, help="Remote domain id")
    p_cc.add_argument("--nonce", type=_parse_int, required=True, help="Remote nonce")
    p_cc.add_argument("--proof", type=Path, required=True, help="Proof JSON file")
    p_cc.add_argument("--caller", help="Submitting identity (recorded only)")

    # build-tree
    p_tree = sub.add_parser("build-tree", help="Build a root and proofs for domain:nonce pairs")
    p_tree.add_argument("--pairs", nargs="+", required=True, help="domain_id:nonce pairs")
    p_tree.add_argument("--root-version", type=int, help="Root version to stamp on proofs")

    # payload URI policy
    for name, help_text in (
        ("register-domain", "Allow a payload URI domain"),
        ("unregister-domain", "Remove a payload URI domain"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--caller", required=True, help="Caller address (must be the controller)")
        p.add_argument("--domain", required=True, help="Host name")

    p_len = sub.add_parser("set-max-length", help="Set the payload URI length limit")
    p_len.add_argument("--caller", required=True, help="Caller address (must be the controller)")
    p_len.add_argument("--max-length", type=int, required=True, help="Maximum length")

    p_san = sub.add_parser("sanitize-uri", help="Check and normalize a payload URI")
    p_san.add_argument("--uri", required=True, help="Payload URI")

    # check-invariants
    sub.add_parser("check-invariants", help="Run protocol invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "authorize": cmd_authorize,
        "revoke": cmd_revoke,
        "is-authorized": cmd_is_authorized,
        "commitment-digest": cmd_commitment_digest,
        "sign-update": cmd_sign_update,
        "submit-update": cmd_submit_update,
        "reveal": cmd_reveal,
        "update-root": cmd_update_root,
        "consume-cross-chain": cmd_consume_cross_chain,
        "build-tree": cmd_build_tree,
        "register-domain": cmd_register_domain,
        "unregister-domain": cmd_unregister_domain,
        "set-max-length": cmd_set_max_length,
        "sanitize-uri": cmd_sanitize_uri,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
