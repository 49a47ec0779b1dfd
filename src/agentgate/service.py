"""Protocol service — unified facade over the authenticated update protocol.

This is the primary interface for programmatic access. It wires every
component to one controller capability, one event log and one
commitment store:
- Agent authorization (controller only)
- Signed updates (EIP-712, commitment-bound, expiring)
- Nonce reveals (caller-authenticated)
- Cross-chain nonce consumption (Merkle proofs against the trusted root)
- Trusted root rotation (controller only)
- Payload URI policy (controller only)
- Persistence (event log, state store)

Every public operation runs under one re-entrant lock, so each call is a
single indivisible transition. Engine errors come back as failed
ServiceResults carrying the error's stable code; nothing is retried.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from agentgate.crypto.hashing import HexLike, commitment_digest
from agentgate.crypto.signatures import SignatureLike, SigningDomain
from agentgate.engine.commitments import NonceCommitmentStore
from agentgate.engine.cross_chain import CrossChainNonceLedger, ProofLike
from agentgate.engine.reveal_gate import NonceRevealGate
from agentgate.engine.update_authenticator import UpdateAuthenticator
from agentgate.errors import ProtocolError
from agentgate.governance.authorization import AuthorizationLedger
from agentgate.governance.controller import ControllerCapability
from agentgate.governance.root_publisher import TrustedRootPublisher
from agentgate.models.commitment import TrustedRoot
from agentgate.models.update import UpdateRecord, UpdateRequest
from agentgate.persistence.event_log import EventKind, EventLog
from agentgate.persistence.state_store import StateStore
from agentgate.policy.resolver import PolicyResolver
from agentgate.validation.payload_uri import PayloadURIValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    error_code: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


class ProtocolService:
    """Facade over the authorization, update, reveal and cross-chain paths.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = ProtocolService(resolver)

        service.authorize_agent(controller, agent)
        result = service.submit_update(request, signature)
        result = service.reveal_nonce(agent, nonce)

        service.update_root(controller, root)
        result = service.consume_cross_chain(domain_id, nonce, proof)

    Persistence (optional):
        service = ProtocolService(resolver, event_log=log, state_store=store)
        # State is persisted on each mutation. On construction it is loaded
        # and then brought forward by replaying the event log.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store
        self._persistence_degraded = False
        self._lock = threading.RLock()

        self._controller = ControllerCapability(resolver.controller_address())
        self._authorization = AuthorizationLedger(self._controller, self._event_log)
        self._roots = TrustedRootPublisher(
            self._controller, resolver.initial_trusted_root(), self._event_log
        )

        policy = resolver.payload_uri_policy()
        self._validator = PayloadURIValidator(
            self._controller,
            max_length=policy["max_length"],
            allowed_domains=policy["allowed_domains"],
            scheme_gateways=policy["scheme_gateways"],
            event_log=self._event_log,
        )

        self._store = NonceCommitmentStore()
        self._authenticator = UpdateAuthenticator(
            resolver.signing_domain(),
            self._authorization,
            self._store,
            validator=self._validator,
            event_log=self._event_log,
        )
        self._reveal_gate = NonceRevealGate(self._authorization, self._store, self._event_log)
        self._cross_chain = CrossChainNonceLedger(self._roots, self._event_log)

        if state_store is not None:
            self._load_state()
        self._replay_event_log()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def controller(self) -> str:
        return self._controller.address

    @property
    def signing_domain(self) -> SigningDomain:
        return self._authenticator.domain

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    def is_authorized(self, agent: str) -> bool:
        return self._authorization.is_authorized(agent)

    def is_consumed(self, digest: str) -> bool:
        return self._store.is_consumed(digest)

    def is_revealed(self, digest: str) -> bool:
        return self._store.is_revealed(digest)

    def is_cross_chain_consumed(self, domain_id: int, nonce: int) -> bool:
        return self._cross_chain.is_consumed(domain_id, nonce)

    def current_root(self) -> TrustedRoot:
        return self._roots.current

    def latest_update(self, target_id: int) -> Optional[UpdateRecord]:
        return self._authenticator.latest_update(target_id)

    def update_for_digest(self, digest: str) -> Optional[UpdateRecord]:
        return self._authenticator.update_for_digest(digest)

    @staticmethod
    def commitment_digest(nonce: HexLike, agent: str) -> str:
        """The digest an agent publishes in advance: ``H(nonce || agent)``."""
        return commitment_digest(nonce, agent)

    def sanitize_uri(self, uri: str) -> ServiceResult:
        """Run the payload URI policy without applying anything."""
        try:
            return ServiceResult(success=True, data={"payload_uri": self._validator.sanitize(uri)})
        except ProtocolError as e:
            return ServiceResult(success=False, errors=[str(e)], error_code=e.code)

    def is_allowed_domain(self, domain: str) -> bool:
        return self._validator.is_allowed_domain(domain)

    # ------------------------------------------------------------------
    # Controller administration
    # ------------------------------------------------------------------

    def authorize_agent(self, caller: str, agent: str, now: Optional[int] = None) -> ServiceResult:
        def _op() -> dict[str, Any]:
            self._authorization.authorize(caller, agent, now=now)
            return {"agent": agent, "authorized": True}
        return self._execute("authorize_agent", _op)

    def revoke_agent(self, caller: str, agent: str, now: Optional[int] = None) -> ServiceResult:
        def _op() -> dict[str, Any]:
            self._authorization.revoke(caller, agent, now=now)
            return {"agent": agent, "authorized": False}
        return self._execute("revoke_agent", _op)

    def update_root(self, caller: str, new_root: str, now: Optional[int] = None) -> ServiceResult:
        def _op() -> dict[str, Any]:
            return self._roots.update_root(caller, new_root, now=now).to_dict()
        return self._execute("update_root", _op)

    def register_domain(self, caller: str, domain: str, now: Optional[int] = None) -> ServiceResult:
        def _op() -> dict[str, Any]:
            self._validator.register_domain(caller, domain, now=now)
            return self._validator.policy_snapshot()
        return self._execute("register_domain", _op)

    def unregister_domain(self, caller: str, domain: str, now: Optional[int] = None) -> ServiceResult:
        def _op() -> dict[str, Any]:
            self._validator.unregister_domain(caller, domain, now=now)
            return self._validator.policy_snapshot()
        return self._execute("unregister_domain", _op)

    def set_max_uri_length(
        self, caller: str, max_length: int, now: Optional[int] = None
    ) -> ServiceResult:
        def _op() -> dict[str, Any]:
            self._validator.set_max_length(caller, max_length, now=now)
            return self._validator.policy_snapshot()
        return self._execute("set_max_uri_length", _op)

    # ------------------------------------------------------------------
    # Agent operations
    # ------------------------------------------------------------------

    def submit_update(
        self,
        request: UpdateRequest,
        signature: SignatureLike,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Authenticate and apply a signed update request."""
        def _op() -> dict[str, Any]:
            return self._authenticator.submit_update(request, signature, now=now).to_dict()
        return self._execute("submit_update", _op)

    def reveal_nonce(self, caller: str, nonce: HexLike, now: Optional[int] = None) -> ServiceResult:
        """Consume the caller's commitment by disclosing its nonce."""
        def _op() -> dict[str, Any]:
            record = self._reveal_gate.reveal(caller, nonce, now=now)
            return {"digest": record.digest, "revealed": record.revealed}
        return self._execute("reveal_nonce", _op)

    def consume_cross_chain(
        self,
        domain_id: int,
        nonce: int,
        proof: ProofLike,
        caller: Optional[str] = None,
        now: Optional[int] = None,
    ) -> ServiceResult:
        """Consume a remote (domain, nonce) pair proven under the trusted root."""
        def _op() -> dict[str, Any]:
            entry = self._cross_chain.consume_with_proof(
                domain_id, nonce, proof, caller=caller, now=now
            )
            return {"domain_id": entry.domain_id, "nonce": entry.nonce, "consumed": entry.consumed}
        return self._execute("consume_cross_chain", _op)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        root = self._roots.current
        return {
            "controller": self._controller.address,
            "signing_domain": self._authenticator.domain.to_eip712(),
            "authorized_agents": len(self._authorization.authorized_agents()),
            "consumed_commitments": len(self._store.consumed_digests()),
            "revealed_commitments": len(self._store.revealed_digests()),
            "cross_chain_consumed": len(self._cross_chain.consumed_entries()),
            "applied_updates": len(self._authenticator.update_records()),
            "trusted_root": root.to_dict(),
            "payload_uri_policy": self._validator.policy_snapshot(),
            "events": self._event_log.count,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _execute(self, action: str, operation: Callable[[], dict[str, Any]]) -> ServiceResult:
        with self._lock:
            try:
                data = operation()
            except ProtocolError as e:
                logger.info("%s rejected (%s): %s", action, e.code, e)
                return ServiceResult(success=False, errors=[str(e)], error_code=e.code)
            except ValueError as e:
                logger.info("%s rejected (invalid input): %s", action, e)
                return ServiceResult(success=False, errors=[str(e)], error_code="invalid_input")
            except OSError as e:
                logger.error("%s failed writing the event log: %s", action, e)
                return ServiceResult(
                    success=False, errors=[f"Event log failure: {e}"], error_code="event_log_failure"
                )

            warning = self._safe_persist_post_audit()
            return ServiceResult(
                success=True, data=data, warnings=[warning] if warning else []
            )

    def _snapshot(self) -> dict[str, Any]:
        return {
            "authorized": self._authorization.authorized_agents(),
            "consumed": self._store.consumed_digests(),
            "revealed": self._store.revealed_digests(),
            "cross_chain_consumed": [list(k) for k in self._cross_chain.consumed_entries()],
            "trusted_root": self._roots.current.to_dict(),
            "updates": [r.to_dict() for r in self._authenticator.update_records()],
            "payload_uri_policy": self._validator.policy_snapshot(),
        }

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        Can raise OSError; mutators go through _safe_persist_post_audit.
        """
        if self._state_store is None:
            return
        self._state_store.save(self._snapshot())

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after audit events have been committed.

        Never rolls back in-memory state: the audit trail already records
        the transition and consumption is irreversible. On failure the
        store is stale, the degraded flag is set, and a warning is
        returned.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State persistence failed: %s", e)
            return f"Persistence degraded: {e}; state committed in audit trail but StateStore is stale"

    def _load_state(self) -> None:
        state = self._state_store.load()
        if state is None:
            return
        self._authorization.restore(state.get("authorized", []))
        self._store.restore(state.get("consumed", []), state.get("revealed", []))
        self._cross_chain.restore(tuple(p) for p in state.get("cross_chain_consumed", []))
        root = state.get("trusted_root")
        if root is not None:
            self._roots.restore(
                TrustedRoot(root=root["root"], version=root["version"], updated_at=root["updated_at"])
            )
        self._authenticator.restore(
            [UpdateRecord.from_dict(r) for r in state.get("updates", [])]
        )
        policy = state.get("payload_uri_policy")
        if policy is not None:
            self._validator.restore(policy)
        logger.info("Restored protocol state from %s", self._state_store.storage_path)

    def _replay_event_log(self) -> None:
        """Fold every recorded event over the restored snapshot.

        Events are written before state changes, so the log is never behind
        the snapshot. A snapshot that missed the last transitions (a failed
        save before a restart) is brought forward here rather than trusted.
        """
        if self._event_log.count == 0:
            return
        before = self._snapshot()

        authorized = set(before["authorized"])
        consumed = set(before["consumed"])
        revealed = set(before["revealed"])
        cross_chain = {tuple(k) for k in before["cross_chain_consumed"]}
        root = self._roots.current
        updates = {r.digest: r for r in self._authenticator.update_records()}
        allowed = set(before["payload_uri_policy"]["allowed_domains"])
        max_length = before["payload_uri_policy"]["max_length"]

        for event in self._event_log.events():
            kind, payload = event.event_kind, event.payload
            if kind == EventKind.AUTHORIZATION_CHANGED:
                if payload["authorized"]:
                    authorized.add(payload["identity"])
                else:
                    authorized.discard(payload["identity"])
            elif kind == EventKind.COMMITMENT_CONSUMED:
                consumed.add(payload["digest"])
            elif kind == EventKind.NONCE_REVEALED:
                revealed.add(payload["digest"])
            elif kind == EventKind.CROSS_CHAIN_NONCE_CONSUMED:
                cross_chain.add((payload["domain_id"], payload["nonce"]))
            elif kind == EventKind.ROOT_UPDATED:
                if payload["version"] > root.version:
                    root = TrustedRoot(
                        root=payload["root"],
                        version=payload["version"],
                        updated_at=payload["updated_at"],
                    )
            elif kind == EventKind.UPDATE_APPLIED:
                record = UpdateRecord.from_dict(payload)
                updates.pop(record.digest, None)
                updates[record.digest] = record
            elif kind == EventKind.VALIDATOR_POLICY_CHANGED:
                action = payload["action"]
                if action == "register_domain":
                    allowed.add(payload["domain"])
                elif action == "unregister_domain":
                    allowed.discard(payload["domain"])
                elif action == "set_max_length":
                    max_length = payload["max_length"]

        self._authorization.restore(authorized)
        self._store.restore(consumed, revealed)
        self._cross_chain.restore(cross_chain)
        self._roots.restore(root)
        self._authenticator.restore(list(updates.values()))
        self._validator.restore({"max_length": max_length, "allowed_domains": sorted(allowed)})

        if self._snapshot() != before:
            logger.warning(
                "State snapshot was behind the event log; rebuilt from %d events",
                self._event_log.count,
            )
            self._safe_persist_post_audit()


__all__ = ["ProtocolService", "ServiceResult"]
