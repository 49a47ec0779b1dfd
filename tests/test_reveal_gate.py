"""Tests for the nonce reveal path and its shared consumption table."""

import pytest
from eth_account import Account

from agentgate.crypto.hashing import commitment_digest
from agentgate.crypto.signatures import SigningDomain, sign_update
from agentgate.engine.commitments import NonceCommitmentStore
from agentgate.engine.reveal_gate import NonceRevealGate
from agentgate.engine.update_authenticator import UpdateAuthenticator
from agentgate.errors import AlreadyConsumed, Unauthorized
from agentgate.governance.authorization import AuthorizationLedger
from agentgate.governance.controller import ControllerCapability
from agentgate.models.update import UpdateRequest
from agentgate.persistence.event_log import EventKind, EventLog

CONTROLLER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
AGENT_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
OTHER_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"

T0 = 1_700_000_000


@pytest.fixture
def agent():
    return Account.from_key(AGENT_KEY)


@pytest.fixture
def other():
    return Account.from_key(OTHER_KEY)


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def ledger(event_log, agent) -> AuthorizationLedger:
    ledger = AuthorizationLedger(ControllerCapability(CONTROLLER), event_log)
    ledger.authorize(CONTROLLER, agent.address)
    return ledger


@pytest.fixture
def store() -> NonceCommitmentStore:
    return NonceCommitmentStore()


@pytest.fixture
def gate(ledger, store, event_log) -> NonceRevealGate:
    return NonceRevealGate(ledger, store, event_log)


@pytest.fixture
def authenticator(ledger, store, event_log) -> UpdateAuthenticator:
    domain = SigningDomain(
        "AgentUpdateProtocol", "1.2", 31337, "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    )
    return UpdateAuthenticator(domain, ledger, store, event_log=event_log)


class TestReveal:
    def test_reveal_consumes_and_marks_revealed(self, gate, store, agent) -> None:
        record = gate.reveal(agent.address, "0x01", now=T0)
        digest = commitment_digest("0x01", agent.address)
        assert record.digest == digest
        assert record.revealed
        assert store.is_consumed(digest)
        assert store.is_revealed(digest)

    def test_integer_nonce_equivalent(self, gate, store, agent) -> None:
        gate.reveal(agent.address, 1, now=T0)
        assert store.is_consumed(commitment_digest("0x01", agent.address))

    def test_second_reveal_fails(self, gate, agent) -> None:
        gate.reveal(agent.address, "0x01", now=T0)
        with pytest.raises(AlreadyConsumed):
            gate.reveal(agent.address, "0x01", now=T0)

    def test_unauthorized_caller(self, gate, store, other) -> None:
        with pytest.raises(Unauthorized):
            gate.reveal(other.address, "0x01", now=T0)
        assert not store.is_consumed(commitment_digest("0x01", other.address))

    def test_nonce_bound_to_caller(self, gate, ledger, store, agent, other) -> None:
        """Another agent disclosing the same nonce burns its own digest, not ours."""
        ledger.authorize(CONTROLLER, other.address)
        gate.reveal(other.address, "0x01", now=T0)
        assert not store.is_consumed(commitment_digest("0x01", agent.address))
        gate.reveal(agent.address, "0x01", now=T0)

    def test_events(self, gate, event_log, agent) -> None:
        gate.reveal(agent.address, "0x01", now=T0)
        revealed = event_log.events(EventKind.NONCE_REVEALED)
        consumed = event_log.events(EventKind.COMMITMENT_CONSUMED)
        assert revealed[-1].payload["caller"] == agent.address
        assert consumed[-1].payload["path"] == "reveal"


class TestSharedConsumption:
    def test_reveal_after_update_fails(self, gate, authenticator, store, agent) -> None:
        digest = commitment_digest("0x01", agent.address)
        req = UpdateRequest(agent.address, 7, "ar://x", digest, T0 + 60)
        authenticator.submit_update(req, sign_update(req, authenticator.domain, AGENT_KEY), now=T0)

        with pytest.raises(AlreadyConsumed):
            gate.reveal(agent.address, "0x01", now=T0)
        assert not store.is_revealed(digest)

    def test_update_after_reveal_fails(self, gate, authenticator, agent) -> None:
        gate.reveal(agent.address, "0x01", now=T0)
        digest = commitment_digest("0x01", agent.address)
        req = UpdateRequest(agent.address, 7, "ar://x", digest, T0 + 60)
        with pytest.raises(AlreadyConsumed):
            authenticator.submit_update(
                req, sign_update(req, authenticator.domain, AGENT_KEY), now=T0
            )


class TestCommitmentStore:
    def test_consume_once(self) -> None:
        store = NonceCommitmentStore()
        digest = "0x" + "ab" * 32
        store.consume(digest)
        with pytest.raises(AlreadyConsumed):
            store.consume(digest)

    def test_views(self) -> None:
        store = NonceCommitmentStore()
        digest = "0x" + "cd" * 32
        assert not store.commitment(digest).consumed
        store.consume(digest, revealed=True)
        assert store.commitment(digest).consumed
        assert store.reveal_record(digest).revealed

    def test_restore(self) -> None:
        store = NonceCommitmentStore()
        a, b = "0x" + "01" * 32, "0x" + "02" * 32
        store.restore([a, b], [b])
        assert store.consumed_digests() == [a, b]
        assert store.revealed_digests() == [b]
