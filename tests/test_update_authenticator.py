"""Tests for signed update authentication — the core replay-protected transition."""

import dataclasses
import threading

import pytest
from eth_account import Account

from agentgate.crypto.hashing import commitment_digest
from agentgate.crypto.signatures import SigningDomain, sign_update
from agentgate.engine.commitments import NonceCommitmentStore
from agentgate.engine.update_authenticator import UpdateAuthenticator
from agentgate.errors import (
    AlreadyConsumed,
    DomainNotAllowed,
    Expired,
    InvalidSignature,
    NotAuthorized,
    SignerMismatch,
    TooLong,
)
from agentgate.governance.authorization import AuthorizationLedger
from agentgate.governance.controller import ControllerCapability
from agentgate.models.update import UpdateRequest
from agentgate.persistence.event_log import EventKind, EventLog
from agentgate.validation.payload_uri import PayloadURIValidator

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
def domain() -> SigningDomain:
    return SigningDomain(
        name="AgentUpdateProtocol",
        version="1.2",
        chain_id=31337,
        verifying_contract="0x5FbDB2315678afecb367f032d93F642f64180aa3",
    )


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def controller() -> ControllerCapability:
    return ControllerCapability(CONTROLLER)


@pytest.fixture
def ledger(controller, event_log, agent, other) -> AuthorizationLedger:
    ledger = AuthorizationLedger(controller, event_log)
    ledger.authorize(CONTROLLER, agent.address)
    ledger.authorize(CONTROLLER, other.address)
    return ledger


@pytest.fixture
def store() -> NonceCommitmentStore:
    return NonceCommitmentStore()


@pytest.fixture
def validator(controller, event_log) -> PayloadURIValidator:
    return PayloadURIValidator(
        controller,
        max_length=256,
        allowed_domains=["arweave.net", "ipfs.io", "cloudflare-ipfs.com"],
        scheme_gateways={"ar": "arweave.net", "ipfs": "ipfs.io"},
        event_log=event_log,
    )


@pytest.fixture
def authenticator(domain, ledger, store, validator, event_log) -> UpdateAuthenticator:
    return UpdateAuthenticator(domain, ledger, store, validator=validator, event_log=event_log)


def _request(agent_address: str, nonce: str = "0x01", **overrides) -> UpdateRequest:
    fields = {
        "agent": agent_address,
        "target_id": 7,
        "payload_uri": "ar://payload-v2",
        "digest": commitment_digest(nonce, agent_address),
        "expiry": T0 + 3600,
    }
    fields.update(overrides)
    return UpdateRequest(**fields)


class TestSubmitUpdate:
    def test_valid_update_applied(self, authenticator, store, agent, domain) -> None:
        req = _request(agent.address)
        sig = sign_update(req, domain, AGENT_KEY)
        record = authenticator.submit_update(req, sig, now=T0)

        assert record.target_id == 7
        assert record.payload_uri == "ar://payload-v2"
        assert record.agent == agent.address
        assert store.is_consumed(req.digest)
        assert not store.is_revealed(req.digest)
        assert authenticator.latest_update(7) == record
        assert authenticator.update_for_digest(req.digest) == record

    def test_events_recorded_together(self, authenticator, event_log, agent, domain) -> None:
        req = _request(agent.address)
        before = event_log.count
        authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)
        kinds = [e.event_kind for e in event_log.events()[before:]]
        assert kinds == [EventKind.UPDATE_APPLIED, EventKind.COMMITMENT_CONSUMED]
        applied = event_log.events(EventKind.UPDATE_APPLIED)[-1]
        assert applied.payload == {
            "target_id": 7, "payload_uri": "ar://payload-v2", "agent": agent.address,
            "digest": req.digest, "applied_at": T0,
        }

    def test_query_string_stripped(self, authenticator, agent, domain) -> None:
        req = _request(agent.address, payload_uri="https://arweave.net/tx?cache=no")
        record = authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)
        assert record.payload_uri == "https://arweave.net/tx"

    def test_later_update_supersedes(self, authenticator, agent, domain) -> None:
        first = _request(agent.address, nonce="0x01", payload_uri="ar://one")
        second = _request(agent.address, nonce="0x02", payload_uri="ar://two")
        authenticator.submit_update(first, sign_update(first, domain, AGENT_KEY), now=T0)
        authenticator.submit_update(second, sign_update(second, domain, AGENT_KEY), now=T0 + 1)
        assert authenticator.latest_update(7).payload_uri == "ar://two"
        assert len(authenticator.update_records()) == 2


class TestReplay:
    def test_same_request_twice(self, authenticator, agent, domain) -> None:
        req = _request(agent.address)
        sig = sign_update(req, domain, AGENT_KEY)
        authenticator.submit_update(req, sig, now=T0)
        with pytest.raises(AlreadyConsumed):
            authenticator.submit_update(req, sig, now=T0)

    def test_new_payload_same_digest(self, authenticator, agent, domain) -> None:
        """The digest is the uniqueness key, not the payload."""
        first = _request(agent.address)
        authenticator.submit_update(first, sign_update(first, domain, AGENT_KEY), now=T0)
        second = _request(agent.address, payload_uri="ar://different", target_id=9)
        with pytest.raises(AlreadyConsumed):
            authenticator.submit_update(second, sign_update(second, domain, AGENT_KEY), now=T0)

    def test_concurrent_submissions_apply_once(self, authenticator, agent, domain) -> None:
        req = _request(agent.address)
        sig = sign_update(req, domain, AGENT_KEY)
        outcomes: list[str] = []
        lock = threading.Lock()

        def submit() -> None:
            try:
                authenticator.submit_update(req, sig, now=T0)
                result = "ok"
            except AlreadyConsumed:
                result = "replay"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=submit) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(outcomes) == ["ok"] + ["replay"] * 7


class TestExpiry:
    def test_expiry_boundary_inclusive(self, authenticator, agent, domain) -> None:
        req = _request(agent.address, expiry=T0)
        authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)

    def test_one_second_late(self, authenticator, store, agent, domain) -> None:
        req = _request(agent.address, expiry=T0)
        with pytest.raises(Expired):
            authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0 + 1)
        assert not store.is_consumed(req.digest)

    def test_expired_checked_before_replay(self, authenticator, agent, domain) -> None:
        req = _request(agent.address, expiry=T0)
        authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)
        with pytest.raises(Expired):
            authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0 + 5)


class TestAuthentication:
    @pytest.mark.parametrize(
        "field,value",
        [
            ("target_id", 8),
            ("payload_uri", "ar://tampered"),
            ("digest", "0x" + "11" * 32),
            ("expiry", T0 + 7200),
        ],
    )
    def test_any_field_change_breaks_signature(
        self, authenticator, store, agent, domain, field, value
    ) -> None:
        signed = _request(agent.address)
        sig = sign_update(signed, domain, AGENT_KEY)
        tampered = dataclasses.replace(signed, **{field: value})
        with pytest.raises(SignerMismatch):
            authenticator.submit_update(tampered, sig, now=T0)
        assert not store.is_consumed(tampered.digest)

    def test_agent_field_swap(self, authenticator, agent, other, domain) -> None:
        signed = _request(agent.address)
        sig = sign_update(signed, domain, AGENT_KEY)
        swapped = dataclasses.replace(signed, agent=other.address)
        with pytest.raises(SignerMismatch):
            authenticator.submit_update(swapped, sig, now=T0)

    def test_signed_by_someone_else(self, authenticator, agent, domain) -> None:
        req = _request(agent.address)
        with pytest.raises(SignerMismatch):
            authenticator.submit_update(req, sign_update(req, domain, OTHER_KEY), now=T0)

    def test_wrong_chain_id(self, authenticator, agent, domain) -> None:
        req = _request(agent.address)
        foreign = dataclasses.replace(domain, chain_id=1)
        with pytest.raises(SignerMismatch):
            authenticator.submit_update(req, sign_update(req, foreign, AGENT_KEY), now=T0)

    def test_wrong_contract(self, authenticator, agent, domain) -> None:
        req = _request(agent.address)
        foreign = dataclasses.replace(
            domain, verifying_contract="0xe7f1725e7734ce288f8367e1bb143e90bb3f0512"
        )
        with pytest.raises(SignerMismatch):
            authenticator.submit_update(req, sign_update(req, foreign, AGENT_KEY), now=T0)

    def test_garbage_signature(self, authenticator, agent) -> None:
        req = _request(agent.address)
        with pytest.raises(InvalidSignature):
            authenticator.submit_update(req, b"\x00" * 65, now=T0)

    def test_unauthorized_agent(self, authenticator, ledger, agent, domain) -> None:
        ledger.revoke(CONTROLLER, agent.address)
        req = _request(agent.address)
        with pytest.raises(NotAuthorized):
            authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)

    def test_revocation_does_not_unwind(self, authenticator, ledger, store, agent, domain) -> None:
        req = _request(agent.address)
        authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)
        ledger.revoke(CONTROLLER, agent.address)
        assert store.is_consumed(req.digest)
        assert authenticator.latest_update(7) is not None


class TestPayloadPolicy:
    def test_disallowed_domain(self, authenticator, store, agent, domain) -> None:
        req = _request(agent.address, payload_uri="https://evil.example/payload")
        with pytest.raises(DomainNotAllowed):
            authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)
        assert not store.is_consumed(req.digest)

    def test_too_long(self, authenticator, agent, domain) -> None:
        req = _request(agent.address, payload_uri="ar://" + "a" * 257)
        with pytest.raises(TooLong):
            authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)

    def test_no_validator_accepts_anything(self, domain, ledger, store, event_log, agent) -> None:
        bare = UpdateAuthenticator(domain, ledger, store, event_log=event_log)
        req = _request(agent.address, payload_uri="https://evil.example/payload")
        record = bare.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)
        assert record.payload_uri == "https://evil.example/payload"


class TestAtomicity:
    def test_event_log_failure_leaves_state_untouched(
        self, domain, ledger, store, validator, agent
    ) -> None:
        class FailingLog(EventLog):
            def extend(self, events):
                raise OSError("disk full")

        authenticator = UpdateAuthenticator(
            domain, ledger, store, validator=validator, event_log=FailingLog()
        )
        req = _request(agent.address)
        with pytest.raises(OSError):
            authenticator.submit_update(req, sign_update(req, domain, AGENT_KEY), now=T0)
        assert not store.is_consumed(req.digest)
        assert authenticator.latest_update(7) is None
