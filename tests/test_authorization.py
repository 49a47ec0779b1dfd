"""Tests for the controller capability and the authorization ledger."""

import pytest
from eth_utils import to_checksum_address

from agentgate.errors import Unauthorized
from agentgate.governance.authorization import AuthorizationLedger
from agentgate.governance.controller import ControllerCapability
from agentgate.persistence.event_log import EventKind, EventLog

CONTROLLER = to_checksum_address("0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266")
AGENT = to_checksum_address("0x70997970c51812dc3a010c7d01b50e0d17dc79c8")
STRANGER = to_checksum_address("0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc")


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def ledger(event_log: EventLog) -> AuthorizationLedger:
    return AuthorizationLedger(ControllerCapability(CONTROLLER), event_log)


class TestControllerCapability:
    def test_controller_recognized_any_case(self) -> None:
        cap = ControllerCapability(CONTROLLER)
        assert cap.is_controller(CONTROLLER.lower())

    def test_stranger_rejected(self) -> None:
        cap = ControllerCapability(CONTROLLER)
        with pytest.raises(Unauthorized):
            cap.require(STRANGER, "authorize")

    def test_malformed_caller_is_not_controller(self) -> None:
        assert not ControllerCapability(CONTROLLER).is_controller("controller")

    def test_malformed_controller_rejected(self) -> None:
        with pytest.raises(ValueError):
            ControllerCapability("0xabc")


class TestAuthorizationLedger:
    def test_unknown_agent_not_authorized(self, ledger: AuthorizationLedger) -> None:
        assert not ledger.is_authorized(AGENT)

    def test_authorize_then_revoke(self, ledger: AuthorizationLedger) -> None:
        ledger.authorize(CONTROLLER, AGENT)
        assert ledger.is_authorized(AGENT)
        ledger.revoke(CONTROLLER, AGENT)
        assert not ledger.is_authorized(AGENT)

    def test_authorize_idempotent(self, ledger: AuthorizationLedger) -> None:
        ledger.authorize(CONTROLLER, AGENT)
        ledger.authorize(CONTROLLER, AGENT)
        assert ledger.authorized_agents() == [AGENT]

    def test_non_controller_cannot_authorize(self, ledger: AuthorizationLedger) -> None:
        with pytest.raises(Unauthorized):
            ledger.authorize(STRANGER, STRANGER)
        assert not ledger.is_authorized(STRANGER)

    def test_agent_cannot_revoke_itself(self, ledger: AuthorizationLedger) -> None:
        ledger.authorize(CONTROLLER, AGENT)
        with pytest.raises(Unauthorized):
            ledger.revoke(AGENT, AGENT)
        assert ledger.is_authorized(AGENT)

    def test_malformed_identity_rejected(self, ledger: AuthorizationLedger) -> None:
        with pytest.raises(ValueError):
            ledger.authorize(CONTROLLER, "not-an-address")

    def test_is_authorized_tolerates_garbage(self, ledger: AuthorizationLedger) -> None:
        assert ledger.is_authorized("garbage") is False

    def test_events_recorded(self, ledger: AuthorizationLedger, event_log: EventLog) -> None:
        ledger.authorize(CONTROLLER, AGENT, now=100)
        ledger.revoke(CONTROLLER, AGENT, now=200)
        events = event_log.events(EventKind.AUTHORIZATION_CHANGED)
        assert [e.payload["authorized"] for e in events] == [True, False]
        assert all(e.payload["identity"] == AGENT for e in events)
        assert events[0].actor_id == CONTROLLER

    def test_rejected_change_records_nothing(
        self, ledger: AuthorizationLedger, event_log: EventLog
    ) -> None:
        with pytest.raises(Unauthorized):
            ledger.authorize(STRANGER, AGENT)
        assert event_log.count == 0

    def test_restore(self, ledger: AuthorizationLedger) -> None:
        ledger.restore([AGENT.lower()])
        assert ledger.is_authorized(AGENT)
        assert ledger.authorized_agents() == [AGENT]
