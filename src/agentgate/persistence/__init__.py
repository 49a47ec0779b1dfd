"""Persistence — append-only event log and state snapshots."""

from agentgate.persistence.event_log import EventKind, EventLog, EventRecord
from agentgate.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
