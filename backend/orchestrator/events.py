"""
Unified event definitions for the connection lifecycle reducer.

Rules:
- Events describe facts that have occurred (or requests that arrived).
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Timeline events must carry the attempt token for stale gating.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from orchestrator.strategy import ConnectionStrategy


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Caller requests
    # ------------------------------------------------------------------
    CONNECT_REQUESTED = "CONNECT_REQUESTED"
    DISCONNECT_REQUESTED = "DISCONNECT_REQUESTED"

    # ------------------------------------------------------------------
    # Timelines
    # ------------------------------------------------------------------
    PHASE_ADVANCED = "PHASE_ADVANCED"
    CONNECT_ESTABLISHED = "CONNECT_ESTABLISHED"
    ATTEMPT_FAILED = "ATTEMPT_FAILED"
    DISCONNECT_SETTLED = "DISCONNECT_SETTLED"

    # ------------------------------------------------------------------
    # Fail-safe overrides
    # ------------------------------------------------------------------
    FORCE_ERROR = "FORCE_ERROR"
    FORCE_DISCONNECTED = "FORCE_DISCONNECTED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class AttemptEvent(Event):
    """
    Base class for events produced by a background timeline.

    The reducer MUST ignore events whose attempt does not match the
    currently active attempt.
    """

    attempt: int


# =============================================================================
# Caller Requests
# =============================================================================

@dataclass(frozen=True)
class ConnectRequested(Event):
    """Caller asked to connect to node_id using an already-resolved strategy."""
    node_id: str
    strategy: ConnectionStrategy


@dataclass(frozen=True)
class DisconnectRequested(Event):
    """Caller asked to disconnect."""


# =============================================================================
# Timeline Events
# =============================================================================

@dataclass(frozen=True)
class PhaseAdvanced(AttemptEvent):
    """Phase `phase_index` of the attempt has started."""
    phase_index: int


@dataclass(frozen=True)
class ConnectEstablished(AttemptEvent):
    """All phases elapsed; connected_at is this event's ts_ms."""


@dataclass(frozen=True)
class AttemptFailed(AttemptEvent):
    """The phase-advance timeline raised."""
    reason: str


@dataclass(frozen=True)
class DisconnectSettled(AttemptEvent):
    """Disconnect settle delay elapsed."""


# =============================================================================
# Fail-safe Overrides
# =============================================================================

@dataclass(frozen=True)
class ForceError(Event):
    """Unexpected failure on the connect path; state goes to ERROR."""
    message: str
    node_id: str | None = None


@dataclass(frozen=True)
class ForceDisconnected(Event):
    """Unexpected failure on the disconnect path; state goes to DISCONNECTED."""
    reason: str | None = None
