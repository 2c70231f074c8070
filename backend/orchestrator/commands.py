"""
Side-effect command definitions for the connection lifecycle.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the manager.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from orchestrator.strategy import ConnectionStrategy


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    Stable discriminants used for logging and manager dispatch.
    """

    # Timelines
    START_PHASE_ADVANCE = "START_PHASE_ADVANCE"
    START_DISCONNECT_SETTLE = "START_DISCONNECT_SETTLE"
    CANCEL_TIMELINE = "CANCEL_TIMELINE"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Timeline Commands
# =============================================================================

@dataclass(frozen=True)
class StartPhaseAdvance(Command):
    """
    Request to run the phase-advance timeline for an attempt.

    Phase 0 has already been applied by the reducer; the timeline
    drives phases 1..N-1 and then ConnectEstablished.
    """
    attempt: int
    node_id: str
    strategy: ConnectionStrategy
    command_type: CommandType = CommandType.START_PHASE_ADVANCE


@dataclass(frozen=True)
class StartDisconnectSettle(Command):
    """Request to emit DisconnectSettled after delay_ms."""
    attempt: int
    delay_ms: int
    command_type: CommandType = CommandType.START_DISCONNECT_SETTLE


@dataclass(frozen=True)
class CancelTimeline(Command):
    """Request to cancel a running timeline. Idempotent."""
    timeline_id: str
    command_type: CommandType = CommandType.CANCEL_TIMELINE


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
