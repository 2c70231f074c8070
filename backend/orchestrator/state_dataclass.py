"""
Authoritative handler state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
- Swapped atomically by ConnectionContext; never mutated in place.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.state import State
from orchestrator.strategy import ConnectionStrategy


@dataclass(frozen=True)
class HandlerState:
    """Immutable snapshot of the active lifecycle handler."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: State = State.DISCONNECTED

    # ------------------------------------------------------------------
    # Target node / plan (None while DISCONNECTED)
    # ------------------------------------------------------------------
    node_id: str | None = None
    strategy: ConnectionStrategy | None = None

    # Index of the last phase published while CONNECTING
    phase_index: int = 0

    # Set on entry to CONNECTED; duration is derived from it at render time
    connected_at_ms: int | None = None

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None

    # ------------------------------------------------------------------
    # Attempt tracking
    # ------------------------------------------------------------------
    # Monotonic; bumped ONLY on a new connect, never reused.
    # 0 means "no attempt has been started yet".
    attempt: int = 0
