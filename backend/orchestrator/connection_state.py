"""
Observable connection state values.

These are what observers see: immutable snapshots rendered from the
context's HandlerState at a given instant. The union is closed; every
variant carries an explicit `state` discriminant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from orchestrator.enums.state import State
from orchestrator.state_dataclass import HandlerState


@dataclass(frozen=True)
class Disconnected:
    state: State = State.DISCONNECTED


@dataclass(frozen=True)
class Connecting:
    node_id: str
    progress: float
    state: State = State.CONNECTING


@dataclass(frozen=True)
class Connected:
    """
    Established connection.

    duration_ms is derived from the two timestamps so it can never drift
    from connected_at_ms.
    """
    node_id: str
    connected_at_ms: int
    observed_at_ms: int
    state: State = State.CONNECTED

    @property
    def duration_ms(self) -> int:
        return max(0, self.observed_at_ms - self.connected_at_ms)


@dataclass(frozen=True)
class Disconnecting:
    node_id: str
    state: State = State.DISCONNECTING


@dataclass(frozen=True)
class Error:
    message: str
    node_id: str | None = None
    state: State = State.ERROR


ConnectionState = Union[Disconnected, Connecting, Connected, Disconnecting, Error]


# =============================================================================
# Rendering
# =============================================================================

def render(handler: HandlerState, now_ms: int) -> ConnectionState:
    """
    Render the active handler as an observable value at `now_ms`.

    Raises ValueError if the handler is missing a field its state
    requires (a reducer bug, not a runtime condition).
    """
    if handler.state is State.DISCONNECTED:
        return Disconnected()

    if handler.state is State.ERROR:
        return Error(
            node_id=handler.node_id,
            message=handler.last_error or "Connection failed",
        )

    if handler.node_id is None:
        raise ValueError(f"{handler.state.value} handler without node_id")

    if handler.state is State.CONNECTING:
        if handler.strategy is None:
            raise ValueError("CONNECTING handler without strategy")
        return Connecting(
            node_id=handler.node_id,
            progress=handler.strategy.progress_at(handler.phase_index),
        )

    if handler.state is State.CONNECTED:
        if handler.connected_at_ms is None:
            raise ValueError("CONNECTED handler without connected_at_ms")
        return Connected(
            node_id=handler.node_id,
            connected_at_ms=handler.connected_at_ms,
            observed_at_ms=now_ms,
        )

    return Disconnecting(node_id=handler.node_id)


def to_payload(value: ConnectionState) -> dict[str, Any]:
    """JSON-ready dict for logs, HTTP responses and WebSocket frames."""
    payload: dict[str, Any] = {"state": value.state.value}

    if isinstance(value, Connecting):
        payload["node_id"] = value.node_id
        payload["progress"] = value.progress
    elif isinstance(value, Connected):
        payload["node_id"] = value.node_id
        payload["connected_at_ms"] = value.connected_at_ms
        payload["duration_ms"] = value.duration_ms
    elif isinstance(value, Disconnecting):
        payload["node_id"] = value.node_id
    elif isinstance(value, Error):
        payload["node_id"] = value.node_id
        payload["message"] = value.message

    return payload
