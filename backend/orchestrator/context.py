"""
Connection context.

Exclusive owner of the single active HandlerState. Every request or
timeline event goes through apply(), which runs the pure reducer and
swaps in the new value. Nothing else in the system writes handler state.

This module contains:
- No clocks (callers pass timestamps)
- No async, no timers
- No command execution (commands are returned to the caller)
"""

from __future__ import annotations

from orchestrator.commands import Command
from orchestrator.connection_state import ConnectionState, render
from orchestrator.events import (
    ConnectRequested,
    DisconnectRequested,
    Event,
    EventType,
)
from orchestrator.reducer import reduce
from orchestrator.result import Result
from orchestrator.state_dataclass import HandlerState
from orchestrator.strategy import ConnectionStrategy


class ConnectionContext:
    """
    Holds exactly one current handler.

    Lifecycle: created in DISCONNECTED, lives as long as its manager.
    Writes must be serialized by the owner (the manager calls apply()
    only from its event loop, with no suspension between reduce and swap).
    """

    def __init__(self, initial: HandlerState | None = None) -> None:
        self._handler = initial if initial is not None else HandlerState()

    def get_handler(self) -> HandlerState:
        return self._handler

    def set_handler(self, handler: HandlerState) -> None:
        self._handler = handler

    def apply(self, event: Event) -> tuple[Result, tuple[Command, ...]]:
        """
        Reduce one event against the current handler and swap the result in.

        Rejected requests leave the handler untouched (the reducer returns
        the same value).
        """
        new_handler, result, commands = reduce(self._handler, event)
        self._handler = new_handler
        return result, commands

    def connect(
        self,
        node_id: str,
        strategy: ConnectionStrategy,
        *,
        ts_ms: int,
    ) -> tuple[Result, tuple[Command, ...]]:
        return self.apply(
            ConnectRequested(
                event_type=EventType.CONNECT_REQUESTED,
                ts_ms=ts_ms,
                node_id=node_id,
                strategy=strategy,
            )
        )

    def disconnect(self, *, ts_ms: int) -> tuple[Result, tuple[Command, ...]]:
        return self.apply(
            DisconnectRequested(
                event_type=EventType.DISCONNECT_REQUESTED,
                ts_ms=ts_ms,
            )
        )

    def current_state(self, now_ms: int) -> ConnectionState:
        return render(self._handler, now_ms)
