"""
Pure connection lifecycle reducer.

(state, event) -> (new_state, result, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
- On rejection the input state is returned unchanged.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from orchestrator.commands import (
    CancelTimeline,
    Command,
    LogEvent,
    StartDisconnectSettle,
    StartPhaseAdvance,
)
from orchestrator.enums.state import State
from orchestrator.events import (
    AttemptEvent,
    AttemptFailed,
    ConnectEstablished,
    ConnectRequested,
    DisconnectRequested,
    DisconnectSettled,
    Event,
    ForceDisconnected,
    ForceError,
    PhaseAdvanced,
)
from orchestrator.result import (
    SUCCESS,
    ConnectError,
    DisconnectError,
    FailureReason,
    Result,
)
from orchestrator.state_dataclass import HandlerState
from constants import (
    DISCONNECT_SETTLE_MS,
    TIMELINE_DISCONNECT_SETTLE,
    TIMELINE_PHASE_ADVANCE,
)


Reduction = tuple[HandlerState, Result, tuple[Command, ...]]

# Transition table rejections (state -> reason)
_CONNECT_REJECTIONS: dict[State, FailureReason] = {
    State.CONNECTING: FailureReason.ALREADY_CONNECTING,
    State.CONNECTED: FailureReason.ALREADY_CONNECTED,
    State.DISCONNECTING: FailureReason.BUSY,
}

_DISCONNECT_REJECTIONS: dict[State, FailureReason] = {
    State.DISCONNECTED: FailureReason.NOT_CONNECTED,
    State.DISCONNECTING: FailureReason.ALREADY_DISCONNECTING,
}


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: HandlerState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "attempt": state.attempt,
            "node_id": state.node_id,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _state_changed(
    old: HandlerState,
    new: HandlerState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": old.state.value,
            "to_state": new.state.value,
            "source": source,
        },
    )


def _ignore(state: HandlerState, event: Event, reason: str) -> Reduction:
    return state, SUCCESS, (_log(state, event, "ignore", {"reason": reason}),)


def _reject(
    state: HandlerState,
    event: Event,
    error: ConnectError | DisconnectError,
) -> Reduction:
    return state, Result.failure(error), (
        _log(
            state,
            event,
            "reject",
            {"reason": error.reason.value, "message": error.message},
        ),
    )


def _cancel_all_timelines() -> tuple[Command, ...]:
    return (
        CancelTimeline(timeline_id=TIMELINE_PHASE_ADVANCE),
        CancelTimeline(timeline_id=TIMELINE_DISCONNECT_SETTLE),
    )


def _disconnected(state: HandlerState) -> HandlerState:
    # Attempt counter survives so the next connect gets a fresh token
    return HandlerState(state=State.DISCONNECTED, attempt=state.attempt)


# =============================================================================
# Caller requests
# =============================================================================

def _on_connect(state: HandlerState, event: ConnectRequested) -> Reduction:
    """
    DISCONNECTED -> CONNECTING
    ERROR        -> CONNECTING (retry, no explicit clear needed)
    others       -> rejected
    """
    reason = _CONNECT_REJECTIONS.get(state.state)
    if reason is not None:
        return _reject(state, event, ConnectError(reason))

    new_state = HandlerState(
        state=State.CONNECTING,
        node_id=event.node_id,
        strategy=event.strategy,
        phase_index=0,
        attempt=state.attempt + 1,
    )
    source = "retry_from_error" if state.state is State.ERROR else "connect"

    return new_state, SUCCESS, _logs_last((
        _state_changed(state, new_state, event, source),
        _log(
            new_state,
            event,
            "start_phase_advance",
            {
                "strategy": event.strategy.name,
                "phase_count": event.strategy.phase_count,
                "step_delay_ms": event.strategy.step_delay_ms,
            },
        ),
        StartPhaseAdvance(
            attempt=new_state.attempt,
            node_id=event.node_id,
            strategy=event.strategy,
        ),
    ))


def _on_disconnect(state: HandlerState, event: DisconnectRequested) -> Reduction:
    """
    CONNECTING -> DISCONNECTED  (hard cancel of the in-flight attempt)
    CONNECTED  -> DISCONNECTING (settle timeline finishes the teardown)
    ERROR      -> DISCONNECTED  (clear error)
    others     -> rejected
    """
    reason = _DISCONNECT_REJECTIONS.get(state.state)
    if reason is not None:
        return _reject(state, event, DisconnectError(reason))

    if state.state is State.CONNECTING:
        new_state = _disconnected(state)
        return new_state, SUCCESS, _logs_last((
            _state_changed(state, new_state, event, "cancel_connect"),
            _log(new_state, event, "cancel_phase_advance"),
            CancelTimeline(timeline_id=TIMELINE_PHASE_ADVANCE),
        ))

    if state.state is State.CONNECTED:
        new_state = replace(state, state=State.DISCONNECTING)
        return new_state, SUCCESS, _logs_last((
            _state_changed(state, new_state, event, "disconnect"),
            StartDisconnectSettle(
                attempt=new_state.attempt,
                delay_ms=DISCONNECT_SETTLE_MS,
            ),
        ))

    # ERROR
    new_state = _disconnected(state)
    return new_state, SUCCESS, (
        _state_changed(state, new_state, event, "clear_error"),
    )


# =============================================================================
# Timeline events (attempt-gated)
# =============================================================================

def _on_attempt_event(state: HandlerState, event: AttemptEvent) -> Reduction:
    if event.attempt != state.attempt:
        return _ignore(state, event, "stale_attempt")

    if isinstance(event, PhaseAdvanced):
        if state.state is not State.CONNECTING or state.strategy is None:
            return _ignore(state, event, "not_connecting")
        if not state.phase_index < event.phase_index < state.strategy.phase_count:
            return _ignore(state, event, "phase_out_of_order")

        new_state = replace(state, phase_index=event.phase_index)
        return new_state, SUCCESS, (
            _log(
                new_state,
                event,
                "phase_advanced",
                {
                    "phase_index": event.phase_index,
                    "phase": state.strategy.phases[event.phase_index],
                },
            ),
        )

    if isinstance(event, ConnectEstablished):
        if state.state is not State.CONNECTING:
            return _ignore(state, event, "not_connecting")

        new_state = replace(
            state,
            state=State.CONNECTED,
            connected_at_ms=event.ts_ms,
        )
        return new_state, SUCCESS, (
            _state_changed(state, new_state, event, "connect_established"),
        )

    if isinstance(event, AttemptFailed):
        if state.state is not State.CONNECTING:
            return _ignore(state, event, "not_connecting")

        new_state = HandlerState(
            state=State.ERROR,
            node_id=state.node_id,
            last_error=event.reason,
            attempt=state.attempt,
        )
        return new_state, SUCCESS, _logs_last((
            _state_changed(state, new_state, event, "attempt_failed"),
            _log(new_state, event, "enter_error", {"reason": event.reason}),
        ))

    if isinstance(event, DisconnectSettled):
        if state.state is not State.DISCONNECTING:
            return _ignore(state, event, "not_disconnecting")

        new_state = _disconnected(state)
        return new_state, SUCCESS, (
            _state_changed(state, new_state, event, "disconnect_settled"),
        )

    return _ignore(state, event, "unhandled_attempt_event")


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(state: HandlerState, event: Event) -> Reduction:
    """
    Pure reducer for the connection lifecycle.

    Given the current handler state and a single event, returns:
    - the next state
    - the request outcome (failure only for rejected caller requests)
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Attempt-safe: ignores timeline events with stale attempt tokens
    """
    if isinstance(event, ForceError):
        new_state = HandlerState(
            state=State.ERROR,
            node_id=event.node_id or state.node_id,
            last_error=event.message,
            attempt=state.attempt,
        )
        return new_state, SUCCESS, _logs_last((
            _state_changed(state, new_state, event, "force_error"),
            _log(new_state, event, "enter_error", {"reason": event.message}),
        ) + _cancel_all_timelines())

    if isinstance(event, ForceDisconnected):
        new_state = _disconnected(state)
        return new_state, SUCCESS, _logs_last((
            _state_changed(state, new_state, event, "force_disconnected"),
            _log(new_state, event, "fail_safe_disconnect", {"reason": event.reason}),
        ) + _cancel_all_timelines())

    if isinstance(event, ConnectRequested):
        return _on_connect(state, event)

    if isinstance(event, DisconnectRequested):
        return _on_disconnect(state, event)

    if isinstance(event, AttemptEvent):
        return _on_attempt_event(state, event)

    return _ignore(state, event, "unhandled_event")
