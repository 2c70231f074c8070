"""
Connection manager: the runtime shell around the pure lifecycle reducer.

Responsibilities:
- Own the ConnectionContext (the single mutable cell)
- Resolve strategies and turn caller requests into events
- Execute reducer-emitted commands (timelines, logging)
- Run the phase-advance and disconnect-settle timelines
- Publish every state change, plus a periodic re-sample, to observers

Non-responsibilities:
- Persisting sessions (callers do that on success)
- Notifications (watchers of observe_state() do that)
- Strict strategy-name validation (callers do that)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncGenerator, Awaitable, Callable, Coroutine

from constants import (
    STATE_REPUBLISH_INTERVAL_MS,
    SUBSCRIBER_QUEUE_MAX,
    TIMELINE_DISCONNECT_SETTLE,
    TIMELINE_PHASE_ADVANCE,
)
from observability.logger import log_event
from observability import metrics
from orchestrator.commands import (
    CancelTimeline,
    Command,
    LogEvent,
    StartDisconnectSettle,
    StartPhaseAdvance,
)
from orchestrator.connection_state import (
    Connected,
    Connecting,
    ConnectionState,
    render,
    to_payload,
)
from orchestrator.context import ConnectionContext
from orchestrator.enums.state import State
from orchestrator.events import (
    AttemptFailed,
    ConnectEstablished,
    ConnectRequested,
    DisconnectRequested,
    DisconnectSettled,
    Event,
    EventType,
    ForceDisconnected,
    ForceError,
    PhaseAdvanced,
)
from orchestrator.result import (
    ConnectError,
    DisconnectError,
    FailureReason,
    Result,
)
from orchestrator.strategy import (
    ConnectionStrategy,
    StrategyCatalog,
    default_catalog,
)


SleepFn = Callable[[float], Awaitable[None]]

_COMPONENT = "connection_manager"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class ConnectionManager:
    """
    Orchestrates the connection lifecycle for one client.

    Architectural role:
    The manager is the bridge between the pure lifecycle layer
    (reducer + immutable HandlerState) and the imperative world
    (asyncio tasks, clocks, logging, observers).

    Guarantees:
    - Every state write goes through handle_event(), which reduces,
      swaps and publishes without suspending, so writes are serialized
      by the event loop and observers see states in production order
    - State is updated and published before any command executes
    - connect()/disconnect() return right after the initial transition
    - A timeline only publishes while its attempt token is current

    Lifecycle:
    Constructed explicitly and passed to whoever needs it. start() must
    be awaited before connect()/disconnect(); stop() settles any
    in-flight transition to DISCONNECTED, cancels every background task
    and closes open observe_state() streams. A later start() therefore
    always resumes from a stable state.
    """

    def __init__(
        self,
        *,
        catalog: StrategyCatalog | None = None,
        sleep: SleepFn = asyncio.sleep,
        republish_interval_ms: int = STATE_REPUBLISH_INTERVAL_MS,
        subscriber_queue_max: int = SUBSCRIBER_QUEUE_MAX,
    ) -> None:
        self._catalog = catalog if catalog is not None else default_catalog()
        self._sleep = sleep
        self._republish_interval_ms = republish_interval_ms
        self._subscriber_queue_max = subscriber_queue_max

        self._context = ConnectionContext()
        self._timelines: dict[str, asyncio.Task[None]] = {}
        self._ticker: asyncio.Task[None] | None = None
        self._subscribers: set[asyncio.Queue[ConnectionState | None]] = set()
        self._attempt_timer_id: str | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic republish tick. Idempotent."""
        if self._running:
            return
        self._running = True
        self._ticker = asyncio.create_task(self._republish_loop())
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "MANAGER_STARTED",
            "component": _COMPONENT,
            "republish_interval_ms": self._republish_interval_ms,
        })

    async def stop(self) -> None:
        """
        Tear down all background work.

        A handler caught mid-transition (CONNECTING or DISCONNECTING) is
        forced to DISCONNECTED first: no timeline survives a restart to
        finish it. Then timelines and the tick are cancelled and awaited,
        and every open observe_state() stream ends.
        """
        if not self._running:
            return
        self._running = False

        tasks = list(self._timelines.values())

        if self._context.get_handler().state in (State.CONNECTING, State.DISCONNECTING):
            self.handle_event(
                ForceDisconnected(
                    event_type=EventType.FORCE_DISCONNECTED,
                    ts_ms=_now_ms(),
                    reason="manager_stopped",
                )
            )

        tasks.extend(self._timelines.values())
        self._timelines.clear()
        if self._ticker is not None:
            tasks.append(self._ticker)
            self._ticker = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._publish(None)

        if self._attempt_timer_id is not None:
            metrics.discard_timer(self._attempt_timer_id)
            self._attempt_timer_id = None

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "MANAGER_STOPPED",
            "component": _COMPONENT,
            "state": self._context.get_handler().state.value,
        })

    async def __aenter__(self) -> ConnectionManager:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def connect(self, node_id: str, strategy_name: str | None = None) -> Result:
        """
        Begin connecting to node_id.

        Returns as soon as the context is CONNECTING; the phases run in
        the background. Unknown strategy names fall back to the default.
        Any unexpected exception forces ERROR and is reported as a
        failure result.
        """
        self._require_running()
        if not isinstance(node_id, str) or not node_id:
            raise ValueError("node_id must be a non-empty string")

        try:
            strategy = self._catalog.resolve(strategy_name)
            return self.handle_event(
                ConnectRequested(
                    event_type=EventType.CONNECT_REQUESTED,
                    ts_ms=_now_ms(),
                    node_id=node_id,
                    strategy=strategy,
                )
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            message = str(exc) or "Connection failed"
            self.handle_event(
                ForceError(
                    event_type=EventType.FORCE_ERROR,
                    ts_ms=_now_ms(),
                    node_id=node_id,
                    message=message,
                )
            )
            return Result.failure(ConnectError(FailureReason.UNEXPECTED, message))

    async def disconnect(self) -> Result:
        """
        Disconnect (or cancel an in-flight attempt, or clear an error).

        Any unexpected exception fails safe to DISCONNECTED.
        """
        self._require_running()

        try:
            return self.handle_event(
                DisconnectRequested(
                    event_type=EventType.DISCONNECT_REQUESTED,
                    ts_ms=_now_ms(),
                )
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            message = str(exc) or "Disconnect failed"
            self.handle_event(
                ForceDisconnected(
                    event_type=EventType.FORCE_DISCONNECTED,
                    ts_ms=_now_ms(),
                    reason=message,
                )
            )
            return Result.failure(DisconnectError(FailureReason.UNEXPECTED, message))

    def current_state(self) -> ConnectionState:
        """Synchronous snapshot rendered at the current wall-clock time."""
        return self._context.current_state(_now_ms())

    async def observe_state(self) -> AsyncGenerator[ConnectionState, None]:
        """
        Continuous stream of states.

        Yields the current snapshot first, then every published state in
        order (transitions plus the periodic re-sample; consecutive
        duplicates are possible). A consumer that falls more than
        subscriber_queue_max states behind loses the oldest ones. Ends
        when the manager stops, or immediately after the snapshot if it
        is not running.
        """
        queue: asyncio.Queue[ConnectionState | None] = asyncio.Queue(
            maxsize=self._subscriber_queue_max
        )
        self._subscribers.add(queue)
        try:
            yield self.current_state()
            if not self._running:
                return
            while True:
                item = await queue.get()
                if item is None:
                    return
                yield item
        finally:
            self._subscribers.discard(queue)

    def is_connected_to(self, node_id: str) -> bool:
        state = self.current_state()
        return isinstance(state, Connected) and state.node_id == node_id

    def is_connecting_to(self, node_id: str) -> bool:
        state = self.current_state()
        return isinstance(state, Connecting) and state.node_id == node_id

    def current_strategy(self) -> ConnectionStrategy | None:
        """Strategy of the attempt in progress or established, else None."""
        handler = self._context.get_handler()
        if handler.state in (State.CONNECTING, State.CONNECTED):
            return handler.strategy
        return None

    def available_strategies(self) -> tuple[str, ...]:
        return self._catalog.available()

    @property
    def catalog(self) -> StrategyCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Event pipeline
    # ------------------------------------------------------------------

    def handle_event(self, event: Event) -> Result:
        """
        Process a single event through the lifecycle pipeline.

        Processing steps:
        1. Reduce against the context (atomic swap inside the context)
        2. Publish the new state if the handler changed
        3. Execute emitted commands in order

        This method is the *only* entry point for state writes. It never
        awaits, so no other task can interleave between steps.
        """
        previous = self._context.get_handler()
        result, commands = self._context.apply(event)
        current = self._context.get_handler()

        if current != previous:
            self._track_attempt_metric(previous.state, current.state, current.node_id)
            self._publish(render(current, _now_ms()))

        for cmd in commands:
            self._execute_command(cmd)

        return result

    def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""
        if isinstance(cmd, LogEvent):
            log_event({**cmd.event, "component": _COMPONENT})

        elif isinstance(cmd, StartPhaseAdvance):
            self._attempt_timer_id = metrics.start_timer("connect_attempt_duration")
            self._start_timeline(
                TIMELINE_PHASE_ADVANCE,
                self._phase_advance(cmd.attempt, cmd.strategy),
            )

        elif isinstance(cmd, StartDisconnectSettle):
            self._start_timeline(
                TIMELINE_DISCONNECT_SETTLE,
                self._disconnect_settle(cmd.attempt, cmd.delay_ms),
            )

        elif isinstance(cmd, CancelTimeline):
            self._cancel_timeline(cmd.timeline_id)

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_NOT_HANDLED",
                "component": _COMPONENT,
                "command_type": type(cmd).__name__,
            })

    def _publish(self, value: ConnectionState | None) -> None:
        """Fan out to every subscriber. None is the end-of-stream sentinel."""
        for queue in list(self._subscribers):
            if queue.full():
                # Bounded backlog: drop the oldest so the newest always lands
                queue.get_nowait()
            queue.put_nowait(value)

    def _track_attempt_metric(
        self,
        previous: State,
        current: State,
        node_id: str | None,
    ) -> None:
        if self._attempt_timer_id is None:
            return
        if previous is State.CONNECTING and current is not State.CONNECTING:
            metrics.stop_timer(
                self._attempt_timer_id,
                node_id=node_id,
                state=current.value,
            )
            self._attempt_timer_id = None

    # ------------------------------------------------------------------
    # Timelines
    # ------------------------------------------------------------------

    def _owns(self, attempt: int, state: State) -> bool:
        handler = self._context.get_handler()
        return handler.attempt == attempt and handler.state is state

    async def _phase_advance(self, attempt: int, strategy: ConnectionStrategy) -> None:
        """
        Drive phases 1..N-1, then CONNECTED.

        Phase 0 was applied by the initial transition. Each step waits
        step_delay_ms and re-checks the attempt token before publishing,
        so a cancelled or superseded attempt never writes again.
        """
        delay_s = strategy.step_delay_ms / 1000.0
        try:
            for phase_index in range(1, strategy.phase_count):
                await self._sleep(delay_s)
                if not self._owns(attempt, State.CONNECTING):
                    return
                self.handle_event(
                    PhaseAdvanced(
                        event_type=EventType.PHASE_ADVANCED,
                        ts_ms=_now_ms(),
                        attempt=attempt,
                        phase_index=phase_index,
                    )
                )

            await self._sleep(delay_s)
            if not self._owns(attempt, State.CONNECTING):
                return
            self.handle_event(
                ConnectEstablished(
                    event_type=EventType.CONNECT_ESTABLISHED,
                    ts_ms=_now_ms(),
                    attempt=attempt,
                )
            )

        except asyncio.CancelledError:
            # Timeline was cancelled - this is normal
            return

        except Exception as exc:  # pylint: disable=broad-exception-caught
            self.handle_event(
                AttemptFailed(
                    event_type=EventType.ATTEMPT_FAILED,
                    ts_ms=_now_ms(),
                    attempt=attempt,
                    reason=str(exc) or "Connection failed",
                )
            )

    async def _disconnect_settle(self, attempt: int, delay_ms: int) -> None:
        """Wait delay_ms, then DISCONNECTING -> DISCONNECTED."""
        try:
            await self._sleep(delay_ms / 1000.0)
            if not self._owns(attempt, State.DISCONNECTING):
                return
            self.handle_event(
                DisconnectSettled(
                    event_type=EventType.DISCONNECT_SETTLED,
                    ts_ms=_now_ms(),
                    attempt=attempt,
                )
            )

        except asyncio.CancelledError:
            return

        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Teardown must never leave the session stuck mid-way
            self.handle_event(
                ForceDisconnected(
                    event_type=EventType.FORCE_DISCONNECTED,
                    ts_ms=_now_ms(),
                    reason=str(exc) or "Disconnect failed",
                )
            )

    async def _republish_loop(self) -> None:
        """Re-sample the context so Connected.duration_ms keeps advancing."""
        try:
            while True:
                await asyncio.sleep(self._republish_interval_ms / 1000.0)
                self._publish(self.current_state())
        except asyncio.CancelledError:
            return

    def _start_timeline(
        self,
        timeline_id: str,
        coro: Coroutine[Any, Any, None],
    ) -> None:
        """
        Start or replace a timeline task.

        At most one task per timeline id; the entry removes itself when
        the task finishes.
        """
        self._cancel_timeline(timeline_id)

        task = asyncio.create_task(coro)
        self._timelines[timeline_id] = task

        def _cleanup(done: asyncio.Task[None]) -> None:
            if self._timelines.get(timeline_id) is done:
                self._timelines.pop(timeline_id, None)

        task.add_done_callback(_cleanup)

    def _cancel_timeline(self, timeline_id: str) -> None:
        """
        Cancel a running timeline if it exists.

        Idempotent. A timeline never cancels itself; its own token check
        ends it instead.
        """
        task = self._timelines.pop(timeline_id, None)
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    def _require_running(self) -> None:
        if not self._running:
            raise RuntimeError("ConnectionManager is not started; await start() first")

    def timeline_ids(self) -> tuple[str, ...]:
        """Ids of timelines currently scheduled (for diagnostics)."""
        return tuple(self._timelines)

    def snapshot_payload(self) -> dict[str, object]:
        """Current state as a JSON-ready dict."""
        return to_payload(self.current_state())
