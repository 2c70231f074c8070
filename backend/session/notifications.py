"""
User-visible connection notifications.

A watcher of ConnectionManager.observe_state() that raises a notification
on exactly three edges:

- (not Connected) -> Connected
- Connected -> Disconnected
- (not Error) -> Error

DISCONNECTING is transitional: it never replaces the remembered previous
state, so Connected -> Disconnecting -> Disconnected counts as the
Connected -> Disconnected edge. Periodic re-samples of the same state
never fire twice.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from observability.logger import log_event
from orchestrator.connection_state import (
    Connected,
    ConnectionState,
    Disconnected,
    Disconnecting,
    Error,
)
from orchestrator.manager import ConnectionManager


class NotificationKind(str, Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    title: str
    text: str
    node_id: str | None = None


def detect_notification(
    previous: ConnectionState,
    current: ConnectionState,
) -> NotificationKind | None:
    """Pure edge detection between two consecutive (non-transitional) states."""
    if isinstance(current, Connected) and not isinstance(previous, Connected):
        return NotificationKind.CONNECTED
    if isinstance(current, Disconnected) and isinstance(previous, Connected):
        return NotificationKind.DISCONNECTED
    if isinstance(current, Error) and not isinstance(previous, Error):
        return NotificationKind.ERROR
    return None


# ---------------------------------------------------------------------
# Notifier protocol + default implementation
# ---------------------------------------------------------------------

class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...
    def clear(self) -> None: ...


class LogNotifier:
    """Delivers notifications as JSONL events."""

    def notify(self, notification: Notification) -> None:
        log_event({
            "ts_ms": time.time_ns() // 1_000_000,
            "event_type": "NOTIFICATION",
            "kind": notification.kind.value,
            "title": notification.title,
            "text": notification.text,
            "node_id": notification.node_id,
        })

    def clear(self) -> None:
        log_event({
            "ts_ms": time.time_ns() // 1_000_000,
            "event_type": "NOTIFICATIONS_CLEARED",
        })


NodeNameResolver = Callable[[str], Optional[str]]


# ---------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------

class NotificationWatcher:
    """
    Consumes the manager's state stream and drives a Notifier.

    node_name resolves a node id to a display name; any failure or a
    None result falls back to the raw id.
    """

    def __init__(
        self,
        *,
        manager: ConnectionManager,
        notifier: Notifier | None = None,
        node_name: NodeNameResolver | None = None,
    ) -> None:
        self._manager = manager
        self._notifier: Notifier = notifier if notifier is not None else LogNotifier()
        self._node_name = node_name
        self._previous: ConnectionState = Disconnected()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._notifier.clear()

    async def run(self) -> None:
        """Consume states until the manager stops streaming."""
        stream = self._manager.observe_state()
        try:
            async for state in stream:
                try:
                    self.handle_state(state)
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    log_event({
                        "ts_ms": time.time_ns() // 1_000_000,
                        "event_type": "NOTIFICATION_FAILED",
                        "state": state.state.value,
                        "exception": type(exc).__name__,
                        "message": str(exc),
                    })
        finally:
            await stream.aclose()

    def handle_state(self, state: ConnectionState) -> Notification | None:
        """Apply one observed state; returns the notification sent, if any."""
        if isinstance(state, Disconnecting):
            return None

        kind = detect_notification(self._previous, state)
        self._previous = state
        if kind is None:
            return None

        notification = self._build(kind, state)
        self._notifier.notify(notification)
        return notification

    def _build(self, kind: NotificationKind, state: ConnectionState) -> Notification:
        if kind is NotificationKind.CONNECTED:
            assert isinstance(state, Connected)
            return Notification(
                kind=kind,
                title="VPN Connection",
                text=f"Connected to {self._display_name(state.node_id)}",
                node_id=state.node_id,
            )

        if kind is NotificationKind.DISCONNECTED:
            return Notification(
                kind=kind,
                title="VPN Connection",
                text="Disconnected from VPN",
            )

        assert isinstance(state, Error)
        return Notification(
            kind=kind,
            title="VPN Connection Failed",
            text=state.message,
            node_id=state.node_id,
        )

    def _display_name(self, node_id: str) -> str:
        if self._node_name is None:
            return node_id
        try:
            return self._node_name(node_id) or node_id
        except Exception:  # pylint: disable=broad-exception-caught
            return node_id
