# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

from orchestrator.connection_state import (
    Connected,
    Connecting,
    Disconnected,
    Disconnecting,
    Error,
)
from orchestrator.manager import ConnectionManager
from session.notifications import (
    LogNotifier,
    Notification,
    NotificationKind,
    NotificationWatcher,
    detect_notification,
)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Notification] = []
        self.cleared = 0

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)

    def clear(self) -> None:
        self.cleared += 1


def _connected(node_id="node-1", observed_at_ms=2_000):
    return Connected(node_id=node_id, connected_at_ms=1_000, observed_at_ms=observed_at_ms)


def test_detect_edges():
    assert detect_notification(Disconnected(), _connected()) is NotificationKind.CONNECTED
    assert detect_notification(_connected(), Disconnected()) is NotificationKind.DISCONNECTED
    assert detect_notification(Connecting("n", 0.5), Error("x")) is NotificationKind.ERROR

    assert detect_notification(_connected(), _connected(observed_at_ms=3_000)) is None
    assert detect_notification(Error("x"), Error("y")) is None
    assert detect_notification(Disconnected(), Disconnected()) is None
    assert detect_notification(Connecting("n", 0.5), Disconnected()) is None


def test_watcher_full_session():
    notifier = RecordingNotifier()
    watcher = NotificationWatcher(
        manager=ConnectionManager(),
        notifier=notifier,
        node_name={"node-1": "Frankfurt #1"}.get,
    )

    for state in (
        Disconnected(),
        Connecting("node-1", 1 / 3),
        Connecting("node-1", 2 / 3),
        _connected(),
        _connected(observed_at_ms=3_000),
        _connected(observed_at_ms=4_000),
        Disconnecting("node-1"),
        Disconnected(),
    ):
        watcher.handle_state(state)

    assert [(n.kind, n.text) for n in notifier.sent] == [
        (NotificationKind.CONNECTED, "Connected to Frankfurt #1"),
        (NotificationKind.DISCONNECTED, "Disconnected from VPN"),
    ]


def test_watcher_error_notification():
    notifier = RecordingNotifier()
    watcher = NotificationWatcher(manager=ConnectionManager(), notifier=notifier)

    watcher.handle_state(Connecting("node-1", 0.2))
    sent = watcher.handle_state(Error("link down", node_id="node-1"))
    repeat = watcher.handle_state(Error("link down", node_id="node-1"))

    assert sent == Notification(
        kind=NotificationKind.ERROR,
        title="VPN Connection Failed",
        text="link down",
        node_id="node-1",
    )
    assert repeat is None
    assert notifier.sent == [sent]


def test_display_name_falls_back_to_node_id():
    def broken(_: str) -> str:
        raise LookupError("directory offline")

    for resolver in (None, lambda _: None, broken):
        notifier = RecordingNotifier()
        watcher = NotificationWatcher(
            manager=ConnectionManager(), notifier=notifier, node_name=resolver
        )

        watcher.handle_state(_connected(node_id="node-7"))

        assert notifier.sent[0].text == "Connected to node-7"


def test_watcher_follows_manager_stream(manual_sleep):
    notifier = RecordingNotifier()

    async def scenario():
        manager = ConnectionManager(sleep=manual_sleep, republish_interval_ms=60_000)
        watcher = NotificationWatcher(manager=manager, notifier=notifier)

        await manager.start()
        watcher.start()
        await manual_sleep.settle()

        await manager.connect("node-1", "fast")
        await manual_sleep.release(3)

        await manager.disconnect()
        await manual_sleep.release(1)

        await watcher.stop()
        await manager.stop()

    asyncio.run(scenario())

    assert [n.kind for n in notifier.sent] == [
        NotificationKind.CONNECTED,
        NotificationKind.DISCONNECTED,
    ]
    assert notifier.cleared == 1


def test_log_notifier_emits_events(log_sink):
    notifier = LogNotifier()

    notifier.notify(
        Notification(
            kind=NotificationKind.CONNECTED,
            title="VPN Connection",
            text="Connected to node-1",
            node_id="node-1",
        )
    )
    notifier.clear()

    [sent] = log_sink.events("NOTIFICATION")
    assert sent["kind"] == "CONNECTED"
    assert sent["text"] == "Connected to node-1"
    assert len(log_sink.events("NOTIFICATIONS_CLEARED")) == 1
