"""
Connection session records.

Caller-side bookkeeping: a record is opened when a connect request is
accepted by the manager and closed when a disconnect is accepted. The
lifecycle core never reads or writes these.

In-memory only; durable persistence is a collaborator's concern.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, replace


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class SessionRecord:
    """One connect -> disconnect span for a node."""

    id: int
    user_id: int
    node_id: str
    connected_at_ms: int
    disconnected_at_ms: int | None = None
    is_active: bool = True

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "node_id": self.node_id,
            "connected_at_ms": self.connected_at_ms,
            "disconnected_at_ms": self.disconnected_at_ms,
            "is_active": self.is_active,
        }


class SessionStore:
    """
    Current session plus history, newest last.

    Opening a record while another is active closes the previous one
    first, so at most one record is active at a time.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._history: list[SessionRecord] = []

    def open(self, *, user_id: int, node_id: str, ts_ms: int | None = None) -> SessionRecord:
        ts = ts_ms if ts_ms is not None else _now_ms()
        self.close(ts_ms=ts)

        record = SessionRecord(
            id=next(self._ids),
            user_id=user_id,
            node_id=node_id,
            connected_at_ms=ts,
        )
        self._history.append(record)
        return record

    def close(self, *, ts_ms: int | None = None) -> SessionRecord | None:
        """Mark the active record disconnected. No-op if none is active."""
        if not self._history or not self._history[-1].is_active:
            return None

        closed = replace(
            self._history[-1],
            is_active=False,
            disconnected_at_ms=ts_ms if ts_ms is not None else _now_ms(),
        )
        self._history[-1] = closed
        return closed

    def current(self) -> SessionRecord | None:
        if self._history and self._history[-1].is_active:
            return self._history[-1]
        return None

    def history(self) -> tuple[SessionRecord, ...]:
        return tuple(self._history)
