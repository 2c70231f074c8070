"""
Caller-side connection service.

Sits one layer above ConnectionManager:
- Strict input validation (node id, strategy name) before the core,
  which itself silently falls back to the default strategy
- Opens / closes SessionRecords only when the core accepts a request
- Closes the active record when an attempt ends in ERROR, or the
  manager is stopped mid-transition, by following observe_state()

Contains no lifecycle logic of its own.
"""

from __future__ import annotations

import asyncio

from constants import DEFAULT_USER_ID
from observability.logger import log_event
from orchestrator.connection_state import Disconnected, Error
from orchestrator.manager import ConnectionManager
from orchestrator.result import Result
from session.session_store import SessionRecord, SessionStore


class InvalidRequestError(ValueError):
    """Caller input failed validation; the core was not called."""


class ConnectionService:
    """Validates requests, delegates to the manager, records sessions."""

    def __init__(
        self,
        *,
        manager: ConnectionManager,
        store: SessionStore | None = None,
        user_id: int = DEFAULT_USER_ID,
    ) -> None:
        self._manager = manager
        self._store = store if store is not None else SessionStore()
        self._user_id = user_id
        self._task: asyncio.Task[None] | None = None

    @property
    def store(self) -> SessionStore:
        return self._store

    def validate(self, node_id: str, strategy: str) -> str:
        """
        Return the normalized strategy name.

        Raises:
            InvalidRequestError for an empty node id or unknown strategy.
        """
        if not node_id or not node_id.strip():
            raise InvalidRequestError("Node id must not be empty")

        catalog = self._manager.catalog
        if not catalog.is_known(strategy):
            allowed = " or ".join(f"'{name}'" for name in catalog.available())
            raise InvalidRequestError(
                f"Invalid strategy: {strategy}. Must be {allowed}"
            )
        return strategy.strip().lower()

    async def connect(self, node_id: str, strategy: str) -> Result:
        name = self.validate(node_id, strategy)
        node_id = node_id.strip()

        result = await self._manager.connect(node_id, name)
        if result.ok:
            record = self._store.open(user_id=self._user_id, node_id=node_id)
            log_event({
                "ts_ms": record.connected_at_ms,
                "event_type": "SESSION_OPENED",
                "session_record_id": record.id,
                "node_id": node_id,
                "strategy": name,
            })
        return result

    async def disconnect(self) -> Result:
        result = await self._manager.disconnect()
        if result.ok:
            record = self._store.close()
            if record is not None:
                log_event({
                    "ts_ms": record.disconnected_at_ms,
                    "event_type": "SESSION_CLOSED",
                    "session_record_id": record.id,
                    "node_id": record.node_id,
                })
        return result

    def current_session(self) -> SessionRecord | None:
        return self._store.current()

    def history(self) -> tuple[SessionRecord, ...]:
        return self._store.history()

    # ------------------------------------------------------------------
    # Background reconciliation
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Follow the manager's state stream so failed attempts close their record."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        # Catch a settle the stream had no chance to deliver
        self.reconcile()

    async def run(self) -> None:
        stream = self._manager.observe_state()
        try:
            async for _ in stream:
                self.reconcile()
        finally:
            await stream.aclose()

    def reconcile(self) -> SessionRecord | None:
        """
        Close the active record if the manager has settled without a link.

        Reads the live state rather than the streamed value: a queued
        Disconnected from an earlier session must not close a record
        opened since.
        """
        if self._store.current() is None:
            return None

        state = self._manager.current_state()
        if not isinstance(state, (Disconnected, Error)):
            return None

        record = self._store.close()
        if record is not None:
            log_event({
                "ts_ms": record.disconnected_at_ms,
                "event_type": "SESSION_CLOSED",
                "session_record_id": record.id,
                "node_id": record.node_id,
                "reason": state.state.value,
            })
        return record
