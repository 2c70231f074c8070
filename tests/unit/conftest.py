# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from observability import logger


class ManualSleep:
    """
    Injected sleep whose waits only finish when the test releases them.

    Lets manager tests step a timeline one phase at a time without
    depending on wall-clock delays.
    """

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._waiters: list[asyncio.Future[None]] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    @staticmethod
    async def settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    @property
    def pending(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def release(self, count: int = 1) -> None:
        for _ in range(count):
            await self.settle()
            self._waiters = [w for w in self._waiters if not w.done()]
            assert self._waiters, "no sleeping timeline to release"
            self._waiters.pop(0).set_result(None)
        await self.settle()


class LogSink:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def __call__(self, line: str) -> None:
        self.lines.append(line)

    def events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        decoded = [json.loads(line) for line in self.lines]
        if event_type is None:
            return decoded
        return [e for e in decoded if e.get("event_type") == event_type]


@pytest.fixture(autouse=True)
def log_sink(monkeypatch: pytest.MonkeyPatch) -> LogSink:
    sink = LogSink()
    monkeypatch.setattr(logger, "_print", sink)
    monkeypatch.setattr(logger, "_enabled", True)
    return sink


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()
