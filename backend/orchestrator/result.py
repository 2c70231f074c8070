"""
Typed outcomes for connect / disconnect requests.

Rules:
- Expected conditions (invalid transitions, simulation failures) are
  reported through Result, never raised past the manager.
- Errors are plain exception instances so callers that prefer raising
  can call Result.unwrap().
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FailureReason(str, Enum):
    """Why a request was rejected."""

    NOT_CONNECTED = "NOT_CONNECTED"
    ALREADY_CONNECTING = "ALREADY_CONNECTING"
    ALREADY_CONNECTED = "ALREADY_CONNECTED"
    BUSY = "BUSY"
    ALREADY_DISCONNECTING = "ALREADY_DISCONNECTING"
    UNEXPECTED = "UNEXPECTED"


_DEFAULT_MESSAGES: dict[FailureReason, str] = {
    FailureReason.NOT_CONNECTED: "Already disconnected",
    FailureReason.ALREADY_CONNECTING: "Already connecting",
    FailureReason.ALREADY_CONNECTED: "Already connected. Disconnect first.",
    FailureReason.BUSY: "Currently disconnecting",
    FailureReason.ALREADY_DISCONNECTING: "Already disconnecting",
    FailureReason.UNEXPECTED: "Connection failed",
}


class TransitionError(Exception):
    """Base class for rejected lifecycle requests."""

    def __init__(self, reason: FailureReason, message: str | None = None) -> None:
        self.reason = reason
        self.message = message or _DEFAULT_MESSAGES[reason]
        super().__init__(self.message)


class ConnectError(TransitionError):
    """A connect request was rejected or failed to start."""


class DisconnectError(TransitionError):
    """A disconnect request was rejected or failed."""


@dataclass(frozen=True)
class Result:
    """
    Outcome of a lifecycle request.

    ok=True carries no payload (unit success).
    ok=False always carries the error.
    """

    ok: bool
    error: TransitionError | None = None

    @staticmethod
    def success() -> Result:
        return Result(ok=True)

    @staticmethod
    def failure(error: TransitionError) -> Result:
        return Result(ok=False, error=error)

    @property
    def reason(self) -> FailureReason | None:
        return self.error.reason if self.error is not None else None

    def unwrap(self) -> None:
        if self.error is not None:
            raise self.error


SUCCESS = Result.success()
