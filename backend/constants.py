"""
BEHAVIOUR-AS-CONSTANTS
----------------------
Single source of truth for all timing and naming invariants of the
connection lifecycle.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Strategies
# =============================================================================

STRATEGY_FAST: Final[str] = "fast"
STRATEGY_SECURE: Final[str] = "secure"

# Unknown or empty names resolve here (not an error)
DEFAULT_STRATEGY: Final[str] = STRATEGY_FAST

FAST_STEP_DELAY_MS: Final[int] = 500
FAST_PHASES: Final[Tuple[str, ...]] = (
    "Establishing connection...",
    "Authenticating...",
    "Connected!",
)

SECURE_STEP_DELAY_MS: Final[int] = 1_000
SECURE_PHASES: Final[Tuple[str, ...]] = (
    "Initializing secure handshake...",
    "Verifying server certificate...",
    "Establishing encrypted tunnel...",
    "Performing security validation...",
    "Connection secured!",
)

# =============================================================================
# Lifecycle timing
# =============================================================================

# Disconnecting -> Disconnected settle delay
DISCONNECT_SETTLE_MS: Final[int] = 1_000

# Periodic republish so Connected.duration_ms advances for observers
STATE_REPUBLISH_INTERVAL_MS: Final[int] = 1_000

# Per-subscriber backlog; a slow observer loses its oldest queued states
SUBSCRIBER_QUEUE_MAX: Final[int] = 32

# =============================================================================
# Timeline IDs
# =============================================================================

TIMELINE_PHASE_ADVANCE: Final[str] = "phase_advance"
TIMELINE_DISCONNECT_SETTLE: Final[str] = "disconnect_settle"

# =============================================================================
# Caller-side session records
# =============================================================================

DEFAULT_USER_ID: Final[int] = 1
