"""
Connection strategies and the catalog that resolves them by name.

A strategy is a pure, immutable descriptor: ordered phase labels plus a
fixed delay between phases. It never sleeps or schedules anything itself;
the manager's phase-advance timeline reads it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from constants import (
    DEFAULT_STRATEGY,
    FAST_PHASES,
    FAST_STEP_DELAY_MS,
    SECURE_PHASES,
    SECURE_STEP_DELAY_MS,
    STRATEGY_FAST,
    STRATEGY_SECURE,
)


# =============================================================================
# Strategy
# =============================================================================

@dataclass(frozen=True)
class ConnectionStrategy:
    """
    Named connection plan.

    total_duration_ms is derived (phase_count * step_delay_ms), never stored.
    """

    name: str
    phases: tuple[str, ...]
    step_delay_ms: int

    def __post_init__(self) -> None:
        if not self.phases:
            raise ValueError(f"strategy {self.name!r} must have at least one phase")
        if self.step_delay_ms <= 0:
            raise ValueError(f"strategy {self.name!r} step_delay_ms must be > 0")

    @property
    def phase_count(self) -> int:
        return len(self.phases)

    @property
    def total_duration_ms(self) -> int:
        return self.phase_count * self.step_delay_ms

    def progress_at(self, phase_index: int) -> float:
        """Progress fraction published once phase `phase_index` has started."""
        if not 0 <= phase_index < self.phase_count:
            raise IndexError(phase_index)
        return (phase_index + 1) / self.phase_count

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "phases": list(self.phases),
            "step_delay_ms": self.step_delay_ms,
            "total_duration_ms": self.total_duration_ms,
        }


FAST = ConnectionStrategy(
    name=STRATEGY_FAST,
    phases=FAST_PHASES,
    step_delay_ms=FAST_STEP_DELAY_MS,
)

SECURE = ConnectionStrategy(
    name=STRATEGY_SECURE,
    phases=SECURE_PHASES,
    step_delay_ms=SECURE_STEP_DELAY_MS,
)


# =============================================================================
# Catalog
# =============================================================================

def _normalize(name: str | None) -> str:
    return (name or "").strip().lower()


class StrategyCatalog:
    """
    Resolves strategy names to strategies.

    Semantics:
    - Lookup is case-insensitive.
    - Unknown or empty names resolve to the default strategy.
      Callers needing strict validation check is_known() first.
    """

    def __init__(
        self,
        strategies: Iterable[ConnectionStrategy],
        *,
        default: str = DEFAULT_STRATEGY,
    ) -> None:
        self._strategies: dict[str, ConnectionStrategy] = {}
        for strategy in strategies:
            self._strategies[_normalize(strategy.name)] = strategy

        default_key = _normalize(default)
        if default_key not in self._strategies:
            raise ValueError(f"default strategy {default!r} is not in the catalog")
        self._default = default_key

    def resolve(self, name: str | None) -> ConnectionStrategy:
        return self._strategies.get(_normalize(name), self._strategies[self._default])

    def is_known(self, name: str | None) -> bool:
        return _normalize(name) in self._strategies

    def available(self) -> tuple[str, ...]:
        return tuple(self._strategies)

    @property
    def default(self) -> ConnectionStrategy:
        return self._strategies[self._default]


def default_catalog() -> StrategyCatalog:
    """The built-in fast/secure catalog."""
    return StrategyCatalog((FAST, SECURE))
