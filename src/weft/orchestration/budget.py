"""Run Budget — enforce cost and wall-time limits across one workflow run.

WHY
───
Model calls cost money and time. A runaway pipeline or a wide fan-out can
burn through a budget before anyone notices. ``BudgetGuard`` tracks the
cumulative cost and elapsed time of one run and aborts it the moment either
goes past its ceiling.

ARCHITECTURE
────────────
::

    BudgetGuard(timeout_seconds, max_cost)
    ├── .start()           → begin the wall clock (idempotent)
    ├── .charge(cost)      → add spent money (thread-safe)
    ├── .check()           → raise RunTimeoutError / BudgetExceededError
    ├── .elapsed           → seconds since start
    ├── .total_cost        → money charged so far
    └── .remaining_cost    → money left (None if unbounded)

Checks happen before every capability invocation and at every
``CancellationToken.checkpoint()`` inside one. A call already in flight is
never pre-empted, so a single long call can overrun the timeout before the
next check.

Example::

    guard = BudgetGuard(max_cost=Decimal("1.00")).start()
    guard.charge(Decimal("0.60"))
    guard.check()                       # ok
    guard.charge(Decimal("0.50"))
    guard.check()                       # raises BudgetExceededError
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from weft.core.logging import get_logger
from weft.orchestration.exceptions import BudgetExceededError, RunTimeoutError
from weft.orchestration.outcome import ZERO, to_decimal

logger = get_logger(__name__)


class BudgetGuard:
    """Tracks and enforces one run's cost and time ceiling.

    Both limits are optional; an unbounded guard still records cost.
    Limits are exclusive: spending exactly ``max_cost`` is allowed, spending
    more aborts.

    Attributes:
        timeout_seconds: Maximum run wall time, or ``None``.
        max_cost: Maximum cumulative cost, or ``None``.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        max_cost: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self.timeout_seconds = timeout_seconds
        self.max_cost: Decimal | None = None if max_cost is None else to_decimal(max_cost)
        if self.max_cost is not None and self.max_cost < 0:
            raise ValueError(f"max_cost must be >= 0, got {self.max_cost}")

        self._clock = clock
        self._lock = threading.Lock()
        self._started_at: float | None = None
        self._spent: Decimal = ZERO
        self._charges = 0

    def start(self) -> BudgetGuard:
        with self._lock:
            if self._started_at is None:
                self._started_at = self._clock()
        return self

    @property
    def elapsed(self) -> float:
        """Seconds since ``start()`` (0.0 before it)."""
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    @property
    def total_cost(self) -> Decimal:
        with self._lock:
            return self._spent

    @property
    def remaining_cost(self) -> Decimal | None:
        if self.max_cost is None:
            return None
        return max(ZERO, self.max_cost - self.total_cost)

    @property
    def charge_count(self) -> int:
        return self._charges

    def charge(self, cost: Any) -> Decimal:
        """Record money spent by one invocation; returns the new total."""
        amount = to_decimal(cost)
        with self._lock:
            self._spent += amount
            self._charges += 1
            return self._spent

    def check(self) -> None:
        """Abort the run if it is past either ceiling.

        Raises:
            RunTimeoutError: ``elapsed > timeout_seconds``.
            BudgetExceededError: ``total_cost > max_cost``.
        """
        if self.timeout_seconds is not None:
            elapsed = self.elapsed
            if elapsed > self.timeout_seconds:
                logger.warning(
                    "budget.exceeded",
                    reason="timeout",
                    elapsed=round(elapsed, 3),
                    timeout_seconds=self.timeout_seconds,
                )
                raise RunTimeoutError(self.timeout_seconds, elapsed)

        if self.max_cost is not None:
            spent = self.total_cost
            if spent > self.max_cost:
                logger.warning(
                    "budget.exceeded",
                    reason="cost",
                    spent=str(spent),
                    max_cost=str(self.max_cost),
                )
                raise BudgetExceededError(self.max_cost, spent)

    def to_dict(self) -> dict[str, Any]:
        """Serialize guard state."""
        return {
            "timeout_seconds": self.timeout_seconds,
            "max_cost": None if self.max_cost is None else str(self.max_cost),
            "elapsed_seconds": round(self.elapsed, 6),
            "total_cost": str(self.total_cost),
            "charges": self._charges,
        }

    def __repr__(self) -> str:
        return (
            f"BudgetGuard(timeout_seconds={self.timeout_seconds}, "
            f"max_cost={self.max_cost}, spent={self.total_cost})"
        )


__all__ = ["BudgetGuard"]
