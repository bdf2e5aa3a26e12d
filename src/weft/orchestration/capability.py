"""
Capability interface - the unit of work a step, branch or route calls.

Manifesto:
    Agents, embedders and moderators all look the same to an executor: one
    ``invoke`` method that takes structured input and a cancellation token
    and returns an Outcome (or a plain value, coerced by
    ``Outcome.from_value``). Routers additionally need a ``Classifier``.
    Nothing else about the provider leaks into orchestration.

ARCHITECTURE
────────────
::

    Capability (Protocol)      invoke(input, *, cancel) → Outcome | Any
    Classifier (Protocol)      classify(input, routes, *, cancel) → Outcome | str
    CancellationToken          cancel() / cancelled / checkpoint()
    FunctionCapability         adapts fn(input) or fn(input, cancel)

Cancellation is cooperative: an executor cancels the token, and the
capability observes it at its next ``cancel.checkpoint()``. A token bound
to a run also re-checks that run's BudgetGuard at every checkpoint, so a
long capability call can stop on timeout or budget exhaustion between
chunks of work.

Example::

    def summarize(text, cancel):
        parts = []
        for chunk in split(text):
            cancel.checkpoint()
            parts.append(model(chunk))
        return " ".join(parts)

    capability = FunctionCapability(summarize, name="summarize")

Tags:
    weft, orchestration, capability, cancellation, protocol
"""

from __future__ import annotations

import inspect
import threading
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from weft.orchestration.exceptions import OperationCancelled, RunAborted

if TYPE_CHECKING:
    from weft.orchestration.budget import BudgetGuard
    from weft.orchestration.outcome import Outcome


class CancellationToken:
    """Cooperative cancellation signal shared by the invocations of one run.

    Thread-safe: Parallel branches on worker threads all observe the same
    token, and the first ``cancel`` wins (its reason is kept).
    """

    def __init__(self, guard: BudgetGuard | None = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._guard = guard

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> bool:
        """Signal cancellation. Returns ``True`` if this call flipped the token."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; returns ``cancelled``."""
        return self._event.wait(timeout)

    def checkpoint(self) -> None:
        """Raise if the invocation should stop now.

        Raises:
            OperationCancelled: The token was cancelled.
            RunAborted: The bound BudgetGuard found the run out of time or
                money; the token is cancelled before re-raising.
        """
        if self._event.is_set():
            raise OperationCancelled(self._reason or "cancelled")
        if self._guard is not None:
            try:
                self._guard.check()
            except RunAborted as abort:
                self.cancel(str(abort))
                raise

    def __repr__(self) -> str:
        state = f"cancelled: {self._reason}" if self.cancelled else "active"
        return f"CancellationToken({state})"


@runtime_checkable
class Capability(Protocol):
    """Anything a step, branch or route can invoke.

    ``name`` and ``version`` identify the capability in cache fingerprints
    and logs. ``invoke`` may raise ``CapabilityError`` (with whatever partial
    cost was consumed) or return a failed Outcome.
    """

    name: str
    version: str

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Outcome | Any: ...


@runtime_checkable
class Classifier(Protocol):
    """Router classifier: picks one label from the declared routes.

    ``routes`` maps each label to its description (``None`` when the route
    declares none). Returning an Outcome lets the classifier report its
    cost and tokens; its ``content`` is the label.
    """

    name: str
    version: str

    def classify(
        self,
        input: Any,
        routes: Mapping[str, str | None],
        *,
        cancel: CancellationToken,
    ) -> Outcome | str: ...


def capability_identity(capability: Any) -> str:
    """Stable identity used in cache fingerprints and log fields."""
    name = getattr(capability, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(capability).__qualname__


def capability_version(capability: Any) -> str:
    return str(getattr(capability, "version", "1"))


class FunctionCapability:
    """Adapt a plain callable into a Capability.

    The callable receives the input, and also the cancellation token when it
    declares a parameter named ``cancel``.

    Example:
        upper = FunctionCapability(lambda text: text.upper(), name="upper")
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        version: str = "1",
        cache_config: dict[str, Any] | None = None,
    ):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", type(fn).__qualname__)
        self.version = version
        self.cache_config = dict(cache_config or {})
        self._wants_cancel = _accepts_cancel(fn)

    def invoke(self, input: Any, *, cancel: CancellationToken) -> Any:
        if self._wants_cancel:
            return self._fn(input, cancel=cancel)
        return self._fn(input)

    def __repr__(self) -> str:
        return f"FunctionCapability({self.name!r}, version={self.version!r})"


class FunctionClassifier:
    """Adapt ``fn(input, routes)`` (optionally ``cancel=``) into a Classifier."""

    def __init__(self, fn: Callable[..., Any], *, name: str | None = None, version: str = "1"):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", type(fn).__qualname__)
        self.version = version
        self._wants_cancel = _accepts_cancel(fn)

    def classify(
        self,
        input: Any,
        routes: Mapping[str, str | None],
        *,
        cancel: CancellationToken,
    ) -> Any:
        if self._wants_cancel:
            return self._fn(input, routes, cancel=cancel)
        return self._fn(input, routes)


def _accepts_cancel(fn: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return False
    return "cancel" in signature.parameters


__all__ = [
    "CancellationToken",
    "Capability",
    "Classifier",
    "FunctionCapability",
    "FunctionClassifier",
    "capability_identity",
    "capability_version",
]
