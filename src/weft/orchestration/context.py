"""
Context - append-only record of a run, passed step-to-step.

Every run owns one Context. Executors write each step's Outcome under its
name with :meth:`Context.with_outcome`, which returns a NEW context; the
previous one is never mutated, so a transform hook always sees a
consistent snapshot of what happened before it.

Design Principles:
- Append-only: a name is written at most once per run
- Ordered: iteration follows write order (declaration order for pipelines)
- Absent vs. skipped: ``get`` returns ``None`` for names not yet produced;
  ``content`` treats skipped and failed entries as absent too

Example:
    def before_format(ctx: Context):
        label = ctx.content("classify", default="unknown")
        return {"text": ctx.input["text"], "label": label}
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from typing import Any

from weft.orchestration.exceptions import DuplicateOutcomeError
from weft.orchestration.outcome import Outcome


class Context:
    """Ordered mapping from step/branch name to Outcome, plus the run input.

    Attributes:
        input: The value passed to ``Workflow.call``
        run_id: Identifier of the owning run
        workflow_name: Name of the workflow being executed
    """

    __slots__ = ("input", "run_id", "workflow_name", "_entries")

    def __init__(
        self,
        input: Any = None,
        *,
        run_id: str | None = None,
        workflow_name: str = "",
        entries: dict[str, Outcome] | None = None,
    ) -> None:
        self.input = input
        self.run_id = run_id or str(uuid.uuid4())
        self.workflow_name = workflow_name
        self._entries: dict[str, Outcome] = dict(entries or {})

    # =========================================================================
    # Accessors (read-only)
    # =========================================================================

    def get(self, name: str) -> Outcome | None:
        """Return the Outcome for ``name``, or ``None`` if not yet produced."""
        return self._entries.get(name)

    def content(self, name: str, default: Any = None) -> Any:
        """Content of a successful entry; ``default`` if absent, skipped or failed."""
        outcome = self._entries.get(name)
        if outcome is None or not outcome.succeeded:
            return default
        return outcome.content

    def has(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return list(self._entries)

    def outcomes(self) -> dict[str, Outcome]:
        """Copy of the entries in write order."""
        return dict(self._entries)

    def last_content(self, default: Any = None) -> Any:
        """Content of the most recent successful entry."""
        for outcome in reversed(self._entries.values()):
            if outcome.succeeded:
                return outcome.content
        return default

    def __getitem__(self, name: str) -> Outcome:
        return self._entries[name]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # =========================================================================
    # Extension (returns new context)
    # =========================================================================

    def with_outcome(self, name: str, outcome: Outcome) -> Context:
        """Return a new context extended by one entry.

        Raises:
            DuplicateOutcomeError: if ``name`` was already written.
        """
        if name in self._entries:
            raise DuplicateOutcomeError(name)
        entries = dict(self._entries)
        entries[name] = outcome if outcome.name == name else outcome.named(name)
        return Context(
            self.input,
            run_id=self.run_id,
            workflow_name=self.workflow_name,
            entries=entries,
        )

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow_name": self.workflow_name,
            "input": self.input,
            "outcomes": {name: o.to_dict() for name, o in self._entries.items()},
        }

    def __repr__(self) -> str:
        return (
            f"Context(run_id={self.run_id!r}, "
            f"workflow={self.workflow_name!r}, "
            f"entries={list(self._entries)})"
        )


__all__ = ["Context"]
