"""
Weft Orchestration — workflow execution engine for model capabilities.

WHY
───
A single capability call (an agent, an embedder, a moderator) does one
unit of work. Orchestration composes many of them into a workflow with a
shared Context, concurrent fan-out, failure policies, cost/time budgets
and caching, and always answers with one WorkflowResult.

ARCHITECTURE
────────────
::

    Workflow.call(input) → WorkflowResult
      ├── Pipeline   ─ ordered steps, optional / conditional / transformed
      ├── Parallel   ─ concurrent branches, fail-fast or tolerant, aggregate
      └── Router     ─ rule or classifier picks exactly one route

    Cross-cutting:
      BudgetGuard        ─ max_cost / timeout per run
      CapabilityCache    ─ fingerprinted, single-flight memoization
      CancellationToken  ─ cooperative cancellation at checkpoints
      ExecutionRecorder  ─ created / updated run snapshots

MODULE MAP (recommended reading order)
──────────────────────────────────────
1. outcome.py      ─ Outcome, ErrorKind, TokenUsage
2. exceptions.py   ─ error hierarchy
3. context.py      ─ append-only run Context
4. capability.py   ─ Capability / Classifier protocols, CancellationToken
5. budget.py       ─ BudgetGuard
6. caching.py      ─ CachePolicy, CapabilityCache
7. result.py       ─ WorkflowResult, WorkflowStatus, Topology
8. recorder.py     ─ ExecutionRecord and recorders
9. workflow.py     ─ shared run machinery
10. pipeline.py / parallel.py / router.py ─ the three executors
11. llm/           ─ provider protocols and LLM capabilities
12. testing.py     ─ test doubles and assertions

Example:
    from weft.orchestration import Pipeline, Step

    pipeline = Pipeline(
        "document.enrich",
        steps=[Step("extract", extractor), Step("classify", classifier)],
        max_cost="1.00",
    )
    result = pipeline.call(document)
    result.status, result.total_cost
"""

from weft.orchestration.budget import BudgetGuard
from weft.orchestration.caching import CachePolicy, CapabilityCache, build_cache
from weft.orchestration.capability import (
    CancellationToken,
    Capability,
    Classifier,
    FunctionCapability,
    FunctionClassifier,
)
from weft.orchestration.context import Context
from weft.orchestration.exceptions import (
    BudgetExceededError,
    CapabilityError,
    DuplicateOutcomeError,
    OperationCancelled,
    RunAborted,
    RunTimeoutError,
    WorkflowDeclarationError,
)
from weft.orchestration.outcome import ErrorKind, Outcome, TokenUsage
from weft.orchestration.parallel import Branch, Parallel
from weft.orchestration.pipeline import Pipeline, Step
from weft.orchestration.recorder import (
    ExecutionRecord,
    ExecutionRecorder,
    InMemoryRecorder,
    NullRecorder,
)
from weft.orchestration.result import Topology, WorkflowResult, WorkflowStatus
from weft.orchestration.router import Route, Router, normalize_label
from weft.orchestration.workflow import Workflow, WorkflowDeclaration

__all__ = [
    # Model
    "Context",
    "ErrorKind",
    "Outcome",
    "TokenUsage",
    "Topology",
    "WorkflowResult",
    "WorkflowStatus",
    # Capabilities
    "CancellationToken",
    "Capability",
    "Classifier",
    "FunctionCapability",
    "FunctionClassifier",
    # Workflows
    "Branch",
    "Parallel",
    "Pipeline",
    "Route",
    "Router",
    "Step",
    "Workflow",
    "WorkflowDeclaration",
    "normalize_label",
    # Cross-cutting
    "BudgetGuard",
    "CachePolicy",
    "CapabilityCache",
    "build_cache",
    "ExecutionRecord",
    "ExecutionRecorder",
    "InMemoryRecorder",
    "NullRecorder",
    # Exceptions
    "BudgetExceededError",
    "CapabilityError",
    "DuplicateOutcomeError",
    "OperationCancelled",
    "RunAborted",
    "RunTimeoutError",
    "WorkflowDeclarationError",
]
