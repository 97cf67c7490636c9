"""Workflow execution: run state, scheduling loop and output merging."""

from .context import NodeError, NodeStatus, RunContext, RunStatus
from .executor import (
    Diagnostics,
    EventType,
    Executor,
    RunEvent,
    RunHandle,
    RunOutcome,
    Verdict,
    call_with_timeout,
)
from .merge import merge_outputs, merge_results

__all__ = [
    "NodeError",
    "NodeStatus",
    "RunContext",
    "RunStatus",
    "Diagnostics",
    "EventType",
    "Executor",
    "RunEvent",
    "RunHandle",
    "RunOutcome",
    "Verdict",
    "call_with_timeout",
    "merge_outputs",
    "merge_results",
]
