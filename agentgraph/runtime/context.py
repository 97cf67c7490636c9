"""Per-run mutable state.

A ``RunContext`` is created for every execution of a workflow and is
written only by that run's scheduling loop.  Other threads read it under
``lock``.  It is plain data and round-trips through ``to_dict`` /
``from_dict`` so callers can persist a paused run and continue it later.
"""

import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, TYPE_CHECKING

from ..agents.contract import AgentResult
from ..errors import AgentError
from ..usage import TokenUsage

if TYPE_CHECKING:
    from ..workflow.definition import WorkflowDefinition


class NodeStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({NodeStatus.COMPLETED, NodeStatus.FAILED, NodeStatus.SKIPPED})

_ALLOWED: dict[NodeStatus, frozenset[NodeStatus]] = {
    NodeStatus.PENDING: frozenset({NodeStatus.READY, NodeStatus.SKIPPED}),
    NodeStatus.READY: frozenset({NodeStatus.RUNNING, NodeStatus.SKIPPED}),
    NodeStatus.RUNNING: frozenset({
        NodeStatus.COMPLETED,
        NodeStatus.FAILED,
        NodeStatus.AWAITING_APPROVAL,
        NodeStatus.SKIPPED,
    }),
    NodeStatus.AWAITING_APPROVAL: frozenset({
        NodeStatus.COMPLETED,
        NodeStatus.FAILED,
        NodeStatus.SKIPPED,
    }),
}


class RunStatus(str, Enum):
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def finished(self) -> bool:
        return self not in (RunStatus.RUNNING, RunStatus.AWAITING_APPROVAL)


@dataclass(frozen=True)
class NodeError:
    """Why a node failed.

    ``kind`` is ``agent_error`` for failures raised by the agent or
    ``checkpoint_rejected`` when a reviewer turned the output down.
    """

    kind: str
    message: str
    error_type: str = ""
    failure_class: Optional[str] = None
    attempts: int = 0

    @classmethod
    def from_exception(cls, error: BaseException, attempts: int = 0) -> "NodeError":
        failure_class = None
        if isinstance(error, AgentError):
            failure_class = error.failure_class.value
        return cls(
            kind="agent_error",
            message=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            failure_class=failure_class,
            attempts=attempts,
        )

    @classmethod
    def rejected(cls, feedback: Optional[str] = None, attempts: int = 0) -> "NodeError":
        return cls(
            kind="checkpoint_rejected",
            message=feedback or "Rejected at checkpoint",
            error_type="CheckpointRejected",
            attempts=attempts,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "error_type": self.error_type,
            "failure_class": self.failure_class,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeError":
        return cls(
            kind=data.get("kind", "agent_error"),
            message=data.get("message", ""),
            error_type=data.get("error_type", ""),
            failure_class=data.get("failure_class"),
            attempts=int(data.get("attempts", 0)),
        )


class RunContext:
    """State of one workflow execution."""

    def __init__(
        self,
        workflow_id: str,
        node_ids: Iterable[str],
        run_id: Optional[str] = None,
        initial_inputs: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.workflow_id = workflow_id
        self.run_id = run_id or f"{workflow_id}-{uuid.uuid4().hex[:12]}"
        self.initial_inputs: dict[str, Any] = dict(initial_inputs or {})
        self.status = RunStatus.RUNNING
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.node_statuses: dict[str, NodeStatus] = {nid: NodeStatus.PENDING for nid in node_ids}
        self.results: dict[str, AgentResult] = {}
        self.errors: dict[str, NodeError] = {}
        self.skip_reasons: dict[str, str] = {}
        self.attempts: dict[str, int] = {}
        self.timings: dict[str, dict[str, float]] = {}
        self.completion_order: list[str] = []
        self.total_cost_usd = 0.0
        self.tokens = TokenUsage()
        self.pending_checkpoints: list[str] = []
        self.cancelled = False
        self.aborted_by: Optional[str] = None
        self.lock = threading.RLock()

    @classmethod
    def fresh(
        cls,
        definition: "WorkflowDefinition",
        run_id: Optional[str] = None,
        initial_inputs: Optional[Mapping[str, Any]] = None,
    ) -> "RunContext":
        return cls(definition.id, list(definition.nodes), run_id, initial_inputs)

    # -- Node state -----------------------------------------------------------

    def status_of(self, node_id: str) -> NodeStatus:
        return self.node_statuses[node_id]

    def transition(
        self,
        node_id: str,
        new_status: NodeStatus,
        expected: Optional[NodeStatus] = None,
    ) -> bool:
        """Compare-and-set a node's status.

        Returns False (and changes nothing) when the current status differs
        from ``expected`` or the move is not allowed, which includes any
        move out of a terminal status.
        """
        with self.lock:
            current = self.node_statuses[node_id]
            if expected is not None and current is not expected:
                return False
            if new_status not in _ALLOWED.get(current, frozenset()):
                return False
            self.node_statuses[node_id] = new_status
            return True

    def mark_started(self, node_id: str) -> None:
        with self.lock:
            self.timings[node_id] = {"started": time.time()}

    def mark_finished(self, node_id: str) -> None:
        with self.lock:
            timing = self.timings.setdefault(node_id, {})
            timing["finished"] = time.time()
            if "started" in timing:
                timing["elapsed_ms"] = (timing["finished"] - timing["started"]) * 1000

    def record_completion(self, node_id: str, result: AgentResult) -> None:
        """Store a Completed node's result and add it to the running totals."""
        with self.lock:
            self.results[node_id] = result
            self.completion_order.append(node_id)
            self.total_cost_usd += result.metadata.cost_usd
            self.tokens = self.tokens + result.metadata.tokens

    def skip(self, node_id: str, reason: str) -> bool:
        with self.lock:
            if not self.transition(node_id, NodeStatus.SKIPPED):
                return False
            self.skip_reasons[node_id] = reason
            if node_id in self.pending_checkpoints:
                self.pending_checkpoints.remove(node_id)
            return True

    def fail(self, node_id: str, error: NodeError) -> bool:
        with self.lock:
            if not self.transition(node_id, NodeStatus.FAILED):
                return False
            self.errors[node_id] = error
            if node_id in self.pending_checkpoints:
                self.pending_checkpoints.remove(node_id)
            return True

    # -- Queries --------------------------------------------------------------

    def is_finished(self) -> bool:
        with self.lock:
            return all(s.terminal for s in self.node_statuses.values())

    def nodes_in(self, *statuses: NodeStatus) -> list[str]:
        with self.lock:
            return [nid for nid, s in self.node_statuses.items() if s in statuses]

    def completed_payloads(self) -> dict[str, dict[str, Any]]:
        with self.lock:
            return {
                nid: self.results[nid].payload
                for nid in self.completion_order
                if nid in self.results
            }

    def completed_results(self) -> dict[str, AgentResult]:
        """Completed results keyed by node id, in completion order."""
        with self.lock:
            return {nid: self.results[nid] for nid in self.completion_order if nid in self.results}

    def counts(self) -> dict[str, int]:
        with self.lock:
            counts: dict[str, int] = {}
            for status in self.node_statuses.values():
                counts[status.value] = counts.get(status.value, 0) + 1
            return counts

    # -- Restore --------------------------------------------------------------

    def prepare_restore(self) -> list[str]:
        """Reset a persisted context for continuation in this process.

        Nodes recorded as Ready or Running go back to Pending; their calls
        are repeated.  Returns the nodes still awaiting approval so their
        checkpoint events can be re-emitted.
        """
        with self.lock:
            for nid, status in self.node_statuses.items():
                if status in (NodeStatus.READY, NodeStatus.RUNNING):
                    self.node_statuses[nid] = NodeStatus.PENDING
                    self.timings.pop(nid, None)
                    if nid not in self.completion_order:
                        self.results.pop(nid, None)
            self.status = RunStatus.RUNNING
            self.end_time = None
            self.pending_checkpoints = [
                nid for nid, s in self.node_statuses.items()
                if s is NodeStatus.AWAITING_APPROVAL
            ]
            return list(self.pending_checkpoints)

    # -- Serialization --------------------------------------------------------

    def to_dict(self) -> dict:
        with self.lock:
            return {
                "workflow_id": self.workflow_id,
                "run_id": self.run_id,
                "status": self.status.value,
                "initial_inputs": dict(self.initial_inputs),
                "start_time": self.start_time,
                "end_time": self.end_time,
                "node_statuses": {nid: s.value for nid, s in self.node_statuses.items()},
                "results": {nid: r.to_dict() for nid, r in self.results.items()},
                "errors": {nid: e.to_dict() for nid, e in self.errors.items()},
                "skip_reasons": dict(self.skip_reasons),
                "attempts": dict(self.attempts),
                "timings": {nid: dict(t) for nid, t in self.timings.items()},
                "completion_order": list(self.completion_order),
                "total_cost_usd": self.total_cost_usd,
                "tokens": self.tokens.to_dict(),
                "pending_checkpoints": list(self.pending_checkpoints),
                "cancelled": self.cancelled,
                "aborted_by": self.aborted_by,
            }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RunContext":
        ctx = cls(
            workflow_id=data["workflow_id"],
            node_ids=list(data.get("node_statuses", {})),
            run_id=data.get("run_id"),
            initial_inputs=data.get("initial_inputs"),
        )
        ctx.status = RunStatus(data.get("status", RunStatus.RUNNING.value))
        ctx.start_time = data.get("start_time")
        ctx.end_time = data.get("end_time")
        ctx.node_statuses = {
            nid: NodeStatus(s) for nid, s in data.get("node_statuses", {}).items()
        }
        ctx.results = {
            nid: AgentResult.from_dict(r) for nid, r in data.get("results", {}).items()
        }
        ctx.errors = {nid: NodeError.from_dict(e) for nid, e in data.get("errors", {}).items()}
        ctx.skip_reasons = dict(data.get("skip_reasons", {}))
        ctx.attempts = {nid: int(n) for nid, n in data.get("attempts", {}).items()}
        ctx.timings = {nid: dict(t) for nid, t in data.get("timings", {}).items()}
        ctx.completion_order = list(data.get("completion_order", []))
        ctx.total_cost_usd = float(data.get("total_cost_usd", 0.0))
        ctx.tokens = TokenUsage.from_dict(data.get("tokens") or {})
        ctx.pending_checkpoints = list(data.get("pending_checkpoints", []))
        ctx.cancelled = bool(data.get("cancelled", False))
        ctx.aborted_by = data.get("aborted_by")
        return ctx

    def __repr__(self) -> str:
        return f"RunContext(run_id={self.run_id!r}, status={self.status.value}, nodes={self.counts()})"
