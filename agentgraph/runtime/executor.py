"""Dependency-aware workflow executor.

Each run owns one scheduling-loop thread and a thread pool for node work.
Workers never touch the ``RunContext``; they post messages to the loop's
inbox and the loop applies them, so every state change for a run happens
on a single thread.  ``RunHandle.resume`` and ``RunHandle.cancel`` post
messages too.
"""

import itertools
import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from ..agents.contract import AgentContract, AgentResult, RunOptions
from ..agents.registry import AgentRegistry
from ..errors import (
    AgentTimeout,
    BudgetExceeded,
    CheckpointNotPending,
    RunCancelled,
    ValidationError,
)
from ..retry import RetryPolicy, is_transient, with_retry
from ..usage import TokenUsage
from ..workflow.definition import AgentNode, WorkflowDefinition
from ..workflow.paths import resolve_inputs
from .context import NodeError, NodeStatus, RunContext, RunStatus
from .merge import merge_results

_log = logging.getLogger(__name__)

# Contribution of an agent whose estimate_cost raised.
FALLBACK_ESTIMATE_USD = 0.01


class EventType(str, Enum):
    RUN_STARTED = "run_started"
    NODE_STARTED = "node_started"
    NODE_RETRYING = "node_retrying"
    NODE_COMPLETED = "node_completed"
    NODE_FAILED = "node_failed"
    NODE_SKIPPED = "node_skipped"
    CHECKPOINT_PENDING = "checkpoint_pending"
    CHECKPOINT_APPROVED = "checkpoint_approved"
    CHECKPOINT_REJECTED = "checkpoint_rejected"
    RUN_FINISHED = "run_finished"


class Verdict(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class RunEvent:
    type: EventType
    run_id: str
    node_id: Optional[str] = None
    data: Mapping[str, Any] = field(default_factory=dict)


EventListener = Callable[[RunEvent], None]


@dataclass(frozen=True)
class Diagnostics:
    """Trail of what happened to every node in a run."""

    status: RunStatus
    node_statuses: dict[str, str]
    errors: dict[str, NodeError]
    skip_reasons: dict[str, str]
    attempts: dict[str, int]
    timings: dict[str, dict[str, float]]
    completion_order: list[str]
    total_cost_usd: float
    tokens: TokenUsage
    elapsed_ms: float

    @classmethod
    def from_context(cls, ctx: RunContext) -> "Diagnostics":
        with ctx.lock:
            elapsed = 0.0
            if ctx.start_time is not None:
                elapsed = ((ctx.end_time or time.time()) - ctx.start_time) * 1000
            return cls(
                status=ctx.status,
                node_statuses={nid: s.value for nid, s in ctx.node_statuses.items()},
                errors=dict(ctx.errors),
                skip_reasons=dict(ctx.skip_reasons),
                attempts=dict(ctx.attempts),
                timings={nid: dict(t) for nid, t in ctx.timings.items()},
                completion_order=list(ctx.completion_order),
                total_cost_usd=ctx.total_cost_usd,
                tokens=ctx.tokens,
                elapsed_ms=elapsed,
            )

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "node_statuses": dict(self.node_statuses),
            "errors": {nid: e.to_dict() for nid, e in self.errors.items()},
            "skip_reasons": dict(self.skip_reasons),
            "attempts": dict(self.attempts),
            "timings": {nid: dict(t) for nid, t in self.timings.items()},
            "completion_order": list(self.completion_order),
            "total_cost_usd": self.total_cost_usd,
            "tokens": self.tokens.to_dict(),
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass(frozen=True)
class RunOutcome:
    run_id: str
    workflow_id: str
    status: RunStatus
    merged_result: dict[str, Any]
    results: dict[str, AgentResult]
    diagnostics: Diagnostics

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "merged_result": self.merged_result,
            "results": {nid: r.to_dict() for nid, r in self.results.items()},
            "diagnostics": self.diagnostics.to_dict(),
        }


def call_with_timeout(fn: Callable[[], Any], timeout: float, label: str = "call") -> Any:
    """Run ``fn`` on a helper thread and give up after ``timeout`` seconds.

    The helper is abandoned on expiry; its eventual result is dropped.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="agentgraph-call")
    try:
        future = pool.submit(fn)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            raise AgentTimeout(f"{label} timed out after {timeout:g}s") from None
    finally:
        pool.shutdown(wait=False)


# Inbox messages: (kind, node_id, payload...)
_DONE = "done"
_FAILED = "failed"
_RETRYING = "retrying"
_RESUME = "resume"
_CHECKPOINT_TIMEOUT = "checkpoint_timeout"
_CANCEL = "cancel"


class _RunLoop:
    """Scheduling loop for one run.  Only this thread writes ``ctx``."""

    def __init__(
        self,
        executor: "Executor",
        definition: WorkflowDefinition,
        ctx: RunContext,
        options: RunOptions,
        listeners: list[EventListener],
        restored: bool,
    ) -> None:
        self.executor = executor
        self.definition = definition
        self.ctx = ctx
        self.options = options
        self.listeners = listeners
        self.restored = restored
        self.future: Future = Future()
        self.inbox: queue.Queue = queue.Queue()
        self.cancel_event = threading.Event()
        self._tokens: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._timers: dict[str, threading.Timer] = {}
        self._resuming: set[str] = set()
        self._pool = ThreadPoolExecutor(
            max_workers=executor.max_concurrency or max(1, len(definition)),
            thread_name_prefix=f"agentgraph-{ctx.run_id}",
        )
        self.thread = threading.Thread(
            target=self._main, name=f"agentgraph-loop-{ctx.run_id}", daemon=True
        )

    # -- Thread entry ---------------------------------------------------------

    def start(self) -> None:
        self.thread.start()

    def _main(self) -> None:
        try:
            self._begin()
            self._schedule()
            while not self.ctx.is_finished():
                self._refresh_status()
                message = self.inbox.get()
                self._handle(message)
                self._schedule()
            outcome = self._finish()
        except Exception as e:
            _log.exception("run %s: scheduling loop crashed", self.ctx.run_id)
            self._shutdown()
            self.executor._forget(self.ctx.run_id)
            self.future.set_exception(e)
        else:
            self.future.set_result(outcome)

    def _begin(self) -> None:
        ctx = self.ctx
        with ctx.lock:
            if ctx.start_time is None:
                ctx.start_time = time.time()
            if self.restored:
                ctx.prepare_restore()
        _log.info(
            "run %s started: workflow=%s nodes=%d%s",
            ctx.run_id,
            self.definition.id,
            len(self.definition),
            " (restored)" if self.restored else "",
        )
        self._emit(EventType.RUN_STARTED, None, workflow_id=self.definition.id, restored=self.restored)
        if not self.restored:
            return
        if ctx.cancelled:
            self._skip_remaining("run cancelled")
            return
        critical = self._failed_critical_node()
        if critical is not None:
            self._abort(critical)
            return
        for node_id in list(ctx.pending_checkpoints):
            self._announce_checkpoint(node_id)

    # -- Messages -------------------------------------------------------------

    def _handle(self, message: tuple) -> None:
        kind = message[0]
        if kind == _DONE:
            _, node_id, token, result, attempts = message
            if self._current(node_id, token):
                self._on_success(node_id, result, attempts)
        elif kind == _FAILED:
            _, node_id, token, error, attempts = message
            if self._current(node_id, token):
                self._on_failure(node_id, error, attempts)
        elif kind == _RETRYING:
            _, node_id, token, attempt, error, delay = message
            if self._current(node_id, token):
                with self.ctx.lock:
                    self.ctx.attempts[node_id] = attempt + 1
                _log.info(
                    "run %s: node %s attempt %d failed (%s); retrying in %.2fs",
                    self.ctx.run_id, node_id, attempt, error, delay,
                )
                self._emit(
                    EventType.NODE_RETRYING, node_id,
                    attempt=attempt, delay=delay, error=str(error),
                )
        elif kind == _RESUME:
            _, node_id, verdict, feedback = message
            self._resuming.discard(node_id)
            self._on_verdict(node_id, verdict, feedback)
        elif kind == _CHECKPOINT_TIMEOUT:
            _, node_id, timeout = message
            if self.ctx.status_of(node_id) is NodeStatus.AWAITING_APPROVAL:
                _log.warning("run %s: checkpoint %s timed out", self.ctx.run_id, node_id)
                self._on_verdict(
                    node_id, Verdict.REJECT, f"Checkpoint timed out after {timeout:g}s"
                )
        elif kind == _CANCEL:
            self._on_cancel()

    def _current(self, node_id: str, token: int) -> bool:
        """True when a worker message belongs to the node's live dispatch."""
        if self._tokens.get(node_id) != token:
            return False
        if self.ctx.status_of(node_id) is not NodeStatus.RUNNING:
            _log.debug("run %s: discarding late result for %s", self.ctx.run_id, node_id)
            return False
        return True

    def _on_success(self, node_id: str, result: AgentResult, attempts: int) -> None:
        ctx = self.ctx
        node = self.definition.get(node_id)
        with ctx.lock:
            ctx.attempts[node_id] = attempts
            ctx.mark_finished(node_id)
            if node.checkpoint:
                ctx.transition(node_id, NodeStatus.AWAITING_APPROVAL, NodeStatus.RUNNING)
                ctx.results[node_id] = result
                ctx.pending_checkpoints.append(node_id)
        if node.checkpoint:
            self._announce_checkpoint(node_id)
        else:
            self._complete(node_id, result)

    def _complete(self, node_id: str, result: AgentResult) -> None:
        ctx = self.ctx
        with ctx.lock:
            if not ctx.transition(node_id, NodeStatus.COMPLETED):
                return
            if node_id in ctx.pending_checkpoints:
                ctx.pending_checkpoints.remove(node_id)
            ctx.record_completion(node_id, result)
        self._emit(
            EventType.NODE_COMPLETED, node_id,
            cost_usd=result.metadata.cost_usd,
            tokens=result.metadata.tokens.to_dict(),
        )

    def _on_failure(self, node_id: str, error: BaseException, attempts: int) -> None:
        ctx = self.ctx
        node_error = NodeError.from_exception(error, attempts)
        with ctx.lock:
            ctx.attempts[node_id] = attempts
            ctx.mark_finished(node_id)
            ctx.fail(node_id, node_error)
        _log.warning(
            "run %s: node %s failed after %d attempt(s): %s: %s",
            ctx.run_id, node_id, attempts, node_error.error_type, node_error.message,
        )
        self._emit(EventType.NODE_FAILED, node_id, error=node_error.to_dict())
        if self.definition.get(node_id).critical:
            self._abort(node_id)

    def _announce_checkpoint(self, node_id: str) -> None:
        result = self.ctx.results.get(node_id)
        self._emit(
            EventType.CHECKPOINT_PENDING, node_id,
            agent_type=self.definition.get(node_id).agent_type,
            payload=result.payload if result else {},
        )
        timeout = self.executor.checkpoint_timeout
        if timeout is not None:
            timer = threading.Timer(
                timeout, self.inbox.put, args=((_CHECKPOINT_TIMEOUT, node_id, timeout),)
            )
            timer.daemon = True
            self._timers[node_id] = timer
            timer.start()

    def _on_verdict(self, node_id: str, verdict: Verdict, feedback: Optional[str]) -> None:
        ctx = self.ctx
        if ctx.status_of(node_id) is not NodeStatus.AWAITING_APPROVAL:
            _log.debug("run %s: ignoring verdict for %s", ctx.run_id, node_id)
            return
        timer = self._timers.pop(node_id, None)
        if timer is not None:
            timer.cancel()
        if verdict is Verdict.APPROVE:
            result = ctx.results[node_id]
            self._complete(node_id, result)
            self._emit(EventType.CHECKPOINT_APPROVED, node_id, feedback=feedback)
            return
        with ctx.lock:
            ctx.fail(node_id, NodeError.rejected(feedback, ctx.attempts.get(node_id, 0)))
        _log.info("run %s: checkpoint %s rejected", ctx.run_id, node_id)
        self._emit(EventType.CHECKPOINT_REJECTED, node_id, feedback=feedback)
        if self.definition.get(node_id).critical:
            self._abort(node_id)

    def _abort(self, node_id: str) -> None:
        with self.ctx.lock:
            self.ctx.aborted_by = node_id
        _log.error(
            "run %s: critical node %s failed; aborting workflow %s",
            self.ctx.run_id, node_id, self.definition.id,
        )
        self._skip_remaining(f"run aborted: critical node '{node_id}' failed")

    def _on_cancel(self) -> None:
        with self.ctx.lock:
            if self.ctx.cancelled:
                return
            self.ctx.cancelled = True
        _log.info("run %s: cancelled", self.ctx.run_id)
        self._skip_remaining("run cancelled")

    def _skip_remaining(self, reason: str) -> None:
        self.cancel_event.set()
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for node_id in self.ctx.nodes_in(
            NodeStatus.PENDING, NodeStatus.READY, NodeStatus.RUNNING, NodeStatus.AWAITING_APPROVAL
        ):
            self._skip(node_id, reason)

    def _skip(self, node_id: str, reason: str) -> None:
        if self.ctx.skip(node_id, reason):
            self._emit(EventType.NODE_SKIPPED, node_id, reason=reason)

    # -- Scheduling -----------------------------------------------------------

    def _schedule(self) -> None:
        """Skip nodes behind a failure and dispatch every Ready node."""
        if self.cancel_event.is_set():
            return
        ctx = self.ctx
        ready: list[AgentNode] = []
        # Insertion order is a topological order, so one pass settles skips.
        for node in self.definition:
            if ctx.status_of(node.id) is not NodeStatus.PENDING:
                continue
            blocked = None
            waiting = False
            for dep in node.depends_on:
                status = ctx.status_of(dep)
                if status in (NodeStatus.FAILED, NodeStatus.SKIPPED):
                    blocked = (dep, status)
                    break
                if status is not NodeStatus.COMPLETED:
                    waiting = True
            if blocked is not None:
                dep, status = blocked
                self._skip(node.id, f"dependency '{dep}' {status.value}")
            elif not waiting:
                ctx.transition(node.id, NodeStatus.READY, NodeStatus.PENDING)
                ready.append(node)
        for node in ready:
            self._dispatch(node)

    def _dispatch(self, node: AgentNode) -> None:
        ctx = self.ctx
        inputs = resolve_inputs(
            node.static_inputs, node.input_map, ctx.completed_payloads(), ctx.initial_inputs
        )
        options = self.options.merged(node.options)
        if options.trace_id is None:
            options = options.merged({"trace_id": f"{ctx.run_id}:{node.id}"})
        token = next(self._counter)
        self._tokens[node.id] = token
        with ctx.lock:
            ctx.transition(node.id, NodeStatus.RUNNING, NodeStatus.READY)
            ctx.attempts[node.id] = 1
            ctx.mark_started(node.id)
        self._emit(EventType.NODE_STARTED, node.id, agent_type=node.agent_type)

        if self.executor.dry_run:
            payload = {"_dry_run": True, "node_id": node.id, "inputs": inputs}
            self.inbox.put((_DONE, node.id, token, AgentResult(payload=payload), 1))
            return
        try:
            contract = self.definition.registry.lookup(node.agent_type)
        except ValidationError as e:
            self.inbox.put((_FAILED, node.id, token, e, 0))
            return
        self._pool.submit(self._work, node, contract, inputs, options, token)

    def _work(
        self,
        node: AgentNode,
        contract: AgentContract,
        inputs: dict[str, Any],
        options: RunOptions,
        token: int,
    ) -> None:
        """Worker thread body: run the agent with retries and report back."""
        timeout = options.timeout or self.executor.node_timeout
        attempts = 0

        def attempt() -> AgentResult:
            nonlocal attempts
            if self.cancel_event.is_set():
                raise RunCancelled("run cancelled")
            attempts += 1
            if timeout:
                raw = call_with_timeout(
                    lambda: contract.run(inputs, options), timeout, f"node '{node.id}'"
                )
            else:
                raw = contract.run(inputs, options)
            return AgentResult.coerce(raw, node.agent_type)

        def should_retry(error: BaseException) -> bool:
            return is_transient(error) and not self.cancel_event.is_set()

        def on_retry(n: int, error: BaseException, delay: float) -> None:
            self.inbox.put((_RETRYING, node.id, token, n, error, delay))

        try:
            result = with_retry(
                self.executor.retry_policy,
                attempt,
                should_retry=should_retry,
                sleep=self.executor.sleep,
                on_retry=on_retry,
            )
        except Exception as e:
            self.inbox.put((_FAILED, node.id, token, e, attempts))
        else:
            self.inbox.put((_DONE, node.id, token, result, attempts))

    # -- Completion -----------------------------------------------------------

    def _refresh_status(self) -> None:
        ctx = self.ctx
        with ctx.lock:
            # Runs after _schedule, so a Pending node here is blocked behind a checkpoint.
            active = ctx.nodes_in(NodeStatus.READY, NodeStatus.RUNNING)
            if ctx.pending_checkpoints and not active:
                ctx.status = RunStatus.AWAITING_APPROVAL
            else:
                ctx.status = RunStatus.RUNNING

    def _failed_critical_node(self) -> Optional[str]:
        for node_id in self.ctx.nodes_in(NodeStatus.FAILED):
            if self.definition.get(node_id).critical:
                return node_id
        return None

    def _final_status(self) -> RunStatus:
        if self.ctx.cancelled:
            return RunStatus.CANCELLED
        if self._failed_critical_node() is not None:
            return RunStatus.FAILED
        if all(s is NodeStatus.COMPLETED for s in self.ctx.node_statuses.values()):
            return RunStatus.COMPLETED
        return RunStatus.PARTIALLY_FAILED

    def _finish(self) -> RunOutcome:
        ctx = self.ctx
        with ctx.lock:
            ctx.status = self._final_status()
            ctx.end_time = time.time()
            results = ctx.completed_results()
        self._shutdown()
        merged = merge_results(results, include_metadata=self.executor.include_metadata)
        diagnostics = Diagnostics.from_context(ctx)
        _log.info(
            "run %s finished: status=%s cost=$%.4f tokens=%d",
            ctx.run_id, ctx.status.value, ctx.total_cost_usd, ctx.tokens.total,
        )
        self.executor._forget(ctx.run_id)
        self._emit(EventType.RUN_FINISHED, None, status=ctx.status.value)
        return RunOutcome(
            run_id=ctx.run_id,
            workflow_id=ctx.workflow_id,
            status=ctx.status,
            merged_result=merged,
            results=results,
            diagnostics=diagnostics,
        )

    def _shutdown(self) -> None:
        self.cancel_event.set()
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pool.shutdown(wait=False, cancel_futures=True)

    def _emit(self, event_type: EventType, node_id: Optional[str], **data: Any) -> None:
        event = RunEvent(event_type, self.ctx.run_id, node_id, data)
        for listener in self.listeners:
            try:
                listener(event)
            except Exception:
                _log.exception("run %s: event listener failed on %s", self.ctx.run_id, event_type.value)

    # -- Handle requests (any thread) -----------------------------------------

    def request_resume(self, node_id: str, verdict: Verdict, feedback: Optional[str]) -> None:
        with self.ctx.lock:
            status = self.ctx.node_statuses.get(node_id)
            if status is not NodeStatus.AWAITING_APPROVAL or node_id in self._resuming:
                raise CheckpointNotPending(node_id, status.value if status else "unknown")
            self._resuming.add(node_id)
        self.inbox.put((_RESUME, node_id, verdict, feedback))

    def request_cancel(self) -> None:
        self.cancel_event.set()
        self.inbox.put((_CANCEL,))


class RunHandle:
    """Caller's view of a run in progress."""

    def __init__(self, loop: _RunLoop) -> None:
        self._loop = loop

    @property
    def run_id(self) -> str:
        return self._loop.ctx.run_id

    @property
    def workflow_id(self) -> str:
        return self._loop.ctx.workflow_id

    @property
    def status(self) -> RunStatus:
        with self._loop.ctx.lock:
            return self._loop.ctx.status

    @property
    def future(self) -> Future:
        return self._loop.future

    def node_statuses(self) -> dict[str, NodeStatus]:
        with self._loop.ctx.lock:
            return dict(self._loop.ctx.node_statuses)

    def pending_checkpoints(self) -> list[dict[str, Any]]:
        """Nodes awaiting approval with the output under review."""
        ctx = self._loop.ctx
        definition = self._loop.definition
        with ctx.lock:
            pending = []
            for node_id in ctx.pending_checkpoints:
                result = ctx.results.get(node_id)
                pending.append({
                    "node_id": node_id,
                    "agent_type": definition.get(node_id).agent_type,
                    "payload": result.payload if result else {},
                })
            return pending

    def resume(
        self,
        node_id: str,
        verdict: Union[Verdict, str],
        feedback: Optional[str] = None,
    ) -> None:
        """Approve or reject a node awaiting approval.

        Raises:
            CheckpointNotPending: the node is not awaiting approval, or a
                verdict for it has already been submitted.
        """
        self._loop.request_resume(node_id, Verdict(verdict), feedback)

    def cancel(self) -> None:
        """Stop dispatching and skip every node that has not finished."""
        if not self.done():
            self._loop.request_cancel()

    def done(self) -> bool:
        return self._loop.future.done()

    def result(self, timeout: Optional[float] = None) -> RunOutcome:
        return self._loop.future.result(timeout=timeout)

    def snapshot(self) -> dict:
        """Serializable copy of the run's context."""
        return self._loop.ctx.to_dict()

    def __repr__(self) -> str:
        return f"RunHandle(run_id={self.run_id!r}, status={self.status.value})"


VerdictCallback = Callable[[RunEvent], Union[Verdict, str, tuple]]


class Executor:
    """Runs workflow definitions against a registry.

    One executor can drive many runs at once; every run gets its own
    ``RunContext``, scheduling thread and worker pool.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        max_concurrency: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        node_timeout: Optional[float] = None,
        checkpoint_timeout: Optional[float] = None,
        max_cost_usd: Optional[float] = None,
        dry_run: bool = False,
        include_metadata: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        on_event: Optional[EventListener] = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.registry = registry
        self.max_concurrency = max_concurrency
        self.retry_policy = retry_policy or RetryPolicy()
        self.node_timeout = node_timeout
        self.checkpoint_timeout = checkpoint_timeout
        self.max_cost_usd = max_cost_usd
        self.dry_run = dry_run
        self.include_metadata = include_metadata
        self.sleep = sleep
        self.on_event = on_event
        self._runs: dict[str, RunHandle] = {}
        self._runs_lock = threading.Lock()

    def estimate_costs(
        self,
        definition: WorkflowDefinition,
        initial_inputs: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, float]:
        """Per-node ``estimate_cost`` on each node's pre-run inputs.

        Inputs that come from other nodes are unknown before the run, so
        only initial and static inputs are passed.
        """
        estimates: dict[str, float] = {}
        for node in definition:
            contract = definition.registry.lookup(node.agent_type)
            inputs = resolve_inputs(node.static_inputs, {}, {}, initial_inputs)
            try:
                estimates[node.id] = float(contract.estimate_cost(inputs))
            except Exception as e:
                _log.warning(
                    "cost estimate failed for node %s (%s); assuming $%.2f",
                    node.id, e, FALLBACK_ESTIMATE_USD,
                )
                estimates[node.id] = FALLBACK_ESTIMATE_USD
        return estimates

    def estimate_cost(
        self,
        definition: WorkflowDefinition,
        initial_inputs: Optional[Mapping[str, Any]] = None,
    ) -> float:
        return sum(self.estimate_costs(definition, initial_inputs).values())

    def run(
        self,
        definition: WorkflowDefinition,
        initial_inputs: Optional[Mapping[str, Any]] = None,
        *,
        options: Union[RunOptions, Mapping[str, Any], None] = None,
        context: Optional[RunContext] = None,
        on_event: Optional[EventListener] = None,
    ) -> RunHandle:
        """Start executing ``definition`` and return immediately.

        Pass a ``context`` restored with ``RunContext.from_dict`` to continue
        a persisted run; completed nodes are not repeated.

        Raises:
            BudgetExceeded: ``max_cost_usd`` is set and the estimate is over it.
            ValidationError: ``context`` does not belong to ``definition``.
        """
        if context is not None:
            if context.workflow_id != definition.id or set(context.node_statuses) != set(definition.nodes):
                raise ValidationError(
                    f"Run context {context.run_id!r} does not match workflow '{definition.id}'",
                    run_id=context.run_id,
                    workflow_id=definition.id,
                )
            if initial_inputs is not None:
                context.initial_inputs = dict(initial_inputs)
            ctx = context
        else:
            ctx = RunContext.fresh(definition, initial_inputs=initial_inputs)

        if self.max_cost_usd is not None and not self.dry_run:
            estimated = self.estimate_cost(definition, ctx.initial_inputs)
            if estimated > self.max_cost_usd:
                raise BudgetExceeded(estimated, self.max_cost_usd)

        if not isinstance(options, RunOptions):
            options = RunOptions().merged(options)
        definition.freeze()

        listeners = [cb for cb in (self.on_event, on_event) if cb is not None]
        loop = _RunLoop(self, definition, ctx, options, listeners, restored=context is not None)
        handle = RunHandle(loop)
        with self._runs_lock:
            self._runs[ctx.run_id] = handle
        loop.start()
        return handle

    def execute(
        self,
        definition: WorkflowDefinition,
        initial_inputs: Optional[Mapping[str, Any]] = None,
        *,
        verdict: Optional[VerdictCallback] = None,
        options: Union[RunOptions, Mapping[str, Any], None] = None,
        context: Optional[RunContext] = None,
        on_event: Optional[EventListener] = None,
        timeout: Optional[float] = None,
    ) -> RunOutcome:
        """Run to completion on the calling thread's behalf.

        ``verdict(event)`` is called on this thread for each pending
        checkpoint and returns a ``Verdict`` (or ``(verdict, feedback)``);
        without a callback every checkpoint is approved.  When ``timeout``
        elapses the run is cancelled and its outcome returned.
        """
        checkpoints: queue.Queue = queue.Queue()

        def listen(event: RunEvent) -> None:
            if event.type is EventType.CHECKPOINT_PENDING:
                checkpoints.put(event)
            if on_event is not None:
                on_event(event)

        handle = self.run(
            definition, initial_inputs, options=options, context=context, on_event=listen
        )
        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            while not handle.done():
                if deadline is not None and time.monotonic() >= deadline:
                    _log.warning("run %s: timed out after %gs; cancelling", handle.run_id, timeout)
                    handle.cancel()
                    break
                try:
                    event = checkpoints.get(timeout=0.05)
                except queue.Empty:
                    continue
                decision = verdict(event) if verdict is not None else Verdict.APPROVE
                feedback = None
                if isinstance(decision, tuple):
                    decision, feedback = decision
                try:
                    handle.resume(event.node_id, decision, feedback)
                except CheckpointNotPending:
                    _log.debug("run %s: checkpoint %s already settled", handle.run_id, event.node_id)
        except BaseException:
            handle.cancel()
            raise
        return handle.result()

    def active_runs(self) -> list[RunHandle]:
        with self._runs_lock:
            return list(self._runs.values())

    def _forget(self, run_id: str) -> None:
        with self._runs_lock:
            self._runs.pop(run_id, None)
