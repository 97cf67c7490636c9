"""Tests for the workflow executor: scheduling, failures, retries and budgets."""

import threading

import pytest

from conftest import echo_agent, wait_until

from agentgraph.agents.contract import AgentResult, FunctionAgent, ResultMetadata
from agentgraph.errors import (
    AgentTimeout,
    BudgetExceeded,
    PermanentAgentError,
    UpstreamUnavailable,
    ValidationError,
    WorkflowFrozen,
)
from agentgraph.retry import RetryPolicy
from agentgraph.runtime import Executor, NodeStatus, RunContext, RunStatus
from agentgraph.runtime.executor import FALLBACK_ESTIMATE_USD, call_with_timeout
from agentgraph.workflow import WorkflowDefinition

FAST_RETRY = RetryPolicy(max_attempts=3, base_delay=0.5, jitter=0)


def _executor(registry, sleep, **kwargs):
    kwargs.setdefault("retry_policy", FAST_RETRY)
    return Executor(registry, sleep=sleep, **kwargs)


def _workflow(registry, wid="wf"):
    return WorkflowDefinition(wid, wid.title(), registry)


class Flaky:
    """Raise the scripted errors first, then return ``payload``."""

    def __init__(self, errors, payload=None):
        self.errors = list(errors)
        self.payload = payload or {"ok": True}
        self.calls = 0

    def __call__(self, inputs, options):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.payload


class TestHappyPath:
    def test_linear_pipeline_passes_outputs(self, registry, sleep):
        registry.register("research", FunctionAgent("research", lambda i, o: {"summary": f"about {i['topic']}"}))
        registry.register("writer", FunctionAgent("writer", lambda i, o: {"draft": i["notes"].upper()}))
        wf = _workflow(registry)
        wf.add_agent("research", type="research", inputs={"topic": "tea"})
        wf.add_agent("write", type="writer", depends_on=["research"], input_map={"notes": "research.summary"})

        outcome = _executor(registry, sleep).execute(wf)

        assert outcome.ok
        assert outcome.status is RunStatus.COMPLETED
        assert outcome.merged_result == {"summary": "about tea", "draft": "ABOUT TEA"}
        assert outcome.diagnostics.completion_order == ["research", "write"]
        assert outcome.diagnostics.attempts == {"research": 1, "write": 1}
        assert set(outcome.diagnostics.timings) == {"research", "write"}

    def test_input_precedence(self, registry, sleep):
        registry.register("a", echo_agent("a"))
        registry.register("b", echo_agent("b"))
        wf = _workflow(registry)
        wf.add_agent("a", type="a", inputs={"summary": "from a"})
        wf.add_agent(
            "b",
            type="b",
            depends_on=["a"],
            inputs={"tone": "formal", "data": "default", "kept": "static"},
            input_map={"data": "a.summary", "kept": "a.missing"},
        )
        outcome = _executor(registry, sleep).execute(wf, {"tone": "casual", "businessId": "acme"})
        payload = outcome.results["b"].payload
        assert payload["tone"] == "formal"
        assert payload["data"] == "from a"
        assert payload["kept"] == "static"
        assert payload["businessId"] == "acme"

    def test_trace_id_and_node_options(self, registry, sleep):
        seen = {}

        def capture(inputs, options):
            seen["trace_id"] = options.trace_id
            seen["model"] = options.model
            seen["style"] = options.extra.get("style")
            return {}

        registry.register("a", FunctionAgent("a", capture))
        wf = _workflow(registry)
        wf.add_agent("node", type="a", options={"model": "gpt-4o-mini", "style": "terse"})
        outcome = _executor(registry, sleep).execute(wf)
        assert seen == {
            "trace_id": f"{outcome.run_id}:node",
            "model": "gpt-4o-mini",
            "style": "terse",
        }
        assert outcome.results["node"].metadata.trace_id == f"{outcome.run_id}:node"

    def test_costs_and_tokens_accumulate(self, registry, sleep):
        registry.register("a", echo_agent("a", cost=0.25))
        registry.register("b", echo_agent("b", cost=0.5))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        wf.add_agent("b", type="b", depends_on=["a"])
        outcome = _executor(registry, sleep).execute(wf)
        assert outcome.diagnostics.total_cost_usd == pytest.approx(0.75)

    def test_include_metadata(self, registry, sleep):
        registry.register("a", echo_agent("a", cost=0.1))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        outcome = _executor(registry, sleep, include_metadata=True).execute(wf)
        assert outcome.merged_result["_meta"]["a"]["cost_usd"] == 0.1

    def test_definition_frozen_after_start(self, registry, sleep):
        registry.register("a", echo_agent("a"))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        _executor(registry, sleep).execute(wf)
        with pytest.raises(WorkflowFrozen):
            wf.add_agent("b", type="a")

    def test_outcome_serializes(self, registry, sleep):
        registry.register("a", echo_agent("a"))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        data = _executor(registry, sleep).execute(wf).to_dict()
        assert data["status"] == "completed"
        assert data["diagnostics"]["node_statuses"] == {"a": "completed"}


class TestConcurrency:
    def test_independent_nodes_run_in_parallel(self, registry, sleep):
        barrier = threading.Barrier(2, timeout=5)

        def meet(inputs, options):
            barrier.wait()
            return {inputs["name"]: True}

        registry.register("root", echo_agent("root"))
        registry.register("meet", FunctionAgent("meet", meet))
        wf = _workflow(registry)
        wf.add_agent("root", type="root")
        wf.add_agent("left", type="meet", depends_on=["root"], inputs={"name": "left"})
        wf.add_agent("right", type="meet", depends_on=["root"], inputs={"name": "right"})

        outcome = _executor(registry, sleep).execute(wf, timeout=10)
        assert outcome.ok
        assert outcome.merged_result["left"] and outcome.merged_result["right"]

    def test_max_concurrency_is_respected(self, registry, sleep):
        lock = threading.Lock()
        active = [0]
        peak = [0]

        def work(inputs, options):
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            threading.Event().wait(0.02)
            with lock:
                active[0] -= 1
            return {}

        registry.register("w", FunctionAgent("w", work))
        wf = _workflow(registry)
        for n in range(4):
            wf.add_agent(f"n{n}", type="w")

        outcome = _executor(registry, sleep, max_concurrency=1).execute(wf)
        assert outcome.ok
        assert peak[0] == 1

    def test_invalid_max_concurrency(self, registry):
        with pytest.raises(ValueError):
            Executor(registry, max_concurrency=0)

    def test_concurrent_runs_are_isolated(self, registry, sleep):
        registry.register("a", echo_agent("a"))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        executor = _executor(registry, sleep)
        first = executor.run(wf, {"n": 1})
        second = executor.run(wf, {"n": 2})
        assert first.run_id != second.run_id
        assert first.result(5).results["a"].payload["n"] == 1
        assert second.result(5).results["a"].payload["n"] == 2
        wait_until(lambda: not executor.active_runs())


class TestFailures:
    def test_failure_skips_descendants_only(self, registry, sleep):
        registry.register("bad", FunctionAgent("bad", Flaky([PermanentAgentError("boom")])))
        registry.register("ok", echo_agent("ok"))
        wf = _workflow(registry)
        wf.add_agent("bad", type="bad")
        wf.add_agent("child", type="ok", depends_on=["bad"])
        wf.add_agent("grandchild", type="ok", depends_on=["child"])
        wf.add_agent("independent", type="ok")

        outcome = _executor(registry, sleep).execute(wf)
        d = outcome.diagnostics
        assert outcome.status is RunStatus.PARTIALLY_FAILED
        assert d.node_statuses == {
            "bad": "failed",
            "child": "skipped",
            "grandchild": "skipped",
            "independent": "completed",
        }
        assert d.skip_reasons == {
            "child": "dependency 'bad' failed",
            "grandchild": "dependency 'child' skipped",
        }
        assert d.errors["bad"].message == "boom"
        assert d.errors["bad"].attempts == 1
        assert sleep.delays == []

    def test_critical_failure_aborts_run(self, registry, sleep):
        registry.register("bad", FunctionAgent("bad", Flaky([PermanentAgentError("boom")])))
        registry.register("ok", echo_agent("ok"))
        wf = _workflow(registry)
        wf.add_agent("research", type="bad", critical=True)
        wf.add_agent("analysis", type="ok", depends_on=["research"])

        outcome = _executor(registry, sleep).execute(wf)
        assert outcome.status is RunStatus.FAILED
        assert outcome.diagnostics.skip_reasons == {
            "analysis": "run aborted: critical node 'research' failed",
        }

    def test_transient_errors_retried(self, registry, sleep, events):
        flaky = Flaky([UpstreamUnavailable("503"), UpstreamUnavailable("503")], {"done": 1})
        registry.register("flaky", FunctionAgent("flaky", flaky))
        wf = _workflow(registry)
        wf.add_agent("node", type="flaky")

        outcome = _executor(registry, sleep, on_event=events).execute(wf)
        assert outcome.ok
        assert flaky.calls == 3
        assert outcome.diagnostics.attempts == {"node": 3}
        assert sleep.delays == [0.5, 1.0]
        assert events.types("node").count("node_retrying") == 2

    def test_exhausted_retries(self, registry, sleep):
        flaky = Flaky([UpstreamUnavailable("503")] * 5)
        registry.register("flaky", FunctionAgent("flaky", flaky))
        wf = _workflow(registry)
        wf.add_agent("node", type="flaky")

        outcome = _executor(registry, sleep).execute(wf)
        error = outcome.diagnostics.errors["node"]
        assert error.error_type == "ExhaustedRetries"
        assert error.failure_class == "retries_exhausted"
        assert error.attempts == 3
        assert flaky.calls == 3

    def test_bad_return_type_fails_without_retry(self, registry, sleep):
        registry.register("weird", FunctionAgent("weird", lambda i, o: "text"))
        wf = _workflow(registry)
        wf.add_agent("node", type="weird")
        outcome = _executor(registry, sleep).execute(wf)
        assert outcome.diagnostics.errors["node"].error_type == "TypeError"
        assert sleep.delays == []

    def test_node_timeout_is_retried(self, registry, sleep):
        calls = []

        def slow_then_fast(inputs, options):
            calls.append(1)
            if len(calls) == 1:
                threading.Event().wait(1)
            return {"finished": True}

        registry.register("slow", FunctionAgent("slow", slow_then_fast))
        wf = _workflow(registry)
        wf.add_agent("node", type="slow")

        outcome = _executor(registry, sleep, node_timeout=0.1).execute(wf)
        assert outcome.ok
        assert outcome.diagnostics.attempts == {"node": 2}

    def test_listener_errors_do_not_break_run(self, registry, sleep):
        registry.register("a", echo_agent("a"))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")

        def explode(event):
            raise RuntimeError("listener bug")

        assert _executor(registry, sleep, on_event=explode).execute(wf).ok


class TestCallWithTimeout:
    def test_returns_value(self):
        assert call_with_timeout(lambda: 42, 1) == 42

    def test_raises_agent_timeout(self):
        with pytest.raises(AgentTimeout, match="slow call timed out after 0.05s"):
            call_with_timeout(lambda: threading.Event().wait(1), 0.05, "slow call")


class TestEvents:
    def test_event_sequence(self, registry, sleep, events):
        registry.register("a", echo_agent("a", cost=0.1))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        outcome = _executor(registry, sleep).execute(wf, on_event=events)
        assert events.types() == ["run_started", "node_started", "node_completed", "run_finished"]
        assert all(e.run_id == outcome.run_id for e in events.events)
        assert events.events[2].data["cost_usd"] == 0.1
        assert events.events[-1].data["status"] == "completed"

    def test_skip_events(self, registry, sleep, events):
        registry.register("bad", FunctionAgent("bad", Flaky([PermanentAgentError("x")])))
        registry.register("ok", echo_agent("ok"))
        wf = _workflow(registry)
        wf.add_agent("bad", type="bad")
        wf.add_agent("child", type="ok", depends_on=["bad"])
        _executor(registry, sleep, on_event=events).execute(wf)
        assert events.types("bad") == ["node_started", "node_failed"]
        assert events.types("child") == ["node_skipped"]


class TestDryRun:
    def test_no_agent_calls(self, registry, sleep):
        called = []
        registry.register("a", FunctionAgent("a", lambda i, o: called.append(1) or {}))
        wf = _workflow(registry)
        wf.add_agent("a", type="a", inputs={"topic": "tea"})
        wf.add_agent("b", type="a", depends_on=["a"], input_map={"upstream": "a.node_id"})

        outcome = _executor(registry, sleep, dry_run=True).execute(wf, {"businessId": "acme"})
        assert called == []
        assert outcome.ok
        assert outcome.results["a"].payload == {
            "_dry_run": True,
            "node_id": "a",
            "inputs": {"businessId": "acme", "topic": "tea"},
        }
        assert outcome.results["b"].payload["inputs"]["upstream"] == "a"

    def test_ignores_budget(self, registry, sleep):
        registry.register("a", FunctionAgent("a", lambda i, o: {}, estimate=lambda i: 5.0))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        assert _executor(registry, sleep, dry_run=True, max_cost_usd=1.0).execute(wf).ok


class TestBudget:
    def _expensive(self, registry):
        registry.register("a", FunctionAgent("a", lambda i, o: {}, estimate=lambda i: 0.6))
        wf = _workflow(registry)
        wf.add_agent("one", type="a")
        wf.add_agent("two", type="a")
        return wf

    def test_estimates(self, registry, sleep):
        wf = self._expensive(registry)
        executor = _executor(registry, sleep)
        assert executor.estimate_costs(wf) == {"one": 0.6, "two": 0.6}
        assert executor.estimate_cost(wf) == pytest.approx(1.2)

    def test_over_budget_refused(self, registry, sleep):
        wf = self._expensive(registry)
        with pytest.raises(BudgetExceeded) as excinfo:
            _executor(registry, sleep, max_cost_usd=1.0).run(wf)
        assert excinfo.value.estimated == pytest.approx(1.2)
        assert not wf.frozen

    def test_within_budget_runs(self, registry, sleep):
        wf = self._expensive(registry)
        assert _executor(registry, sleep, max_cost_usd=2.0).execute(wf).ok

    def test_failing_estimate_uses_fallback(self, registry, sleep):
        def broken(inputs):
            raise RuntimeError("no pricing")

        registry.register("a", FunctionAgent("a", lambda i, o: {}, estimate=broken))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        assert _executor(registry, sleep).estimate_cost(wf) == FALLBACK_ESTIMATE_USD


class TestCancel:
    def test_cancel_skips_unfinished_nodes(self, registry, sleep):
        started = threading.Event()
        release = threading.Event()

        def block(inputs, options):
            started.set()
            release.wait(5)
            return {}

        registry.register("block", FunctionAgent("block", block))
        registry.register("ok", echo_agent("ok"))
        wf = _workflow(registry)
        wf.add_agent("slow", type="block")
        wf.add_agent("after", type="ok", depends_on=["slow"])

        handle = _executor(registry, sleep).run(wf)
        assert started.wait(5)
        handle.cancel()
        outcome = handle.result(5)
        release.set()

        assert outcome.status is RunStatus.CANCELLED
        assert outcome.diagnostics.skip_reasons == {"slow": "run cancelled", "after": "run cancelled"}
        assert outcome.results == {}


class TestContextValidation:
    def test_mismatched_context_rejected(self, registry, sleep):
        registry.register("a", echo_agent("a"))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        with pytest.raises(ValidationError):
            _executor(registry, sleep).run(wf, context=RunContext("other", ["a"]))
        with pytest.raises(ValidationError):
            _executor(registry, sleep).run(wf, context=RunContext("wf", ["a", "b"]))

    def test_completed_nodes_not_repeated(self, registry, sleep):
        calls = []
        registry.register("a", FunctionAgent("a", lambda i, o: calls.append("a") or {"x": 1}))
        registry.register("b", FunctionAgent("b", lambda i, o: calls.append("b") or {"y": i["x"]}))
        wf = _workflow(registry)
        wf.add_agent("a", type="a")
        wf.add_agent("b", type="b", depends_on=["a"], input_map={"x": "a.x"})

        ctx = RunContext.fresh(wf, run_id="saved")
        ctx.transition("a", NodeStatus.READY)
        ctx.transition("a", NodeStatus.RUNNING)
        ctx.transition("a", NodeStatus.COMPLETED)
        ctx.record_completion("a", AgentResult(payload={"x": 7}, metadata=ResultMetadata(agent_name="a")))
        ctx.transition("b", NodeStatus.READY)
        ctx.transition("b", NodeStatus.RUNNING)

        outcome = _executor(registry, sleep).execute(wf, context=RunContext.from_dict(ctx.to_dict()))
        assert outcome.ok
        assert outcome.run_id == "saved"
        assert calls == ["b"]
        assert outcome.merged_result == {"x": 7, "y": 7}


class TestRestoreFinishedState:
    def test_critical_failure_survives_restore(self, registry, sleep):
        release = threading.Event()
        go = threading.Event()
        calls = []

        def fail(inputs, options):
            go.wait(5)
            raise PermanentAgentError("bad credentials")

        def slow(inputs, options):
            calls.append("other")
            release.wait(5)
            return {"other": True}

        registry.register("fail", FunctionAgent("fail", fail))
        registry.register("slow", FunctionAgent("slow", slow))
        wf = _workflow(registry)
        wf.add_agent("crit", type="fail", critical=True)
        wf.add_agent("other", type="slow")

        saved = []
        executor = _executor(registry, sleep)
        handle = executor.run(
            wf, on_event=lambda e: e.type.value == "node_failed" and saved.append(handle.snapshot())
        )
        go.set()
        outcome = handle.result(5)
        release.set()
        assert outcome.status is RunStatus.FAILED
        assert saved[0]["node_statuses"] == {"crit": "failed", "other": "running"}

        restored = executor.execute(wf, context=RunContext.from_dict(saved[0]))
        assert restored.status is RunStatus.FAILED
        assert restored.diagnostics.skip_reasons == {"other": "run aborted: critical node 'crit' failed"}
        assert calls == ["other"]

    def test_cancellation_survives_restore(self, registry, sleep):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def block(inputs, options):
            calls.append("slow")
            started.set()
            release.wait(5)
            return {}

        registry.register("block", FunctionAgent("block", block))
        registry.register("ok", echo_agent("ok"))
        wf = _workflow(registry)
        wf.add_agent("slow", type="block")
        wf.add_agent("after", type="ok", depends_on=["slow"])

        saved = []
        executor = _executor(registry, sleep)
        handle = executor.run(
            wf, on_event=lambda e: e.type.value == "node_skipped" and not saved and saved.append(handle.snapshot())
        )
        assert started.wait(5)
        handle.cancel()
        handle.result(5)
        release.set()
        assert saved[0]["cancelled"] is True
        assert saved[0]["node_statuses"]["after"] == "pending"

        restored = executor.execute(wf, context=RunContext.from_dict(saved[0]))
        assert restored.status is RunStatus.CANCELLED
        assert restored.diagnostics.skip_reasons["after"] == "run cancelled"
        assert calls == ["slow"]
