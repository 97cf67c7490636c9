"""Tests for human-in-the-loop checkpoints."""

import threading

import pytest

from conftest import echo_agent, wait_until

from agentgraph.agents.contract import FunctionAgent
from agentgraph.errors import CheckpointNotPending
from agentgraph.retry import NO_RETRY
from agentgraph.runtime import Executor, NodeStatus, RunContext, RunStatus, Verdict
from agentgraph.workflow import WorkflowDefinition


@pytest.fixture
def plan_registry(registry):
    registry.register("planner", echo_agent("planner", cost=0.2))
    registry.register("writer", echo_agent("writer", cost=0.1))
    return registry


def _plan_workflow(registry, critical=False):
    wf = WorkflowDefinition("plan", "Plan", registry)
    wf.add_agent("plan", type="planner", inputs={"outline": ["intro"]}, checkpoint=True, critical=critical)
    wf.add_agent("write", type="writer", depends_on=["plan"], input_map={"outline": "plan.outline"})
    return wf


def _awaiting(handle):
    wait_until(lambda: handle.status is RunStatus.AWAITING_APPROVAL)
    return handle


def _executor(registry, sleep, **kwargs):
    return Executor(registry, retry_policy=NO_RETRY, sleep=sleep, **kwargs)


class TestApproval:
    def test_pauses_until_approved(self, plan_registry, sleep, events):
        handle = _awaiting(_executor(plan_registry, sleep).run(_plan_workflow(plan_registry), on_event=events))

        assert handle.node_statuses() == {
            "plan": NodeStatus.AWAITING_APPROVAL,
            "write": NodeStatus.PENDING,
        }
        pending = handle.pending_checkpoints()
        assert [p["node_id"] for p in pending] == ["plan"]
        assert pending[0]["agent_type"] == "planner"
        assert pending[0]["payload"]["outline"] == ["intro"]
        assert handle.snapshot()["total_cost_usd"] == 0.0
        assert not handle.done()

        handle.resume("plan", Verdict.APPROVE)
        outcome = handle.result(5)

        assert outcome.status is RunStatus.COMPLETED
        assert outcome.results["write"].payload["outline"] == ["intro"]
        assert outcome.diagnostics.total_cost_usd == pytest.approx(0.3)
        assert events.types("plan") == [
            "node_started",
            "checkpoint_pending",
            "node_completed",
            "checkpoint_approved",
        ]

    def test_verdict_accepts_strings(self, plan_registry, sleep):
        handle = _awaiting(_executor(plan_registry, sleep).run(_plan_workflow(plan_registry)))
        handle.resume("plan", "approve")
        assert handle.result(5).ok

    def test_resume_twice_raises(self, plan_registry, sleep):
        handle = _awaiting(_executor(plan_registry, sleep).run(_plan_workflow(plan_registry)))
        handle.resume("plan", Verdict.APPROVE)
        with pytest.raises(CheckpointNotPending):
            handle.resume("plan", Verdict.REJECT)
        assert handle.result(5).ok

    def test_resume_unknown_or_running_node_raises(self, plan_registry, sleep):
        handle = _awaiting(_executor(plan_registry, sleep).run(_plan_workflow(plan_registry)))
        with pytest.raises(CheckpointNotPending):
            handle.resume("write", Verdict.APPROVE)
        with pytest.raises(CheckpointNotPending):
            handle.resume("nope", Verdict.APPROVE)
        handle.cancel()
        handle.result(5)


class TestRejection:
    def test_rejection_fails_node_and_skips_dependents(self, plan_registry, sleep):
        handle = _awaiting(_executor(plan_registry, sleep).run(_plan_workflow(plan_registry)))
        handle.resume("plan", Verdict.REJECT, "too shallow")
        outcome = handle.result(5)

        assert outcome.status is RunStatus.PARTIALLY_FAILED
        error = outcome.diagnostics.errors["plan"]
        assert error.kind == "checkpoint_rejected"
        assert error.message == "too shallow"
        assert outcome.diagnostics.skip_reasons == {"write": "dependency 'plan' failed"}
        assert outcome.results == {}
        assert outcome.diagnostics.total_cost_usd == 0.0

    def test_critical_rejection_aborts(self, plan_registry, sleep):
        handle = _awaiting(_executor(plan_registry, sleep).run(_plan_workflow(plan_registry, critical=True)))
        handle.resume("plan", Verdict.REJECT)
        outcome = handle.result(5)
        assert outcome.status is RunStatus.FAILED
        assert outcome.diagnostics.skip_reasons == {"write": "run aborted: critical node 'plan' failed"}

    def test_checkpoint_timeout_auto_rejects(self, plan_registry, sleep, events):
        executor = _executor(plan_registry, sleep, checkpoint_timeout=0.1)
        outcome = executor.run(_plan_workflow(plan_registry), on_event=events).result(5)
        assert outcome.status is RunStatus.PARTIALLY_FAILED
        assert outcome.diagnostics.errors["plan"].message == "Checkpoint timed out after 0.1s"
        assert "checkpoint_rejected" in events.types("plan")


class TestCancelWhileAwaiting:
    def test_cancel(self, plan_registry, sleep):
        handle = _awaiting(_executor(plan_registry, sleep).run(_plan_workflow(plan_registry)))
        handle.cancel()
        outcome = handle.result(5)
        assert outcome.status is RunStatus.CANCELLED
        assert outcome.diagnostics.skip_reasons == {"plan": "run cancelled", "write": "run cancelled"}
        handle.cancel()


class TestExecute:
    def test_default_approves(self, plan_registry, sleep):
        assert _executor(plan_registry, sleep).execute(_plan_workflow(plan_registry)).ok

    def test_verdict_callback_runs_on_caller_thread(self, plan_registry, sleep):
        seen = []

        def decide(event):
            seen.append((event.node_id, threading.current_thread() is threading.main_thread()))
            return Verdict.REJECT, "needs work"

        outcome = _executor(plan_registry, sleep).execute(_plan_workflow(plan_registry), verdict=decide)
        assert seen == [("plan", True)]
        assert outcome.diagnostics.errors["plan"].message == "needs work"

    def test_dry_run_still_pauses(self, plan_registry, sleep):
        seen = []

        def decide(event):
            seen.append(event.data["payload"]["_dry_run"])
            return Verdict.APPROVE

        outcome = _executor(plan_registry, sleep, dry_run=True).execute(
            _plan_workflow(plan_registry), verdict=decide
        )
        assert seen == [True]
        assert outcome.ok

    def test_timeout_cancels_run(self, registry, sleep):
        release = threading.Event()
        registry.register("block", FunctionAgent("block", lambda i, o: release.wait(5) and {}))
        wf = WorkflowDefinition("slow", "Slow", registry)
        wf.add_agent("stuck", type="block")

        outcome = _executor(registry, sleep).execute(wf, timeout=0.2)
        release.set()
        assert outcome.status is RunStatus.CANCELLED
        assert outcome.diagnostics.skip_reasons == {"stuck": "run cancelled"}


    def test_raising_verdict_cancels_run(self, plan_registry, sleep):
        executor = _executor(plan_registry, sleep)

        def decide(event):
            raise RuntimeError("reviewer went away")

        with pytest.raises(RuntimeError, match="reviewer went away"):
            executor.execute(_plan_workflow(plan_registry), verdict=decide)
        wait_until(lambda: executor.active_runs() == [])


class TestRestore:
    def test_restored_run_re_emits_checkpoint(self, plan_registry, sleep, events):
        executor = _executor(plan_registry, sleep)
        original = _awaiting(executor.run(_plan_workflow(plan_registry)))
        saved = original.snapshot()
        original.cancel()
        original.result(5)

        restored_ctx = RunContext.from_dict(saved)
        handle = executor.run(_plan_workflow(plan_registry), context=restored_ctx, on_event=events)
        wait_until(lambda: "checkpoint_pending" in events.types("plan"))
        assert events.types("plan") == ["checkpoint_pending"]
        assert events.events[0].data["restored"] is True

        handle.resume("plan", Verdict.APPROVE)
        outcome = handle.result(5)
        assert outcome.ok
        assert outcome.run_id == saved["run_id"]
        assert events.types("plan").count("node_started") == 0
