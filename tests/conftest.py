"""Shared fixtures."""

import time

import pytest

from agentgraph.agents.contract import AgentResult, FunctionAgent, ResultMetadata
from agentgraph.agents.registry import AgentRegistry


class RecordingSleep:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def registry():
    return AgentRegistry()


def echo_agent(name, cost=0.0):
    """FunctionAgent returning its inputs plus the node's name."""

    def run(inputs, options):
        return AgentResult(
            payload={"agent": name, **dict(inputs)},
            metadata=ResultMetadata(agent_name=name, cost_usd=cost, trace_id=options.trace_id or ""),
        )

    return FunctionAgent(name, run, description=f"{name} stub")


@pytest.fixture
def template_registry():
    """Registry with stubs for every agent type the built-in workflows use."""
    registry = AgentRegistry()
    for agent_type in ("research", "analyst", "architect", "copywriter", "editor"):
        registry.register(agent_type, echo_agent(agent_type))
    return registry


def wait_until(predicate, timeout=5.0):
    """Poll ``predicate`` until it is truthy; fail the test on timeout."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not reached in time")
        time.sleep(0.01)


class EventLog:
    """Event listener that records every RunEvent."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def types(self, node_id=None):
        return [e.type.value for e in self.events if node_id is None or e.node_id == node_id]


@pytest.fixture
def events():
    return EventLog()
