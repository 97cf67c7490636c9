"""Exception hierarchy for agentgraph.

Two families:

* ``ValidationError`` -- raised while building registries and workflow
  definitions (or when a run is refused up front).  Never retried.
* ``AgentError`` -- raised by agents and the LLM client while a node runs.
  ``TransientAgentError`` subclasses are eligible for retry,
  ``PermanentAgentError`` subclasses fail the node immediately.
"""

from enum import Enum
from typing import Any, Optional


class FailureClass(str, Enum):
    """Normalized failure classes recorded in node diagnostics."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    UPSTREAM_TRANSIENT = "upstream_transient"
    ACCESS_OR_AUTH = "access_or_auth"
    BILLING_OR_QUOTA = "billing_or_quota"
    MODEL_NOT_AVAILABLE = "model_not_available"
    OUTPUT_INVALID_JSON = "output_invalid_json"
    INVALID_OUTPUT = "invalid_output"
    RETRIES_EXHAUSTED = "retries_exhausted"
    CANCELLED = "cancelled"
    AGENT_ERROR = "agent_error"


class AgentGraphError(Exception):
    """Base class for every error raised by agentgraph."""


# -- Validation ---------------------------------------------------------------


class ValidationError(AgentGraphError):
    """A registry, workflow, or run request is invalid."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details


class DuplicateNodeId(ValidationError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node '{node_id}' is already defined", node_id=node_id)
        self.node_id = node_id


class InvalidNodeId(ValidationError):
    def __init__(self, node_id: str) -> None:
        super().__init__(
            f"Invalid node id {node_id!r}: must be a non-empty string without '.'",
            node_id=node_id,
        )
        self.node_id = node_id


class UnknownAgentType(ValidationError):
    def __init__(self, agent_type: str) -> None:
        super().__init__(f"Unknown agent type: {agent_type}", agent_type=agent_type)
        self.agent_type = agent_type


class DuplicateAgentType(ValidationError):
    def __init__(self, agent_type: str) -> None:
        super().__init__(
            f"Agent type '{agent_type}' is already registered",
            agent_type=agent_type,
        )
        self.agent_type = agent_type


class ForwardDependencyReference(ValidationError):
    """A node depends on an id that has not been added yet."""

    def __init__(self, node_id: str, dependency: str) -> None:
        super().__init__(
            f"Node '{node_id}' depends on '{dependency}', which has not been added "
            f"(dependencies must be added before their dependents)",
            node_id=node_id,
            dependency=dependency,
        )
        self.node_id = node_id
        self.dependency = dependency


class InvalidInputReference(ValidationError):
    def __init__(self, node_id: str, field: str, expression: str, reason: str) -> None:
        super().__init__(
            f"Node '{node_id}' input '{field}' = {expression!r}: {reason}",
            node_id=node_id,
            field=field,
            expression=expression,
        )


class WorkflowFrozen(ValidationError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            f"Workflow '{workflow_id}' is frozen; nodes cannot be added after execution starts",
            workflow_id=workflow_id,
        )


class BudgetExceeded(ValidationError):
    def __init__(self, estimated: float, budget: float) -> None:
        super().__init__(
            f"Estimated cost ${estimated:.4f} exceeds budget ${budget:.4f}",
            estimated=estimated,
            budget=budget,
        )
        self.estimated = estimated
        self.budget = budget


class CheckpointNotPending(ValidationError):
    def __init__(self, node_id: str, status: str) -> None:
        super().__init__(
            f"Node '{node_id}' is not awaiting approval (status: {status})",
            node_id=node_id,
            status=status,
        )


class UnknownWorkflow(ValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown workflow: {name}", name=name)


class MissingWorkflowOption(ValidationError):
    def __init__(self, workflow: str, missing: list[str]) -> None:
        super().__init__(
            f"Workflow '{workflow}' is missing required options: {', '.join(missing)}",
            workflow=workflow,
            missing=missing,
        )


# -- Agent execution ----------------------------------------------------------


class AgentError(AgentGraphError):
    """Failure raised while executing an agent."""

    retryable = False
    default_failure_class = FailureClass.AGENT_ERROR

    def __init__(
        self,
        message: str,
        failure_class: Optional[FailureClass] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.failure_class = failure_class or self.default_failure_class
        self.status_code = status_code


class TransientAgentError(AgentError):
    """Timeouts, rate limits, upstream 5xx -- worth another attempt."""

    retryable = True
    default_failure_class = FailureClass.UPSTREAM_TRANSIENT


class RateLimited(TransientAgentError):
    default_failure_class = FailureClass.RATE_LIMIT

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        status_code: Optional[int] = 429,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class UpstreamUnavailable(TransientAgentError):
    default_failure_class = FailureClass.UPSTREAM_TRANSIENT


class AgentTimeout(TransientAgentError):
    default_failure_class = FailureClass.TIMEOUT


class PermanentAgentError(AgentError):
    """Auth failures, malformed input, unparseable output -- do not retry."""


class AuthenticationFailed(PermanentAgentError):
    default_failure_class = FailureClass.ACCESS_OR_AUTH


class ParseError(PermanentAgentError):
    default_failure_class = FailureClass.OUTPUT_INVALID_JSON


class InvalidOutput(PermanentAgentError):
    default_failure_class = FailureClass.INVALID_OUTPUT

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class RunCancelled(PermanentAgentError):
    default_failure_class = FailureClass.CANCELLED


class ExhaustedRetries(PermanentAgentError):
    """A transient failure persisted past the retry cap."""

    default_failure_class = FailureClass.RETRIES_EXHAUSTED

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error
