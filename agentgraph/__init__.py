"""agentgraph - dependency-aware multi-agent LLM workflow executor."""

__version__ = "0.1.0"

from .agents import AgentContract, AgentRegistry, AgentResult, FunctionAgent, RunOptions
from .errors import AgentGraphError, PermanentAgentError, TransientAgentError, ValidationError
from .retry import RetryPolicy, with_retry
from .runtime import Executor, RunContext, RunStatus, NodeStatus, Verdict
from .workflow import WorkflowDefinition, create_workflow
from .config import ConfigManager
from .cli import cli, get_app

__all__ = [
    "AgentContract",
    "AgentRegistry",
    "AgentResult",
    "FunctionAgent",
    "RunOptions",
    "AgentGraphError",
    "PermanentAgentError",
    "TransientAgentError",
    "ValidationError",
    "RetryPolicy",
    "with_retry",
    "Executor",
    "RunContext",
    "RunStatus",
    "NodeStatus",
    "Verdict",
    "WorkflowDefinition",
    "create_workflow",
    "ConfigManager",
    "cli",
    "get_app",
]
