"""Agent contract, registry, and LLM-backed agents."""

from .contract import AgentContract, AgentResult, FunctionAgent, ResultMetadata, RunOptions
from .registry import AgentRegistry
from .schema import AgentDef
from .llm_agent import LLMAgent, render_template, validate_output
from .loader import load_agents_from_dict, register_agents

__all__ = [
    "AgentContract",
    "AgentResult",
    "FunctionAgent",
    "ResultMetadata",
    "RunOptions",
    "AgentRegistry",
    "AgentDef",
    "LLMAgent",
    "render_template",
    "validate_output",
    "load_agents_from_dict",
    "register_agents",
]
