"""Load AgentDef instances from YAML and register them."""

import logging
from typing import Any, Mapping, Optional, TYPE_CHECKING

from .llm_agent import LLMAgent
from .registry import AgentRegistry
from .schema import AgentDef

if TYPE_CHECKING:
    from ..llm.client import LLMClient

_log = logging.getLogger(__name__)


def load_agents_from_dict(data: dict[str, Any]) -> dict[str, AgentDef]:
    """Parse agent definitions from a YAML-loaded dict.

    Expected format (top-level keys are agent type names)::

        research:
          description: "Market research"
          provider: openrouter
          model: claude-sonnet
          system_prompt: "You are a market researcher."
          prompt_template: "Research {businessId}, focusing on {focus}."
          output_schema:
            summary: string
            competitors: array

    Invalid entries are skipped with a warning.
    """
    agents: dict[str, AgentDef] = {}

    for name, entry in data.items():
        if not isinstance(entry, dict):
            _log.warning("skipping agent %r: expected a mapping", name)
            continue
        try:
            schema = entry.get("output_schema")
            if schema is not None:
                schema = tuple((str(k), str(v)) for k, v in dict(schema).items())

            temperature = entry.get("temperature")
            max_tokens = entry.get("max_tokens")
            agents[str(name)] = AgentDef(
                name=str(name),
                description=str(entry.get("description", "")),
                provider=entry.get("provider"),
                model=entry.get("model"),
                temperature=float(temperature) if temperature is not None else None,
                system_prompt=str(entry.get("system_prompt", "")),
                prompt_template=str(entry.get("prompt_template", "{inputs}")),
                json_mode=bool(entry.get("json", True)),
                max_tokens=int(max_tokens) if max_tokens is not None else None,
                output_schema=schema,
            )
        except (TypeError, ValueError) as e:
            _log.warning("skipping agent %r: %s", name, e)
            continue

    return agents


def register_agents(
    registry: AgentRegistry,
    agent_defs: Mapping[str, AgentDef],
    clients: Mapping[str, "LLMClient"],
    default_provider: Optional[str] = None,
) -> AgentRegistry:
    """Bootstrap: wrap each AgentDef in an LLMAgent and register it.

    Agents whose provider has no client are still registered (so workflows
    validate and dry runs work); they fail permanently if actually run.
    """
    for agent_type, agent_def in agent_defs.items():
        provider = agent_def.provider or default_provider
        client = clients.get(provider) if provider else None
        if client is None:
            _log.info("agent %s: provider %r not available", agent_type, provider)
        registry.register(agent_type, LLMAgent(agent_def, client))
    return registry
