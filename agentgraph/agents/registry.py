"""Agent registry: type name -> contract.

Unlike the provider registry this is an explicit instance, so tests and
concurrent callers each get an isolated set of agents.
"""

import logging
from typing import Iterator

from ..errors import DuplicateAgentType, UnknownAgentType, ValidationError
from .contract import AgentContract

_log = logging.getLogger(__name__)


class AgentRegistry:
    """Maps agent type names to ``AgentContract`` implementations."""

    def __init__(self) -> None:
        self._agents: dict[str, AgentContract] = {}

    def register(self, agent_type: str, contract: AgentContract) -> None:
        """Register ``contract`` under ``agent_type``.

        Raises:
            DuplicateAgentType: if the type is already registered.
            ValidationError: if the contract has no callable ``run``.
        """
        if not agent_type:
            raise ValidationError("Agent type must be a non-empty string")
        if not callable(getattr(contract, "run", None)):
            raise ValidationError(f"Agent '{agent_type}' must have a run method")
        if agent_type in self._agents:
            raise DuplicateAgentType(agent_type)
        self._agents[agent_type] = contract
        _log.debug("agent registered: %s", agent_type)

    def lookup(self, agent_type: str) -> AgentContract:
        try:
            return self._agents[agent_type]
        except KeyError:
            raise UnknownAgentType(agent_type) from None

    def has(self, agent_type: str) -> bool:
        return agent_type in self._agents

    def types(self) -> list[str]:
        """Registered type names in registration order."""
        return list(self._agents)

    def describe(self) -> list[dict[str, str]]:
        """Summaries for listing: type, name and description."""
        return [
            {
                "type": agent_type,
                "name": getattr(contract, "name", "") or agent_type,
                "description": getattr(contract, "description", "") or "",
            }
            for agent_type, contract in self._agents.items()
        ]

    def __contains__(self, agent_type: object) -> bool:
        return agent_type in self._agents

    def __iter__(self) -> Iterator[str]:
        return iter(self._agents)

    def __len__(self) -> int:
        return len(self._agents)
