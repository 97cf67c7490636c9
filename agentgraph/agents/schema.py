"""Agent definition dataclass."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AgentDef:
    """Immutable definition of a named LLM agent.

    ``prompt_template`` and ``system_prompt`` are ``str.format`` templates
    rendered against the node's resolved inputs; ``{inputs}`` expands to
    all inputs as JSON.  ``output_schema`` maps required payload keys to
    type names (``string``, ``number``, ``boolean``, ``array``, ``object``).

    ``provider``/``model``/``temperature`` of ``None`` fall back to the
    configured defaults.
    """

    name: str
    description: str = ""
    provider: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    system_prompt: str = ""
    prompt_template: str = "{inputs}"
    json_mode: bool = True
    max_tokens: Optional[int] = None
    output_schema: Optional[tuple[tuple[str, str], ...]] = None

    def to_summary(self) -> str:
        """One-line human-readable summary for agent listings."""
        parts = [self.name]
        if self.description:
            parts.append(f"- {self.description}")
        overrides = []
        if self.provider:
            overrides.append(f"provider={self.provider}")
        if self.model:
            overrides.append(f"model={self.model}")
        if not self.json_mode:
            overrides.append("text")
        if overrides:
            parts.append(f"[{', '.join(overrides)}]")
        return "  ".join(parts)
