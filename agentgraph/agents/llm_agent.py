"""LLM-backed agent built from a declarative AgentDef."""

import json
import logging
import string
import time
from typing import Any, Mapping, Optional, TYPE_CHECKING

from ..errors import InvalidOutput, PermanentAgentError
from ..pricing import calculate_cost, estimate_tokens
from ..providers.base import LLMRequest
from .contract import AgentContract, AgentResult, ResultMetadata, RunOptions
from .schema import AgentDef

if TYPE_CHECKING:
    from ..llm.client import LLMClient

_log = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet"
DEFAULT_TEMPERATURE = 0.7
# Assumed completion size when estimating cost before a run.
ESTIMATED_OUTPUT_TOKENS = 500

_TYPE_NAMES = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


class _TemplateValues(dict):
    """Format mapping: structured values render as JSON, unknown keys as ''."""

    def __missing__(self, key: str) -> str:
        return ""


class _Formatter(string.Formatter):
    def get_field(self, field_name, args, kwargs):
        # Dotted/indexed fields ({a.b}, {a[0]}) are not supported; look the
        # whole name up so a missing field renders empty instead of raising.
        return kwargs[field_name], field_name

    def format_field(self, value: Any, format_spec: str) -> str:
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, indent=2, default=str)
        if value is None:
            return ""
        return super().format_field(value, format_spec)


_FORMATTER = _Formatter()


def render_template(template: str, inputs: Mapping[str, Any]) -> str:
    """Render ``{field}`` placeholders from ``inputs``.

    ``{inputs}`` expands to every input as JSON.  Missing fields render as
    an empty string.
    """
    if not template:
        return ""
    values = _TemplateValues(inputs)
    values.setdefault("inputs", dict(inputs))
    return _FORMATTER.vformat(template, (), values)


def validate_output(payload: Mapping[str, Any], schema: Mapping[str, str]) -> list[str]:
    """Check ``payload`` against a ``{key: type-name}`` schema.

    Returns a list of problems; empty means valid.
    """
    errors = []
    for key, expected in schema.items():
        if key not in payload:
            errors.append(f"Missing required field: {key}")
            continue
        allowed = _TYPE_NAMES.get(expected)
        if allowed is None:
            continue
        value = payload[key]
        if isinstance(value, bool) and bool not in allowed:
            ok = False
        else:
            ok = isinstance(value, allowed)
        if not ok:
            errors.append(f"Field '{key}' expected {expected}, got {type(value).__name__}")
    return errors


class LLMAgent(AgentContract):
    """Agent that renders prompts from its inputs and queries an LLM.

    JSON-mode agents return the parsed object as their payload (a top-level
    array is wrapped as ``{"items": [...]}``); text agents return
    ``{"content": text}``.
    """

    def __init__(self, definition: AgentDef, client: Optional["LLMClient"]) -> None:
        self.definition = definition
        self.client = client
        self.name = definition.name
        self.description = definition.description

    def build_request(self, inputs: Mapping[str, Any], options: RunOptions) -> LLMRequest:
        d = self.definition
        temperature = options.temperature
        if temperature is None:
            temperature = d.temperature if d.temperature is not None else DEFAULT_TEMPERATURE
        return LLMRequest(
            prompt=render_template(d.prompt_template, inputs),
            system=render_template(d.system_prompt, inputs) or None,
            model=options.model or d.model,
            temperature=temperature,
            max_tokens=d.max_tokens,
            json_mode=d.json_mode,
            trace_id=options.trace_id,
            operation=f"agent:{d.name}",
        )

    def run(self, inputs: Mapping[str, Any], options: RunOptions) -> AgentResult:
        if self.client is None:
            raise PermanentAgentError(
                f"Agent '{self.name}' has no LLM client "
                f"(provider {self.definition.provider or 'default'!r} is not configured)"
            )
        started = time.monotonic()
        request = self.build_request(inputs, options)
        _log.debug("agent %s executing trace=%s", self.name, options.trace_id)

        if self.definition.json_mode:
            parsed, result = self.client.query_json(request)
            payload = parsed if isinstance(parsed, dict) else {"items": parsed}
        else:
            result = self.client.query_with_retry(request)
            payload = {"content": result.content}

        if self.definition.output_schema:
            problems = validate_output(payload, dict(self.definition.output_schema))
            if problems:
                raise InvalidOutput(
                    f"Agent '{self.name}' output failed validation: {'; '.join(problems)}",
                    problems,
                )

        elapsed_ms = (time.monotonic() - started) * 1000
        return AgentResult(
            payload=payload,
            metadata=ResultMetadata(
                agent_name=self.name,
                model_used=result.model,
                tokens=result.tokens,
                cost_usd=result.cost_usd,
                elapsed_ms=elapsed_ms,
                trace_id=options.trace_id or "",
            ),
        )

    def estimate_cost(self, inputs: Mapping[str, Any]) -> float:
        d = self.definition
        text = render_template(d.prompt_template, inputs) + render_template(d.system_prompt, inputs)
        model = d.model or (self.client.provider.config.model if self.client else DEFAULT_MODEL)
        return calculate_cost(model, estimate_tokens(text), ESTIMATED_OUTPUT_TOKENS)
