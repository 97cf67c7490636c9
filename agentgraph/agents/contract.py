"""The uniform agent contract and its result envelope."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from ..usage import TokenUsage


@dataclass(frozen=True)
class ResultMetadata:
    """Fixed metadata envelope attached to every agent result."""

    agent_name: str = ""
    model_used: str = ""
    tokens: TokenUsage = TokenUsage()
    cost_usd: float = 0.0
    elapsed_ms: float = 0.0
    trace_id: str = ""

    def to_dict(self) -> dict:
        return {
            "agent_name": self.agent_name,
            "model_used": self.model_used,
            "tokens": self.tokens.to_dict(),
            "cost_usd": self.cost_usd,
            "elapsed_ms": self.elapsed_ms,
            "trace_id": self.trace_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResultMetadata":
        return cls(
            agent_name=data.get("agent_name", ""),
            model_used=data.get("model_used", ""),
            tokens=TokenUsage.from_dict(data.get("tokens") or {}),
            cost_usd=float(data.get("cost_usd", 0.0)),
            elapsed_ms=float(data.get("elapsed_ms", 0.0)),
            trace_id=data.get("trace_id", ""),
        )


@dataclass(frozen=True)
class AgentResult:
    """Schema-less payload plus the metadata envelope.

    The scheduler never looks inside ``payload``.
    """

    payload: dict[str, Any] = field(default_factory=dict)
    metadata: ResultMetadata = ResultMetadata()

    def to_dict(self) -> dict:
        return {"payload": self.payload, "metadata": self.metadata.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AgentResult":
        return cls(
            payload=dict(data.get("payload") or {}),
            metadata=ResultMetadata.from_dict(data.get("metadata") or {}),
        )

    @classmethod
    def coerce(cls, value: Any, agent_name: str = "") -> "AgentResult":
        """Accept an ``AgentResult`` or a bare payload mapping."""
        if isinstance(value, AgentResult):
            return value
        if isinstance(value, Mapping):
            return cls(payload=dict(value), metadata=ResultMetadata(agent_name=agent_name))
        raise TypeError(
            f"Agent '{agent_name}' returned {type(value).__name__}; "
            f"expected AgentResult or a mapping"
        )


@dataclass(frozen=True)
class RunOptions:
    """Run-scoped overrides passed to ``AgentContract.run``."""

    model: Optional[str] = None
    temperature: Optional[float] = None
    trace_id: Optional[str] = None
    timeout: Optional[float] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "RunOptions":
        """Return a copy with known keys from ``overrides`` applied.

        Unknown keys land in ``extra``.
        """
        if not overrides:
            return self
        known = {}
        extra = dict(self.extra)
        for key, value in overrides.items():
            if key in ("model", "temperature", "trace_id", "timeout"):
                known[key] = value
            else:
                extra[key] = value
        return RunOptions(
            model=known.get("model", self.model),
            temperature=known.get("temperature", self.temperature),
            trace_id=known.get("trace_id", self.trace_id),
            timeout=known.get("timeout", self.timeout),
            extra=extra,
        )


class AgentContract(ABC):
    """Uniform execution unit wrapping one LLM call or computation.

    Calls are at-least-once: the executor may retry ``run`` after a
    transient failure.  Implementations raise ``TransientAgentError`` or
    ``PermanentAgentError`` subclasses rather than swallowing failures.
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def run(self, inputs: Mapping[str, Any], options: RunOptions) -> AgentResult:
        """Execute with fully resolved ``inputs``."""

    def estimate_cost(self, inputs: Mapping[str, Any]) -> float:
        """Best-effort USD estimate for one run; 0.0 when unknown."""
        return 0.0


class FunctionAgent(AgentContract):
    """Adapt a plain callable ``fn(inputs, options) -> payload`` to the contract."""

    def __init__(
        self,
        name: str,
        fn: Callable[[Mapping[str, Any], RunOptions], Any],
        description: str = "",
        estimate: Optional[Callable[[Mapping[str, Any]], float]] = None,
    ) -> None:
        self.name = name
        self.description = description
        self._fn = fn
        self._estimate = estimate

    def run(self, inputs: Mapping[str, Any], options: RunOptions) -> AgentResult:
        result = AgentResult.coerce(self._fn(inputs, options), self.name)
        meta = result.metadata
        if not meta.agent_name or not meta.trace_id:
            result = AgentResult(
                payload=result.payload,
                metadata=ResultMetadata(
                    agent_name=meta.agent_name or self.name,
                    model_used=meta.model_used,
                    tokens=meta.tokens,
                    cost_usd=meta.cost_usd,
                    elapsed_ms=meta.elapsed_ms,
                    trace_id=meta.trace_id or options.trace_id or "",
                ),
            )
        return result

    def estimate_cost(self, inputs: Mapping[str, Any]) -> float:
        if self._estimate is None:
            return 0.0
        return float(self._estimate(inputs))
