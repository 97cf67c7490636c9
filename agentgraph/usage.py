"""Token usage accounting."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Input/output token counts for one or more LLM calls."""

    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(self.input + other.input, self.output + other.output)

    def to_dict(self) -> dict:
        return {"input": self.input, "output": self.output}

    @classmethod
    def from_dict(cls, data: dict) -> "TokenUsage":
        return cls(int(data.get("input", 0)), int(data.get("output", 0)))

    def format(self) -> str:
        """Human-readable token summary."""
        def _fmt(n: int) -> str:
            if n >= 1000:
                return f"~{n / 1000:.1f}k"
            return f"~{n}"
        return f"{_fmt(self.input)} in / {_fmt(self.output)} out"
