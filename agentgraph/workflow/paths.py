"""Input path expressions: ``"node"`` or ``"node.field.sub"``."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

_MISSING = object()


@dataclass(frozen=True)
class InputRef:
    """A parsed reference to another node's output.

    An empty ``field_path`` refers to the whole payload.  Path segments
    index into mappings by key and into lists by integer position.
    """

    source_node_id: str
    field_path: tuple[str, ...] = ()

    @property
    def expression(self) -> str:
        return ".".join((self.source_node_id,) + self.field_path)

    def __str__(self) -> str:
        return self.expression


def parse_input_ref(expression: str) -> InputRef:
    """Parse a source expression into an ``InputRef``.

    Raises:
        ValueError: for empty expressions or empty path segments.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ValueError("input reference must be a non-empty string")
    parts = expression.strip().split(".")
    if any(not p for p in parts):
        raise ValueError(f"empty path segment in {expression!r}")
    return InputRef(parts[0], tuple(parts[1:]))


def lookup_path(value: Any, path: Sequence[str]) -> Any:
    """Walk ``path`` into ``value``; returns the module sentinel when absent."""
    current = value
    for segment in path:
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.lstrip("-").isdigit():
            index = int(segment)
            if not -len(current) <= index < len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def resolve_ref(ref: InputRef, payloads: Mapping[str, Mapping[str, Any]]) -> Optional[Any]:
    """Resolve ``ref`` against completed node payloads.

    Returns None when the source node or the field is absent.
    """
    value = resolve_ref_or_missing(ref, payloads)
    return None if value is _MISSING else value


def resolve_ref_or_missing(ref: InputRef, payloads: Mapping[str, Mapping[str, Any]]) -> Any:
    if ref.source_node_id not in payloads:
        return _MISSING
    return lookup_path(payloads[ref.source_node_id], ref.field_path)


def resolve_inputs(
    static_inputs: Mapping[str, Any],
    input_map: Mapping[str, InputRef],
    payloads: Mapping[str, Mapping[str, Any]],
    initial_inputs: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """Build a node's input mapping.

    Layering, lowest precedence first: run-level ``initial_inputs``, the
    node's ``static_inputs``, then ``input_map`` values.  A reference that
    cannot be resolved leaves the field untouched, so any default from the
    lower layers survives.
    """
    inputs: dict[str, Any] = dict(initial_inputs or {})
    inputs.update(static_inputs)
    for field_name, ref in input_map.items():
        value = resolve_ref_or_missing(ref, payloads)
        if value is not _MISSING:
            inputs[field_name] = value
    return inputs
