"""Combine completed node payloads into one result."""

from typing import Any, Iterable, Mapping

from ..agents.contract import AgentResult


def _combine(existing: Any, incoming: Any) -> Any:
    if isinstance(existing, list) and isinstance(incoming, list):
        return existing + incoming
    if isinstance(existing, Mapping) and isinstance(incoming, Mapping):
        return {**existing, **incoming}
    return incoming


def merge_outputs(payloads: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge payloads left to right.

    On a key collision lists concatenate, mappings merge one level deep and
    any other value is replaced by the later payload.  The inputs are not
    modified.
    """
    merged: dict[str, Any] = {}
    for payload in payloads:
        for key, value in payload.items():
            if key in merged:
                merged[key] = _combine(merged[key], value)
            elif isinstance(value, list):
                merged[key] = list(value)
            elif isinstance(value, Mapping):
                merged[key] = dict(value)
            else:
                merged[key] = value
    return merged


def merge_results(
    node_results: Mapping[str, AgentResult],
    include_metadata: bool = False,
) -> dict[str, Any]:
    """Merge results in the mapping's order (completion order in practice).

    With ``include_metadata`` each node's metadata is added under
    ``"_meta"`` keyed by node id.
    """
    merged = merge_outputs(r.payload for r in node_results.values())
    if include_metadata:
        merged["_meta"] = {nid: r.metadata.to_dict() for nid, r in node_results.items()}
    return merged
