"""Build workflow definitions from YAML-loaded data."""

from typing import Any, Mapping

from ..agents.registry import AgentRegistry
from ..errors import ValidationError
from .definition import WorkflowDefinition

_NODE_KEYS = {"agent", "depends_on", "inputs", "input_map", "checkpoint", "critical", "options"}


def _as_mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"{what} must be a mapping, got {type(value).__name__}")
    return dict(value)


def _as_list(value: Any, what: str) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{what} must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


def _as_bool(value: Any, what: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{what} must be true or false, got {value!r}")
    return value


def workflow_from_dict(
    workflow_id: str, entry: Mapping[str, Any], registry: AgentRegistry
) -> WorkflowDefinition:
    """Build one definition.  Nodes are added in file order."""
    if not isinstance(entry, Mapping):
        raise ValidationError(f"Workflow '{workflow_id}' must be a mapping", workflow=workflow_id)

    workflow = WorkflowDefinition(
        id=str(entry.get("id", workflow_id)),
        name=str(entry.get("name", workflow_id)),
        registry=registry,
        description=str(entry.get("description", "")),
        version=str(entry.get("version", "1.0.0")),
        metadata=_as_mapping(entry.get("metadata"), f"Workflow '{workflow_id}' metadata"),
    )

    nodes = _as_mapping(entry.get("nodes"), f"Workflow '{workflow_id}' nodes")
    if not nodes:
        raise ValidationError(f"Workflow '{workflow_id}' has no nodes", workflow=workflow_id)

    for node_id, spec in nodes.items():
        where = f"Workflow '{workflow_id}' node '{node_id}'"
        spec = _as_mapping(spec, where)
        unknown = sorted(set(spec) - _NODE_KEYS)
        if unknown:
            raise ValidationError(f"{where}: unknown key(s) {', '.join(unknown)}")
        if "agent" not in spec:
            raise ValidationError(f"{where}: missing 'agent'")
        workflow.add_agent(
            str(node_id),
            type=str(spec["agent"]),
            depends_on=_as_list(spec.get("depends_on"), f"{where} depends_on"),
            inputs=_as_mapping(spec.get("inputs"), f"{where} inputs"),
            input_map={
                str(k): str(v)
                for k, v in _as_mapping(spec.get("input_map"), f"{where} input_map").items()
            },
            checkpoint=_as_bool(spec.get("checkpoint"), f"{where} checkpoint"),
            critical=_as_bool(spec.get("critical"), f"{where} critical"),
            options=_as_mapping(spec.get("options"), f"{where} options"),
        )

    return workflow


def load_workflows_from_dict(
    data: Mapping[str, Any], registry: AgentRegistry
) -> dict[str, WorkflowDefinition]:
    """Parse the contents of ``workflows.yaml``.

    Expected format::

        launch-brief:
          description: "Research then analyse"
          nodes:
            research:
              agent: research
              inputs: {focus: pricing}
            analysis:
              agent: analyst
              depends_on: [research]
              input_map: {data: research}
              checkpoint: true

    Unlike agent loading, a bad workflow is an error: every definition is
    validated in full and the first problem raises ``ValidationError``.
    """
    if not isinstance(data, Mapping):
        raise ValidationError("workflows file must contain a mapping of workflow names")
    return {str(name): workflow_from_dict(str(name), entry, registry) for name, entry in data.items()}
