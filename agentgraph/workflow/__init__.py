"""Workflow definitions, input references, loading and built-in templates."""

from .definition import AgentNode, WorkflowDefinition
from .paths import InputRef, parse_input_ref, resolve_inputs, resolve_ref
from .loader import load_workflows_from_dict, workflow_from_dict
from .templates import WORKFLOW_TEMPLATES, create_workflow, list_templates

__all__ = [
    "AgentNode",
    "WorkflowDefinition",
    "InputRef",
    "parse_input_ref",
    "resolve_inputs",
    "resolve_ref",
    "load_workflows_from_dict",
    "workflow_from_dict",
    "WORKFLOW_TEMPLATES",
    "create_workflow",
    "list_templates",
]
