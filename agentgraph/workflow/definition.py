"""Workflow definitions: an immutable, validated DAG of agent nodes.

A workflow is built by calling ``add_agent`` once per node, dependencies
first.  Because every ``depends_on`` entry must name a node that already
exists, the graph cannot contain a cycle.
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from ..agents.registry import AgentRegistry
from ..errors import (
    DuplicateNodeId,
    ForwardDependencyReference,
    InvalidInputReference,
    InvalidNodeId,
    UnknownAgentType,
    WorkflowFrozen,
)
from .paths import InputRef, parse_input_ref

_log = logging.getLogger(__name__)


def _frozen_mapping(data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class AgentNode:
    """One agent invocation within a workflow graph.

    Run state (status, result, error) is not stored here; it lives in the
    per-run ``RunContext`` so a definition can be executed many times.
    """

    id: str
    agent_type: str
    static_inputs: Mapping[str, Any] = field(default_factory=dict)
    input_map: Mapping[str, InputRef] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    checkpoint: bool = False
    critical: bool = False
    options: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent": self.agent_type,
            "depends_on": list(self.depends_on),
            "inputs": dict(self.static_inputs),
            "input_map": {k: ref.expression for k, ref in self.input_map.items()},
            "checkpoint": self.checkpoint,
            "critical": self.critical,
            "options": dict(self.options),
        }


class WorkflowDefinition:
    """Insertion-ordered collection of ``AgentNode`` validated on insert.

    Node types are checked against ``registry`` eagerly so a misspelt agent
    type fails at build time rather than halfway through a run.
    """

    def __init__(
        self,
        id: str,
        name: str,
        registry: AgentRegistry,
        description: str = "",
        version: str = "1.0.0",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.id = id
        self.name = name
        self.description = description
        self.version = version
        self.metadata = dict(metadata or {})
        self._registry = registry
        self._nodes: dict[str, AgentNode] = {}
        self._ancestors: dict[str, frozenset[str]] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def nodes(self) -> Mapping[str, AgentNode]:
        return MappingProxyType(self._nodes)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self):
        return iter(self._nodes.values())

    def add_agent(
        self,
        node_id: str,
        *,
        type: str,
        depends_on: Iterable[str] = (),
        inputs: Optional[Mapping[str, Any]] = None,
        input_map: Optional[Mapping[str, str]] = None,
        checkpoint: bool = False,
        critical: bool = False,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "WorkflowDefinition":
        """Add a node and return ``self`` for chaining.

        Raises:
            WorkflowFrozen: execution has started on this definition.
            InvalidNodeId: empty id or an id containing ``.``.
            DuplicateNodeId: ``node_id`` is already present.
            UnknownAgentType: ``type`` is not in the registry.
            ForwardDependencyReference: a dependency is not yet defined.
            InvalidInputReference: an ``input_map`` source is malformed or
                is not an ancestor of this node.
        """
        with self._lock:
            if self._frozen:
                raise WorkflowFrozen(self.id)
            if not isinstance(node_id, str) or not node_id or "." in node_id:
                raise InvalidNodeId(node_id)
            if node_id in self._nodes:
                raise DuplicateNodeId(node_id)
            if not self._registry.has(type):
                raise UnknownAgentType(type)

            deps: list[str] = []
            for dep in depends_on:
                if dep not in self._nodes:
                    raise ForwardDependencyReference(node_id, dep)
                if dep not in deps:
                    deps.append(dep)

            ancestors = set(deps)
            for dep in deps:
                ancestors |= self._ancestors[dep]

            refs: dict[str, InputRef] = {}
            for field_name, expression in (input_map or {}).items():
                try:
                    ref = parse_input_ref(expression)
                except ValueError as e:
                    raise InvalidInputReference(node_id, field_name, str(expression), str(e)) from e
                if ref.source_node_id not in ancestors:
                    raise InvalidInputReference(
                        node_id,
                        field_name,
                        expression,
                        f"'{ref.source_node_id}' is not a dependency of '{node_id}'",
                    )
                refs[field_name] = ref

            node = AgentNode(
                id=node_id,
                agent_type=type,
                static_inputs=_frozen_mapping(inputs),
                input_map=MappingProxyType(refs),
                depends_on=tuple(deps),
                checkpoint=bool(checkpoint),
                critical=bool(critical),
                options=_frozen_mapping(options),
            )
            self._nodes[node_id] = node
            self._ancestors[node_id] = frozenset(ancestors)
        return self

    def get(self, node_id: str) -> AgentNode:
        return self._nodes[node_id]

    def ancestors(self, node_id: str) -> frozenset[str]:
        """Transitive dependencies of ``node_id``."""
        return self._ancestors[node_id]

    def dependents(self, node_id: str) -> list[str]:
        """Direct dependents of ``node_id`` in insertion order."""
        return [n.id for n in self._nodes.values() if node_id in n.depends_on]

    def descendants(self, node_id: str) -> list[str]:
        """Transitive dependents of ``node_id`` in insertion order."""
        return [nid for nid, anc in self._ancestors.items() if node_id in anc]

    def freeze(self) -> None:
        """Disallow further ``add_agent`` calls. Idempotent."""
        with self._lock:
            if not self._frozen:
                _log.debug("workflow %s frozen with %d node(s)", self.id, len(self._nodes))
            self._frozen = True

    def execution_layers(self) -> list[list[str]]:
        """Group node ids into layers whose members can run in parallel.

        A node's layer is one past the deepest layer of its dependencies.
        """
        depth: dict[str, int] = {}
        layers: list[list[str]] = []
        for node in self._nodes.values():
            level = max((depth[d] + 1 for d in node.depends_on), default=0)
            depth[node.id] = level
            if level == len(layers):
                layers.append([])
            layers[level].append(node.id)
        return layers

    def checkpoints(self) -> list[str]:
        return [n.id for n in self._nodes.values() if n.checkpoint]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "metadata": dict(self.metadata),
            "nodes": {nid: node.to_dict() for nid, node in self._nodes.items()},
        }

    def __repr__(self) -> str:
        return f"WorkflowDefinition(id={self.id!r}, nodes={list(self._nodes)!r})"
