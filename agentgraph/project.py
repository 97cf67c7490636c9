"""Load per-project agent and workflow definitions from .agentgraph/ directories.

Directory convention:
    .agentgraph/
        agents.yaml       - Agent types (prompt templates, model, provider, output schema)
        workflows.yaml    - Workflow graphs built from those agent types
        inputs.yaml       - Optional default run inputs shared by every workflow
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import ValidationError

_log = logging.getLogger(__name__)

PROJECT_DIR = ".agentgraph"


class ProjectContext:
    """Discover and load a project's .agentgraph/ directory."""

    def __init__(self, start_dir: Optional[str] = None):
        self.start_dir = Path(start_dir or ".").resolve()
        self.root = self._find_root()
        self.agents = self._load_yaml("agents.yaml")
        self.workflows = self._load_yaml("workflows.yaml")
        self.inputs = self._load_yaml("inputs.yaml")

    @property
    def found(self) -> bool:
        """True if a .agentgraph/ directory was found."""
        return self.root is not None

    def _find_root(self) -> Optional[Path]:
        """Walk up from start_dir to find the nearest .agentgraph/ directory."""
        current = self.start_dir
        for _ in range(50):  # safety limit
            candidate = current / PROJECT_DIR
            if candidate.is_dir():
                return candidate
            parent = current.parent
            if parent == current:
                break
            current = parent
        return None

    def _load_yaml(self, filename: str) -> dict[str, Any]:
        """Load a YAML mapping from .agentgraph/ if the file exists.

        A file that exists but cannot be parsed is an error: running with
        half a project would be worse than refusing to run.
        """
        if self.root is None:
            return {}
        path = self.root / filename
        if not path.is_file():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {path}: {e}", path=str(path)) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationError(f"{path} must contain a mapping", path=str(path))
        _log.debug("loaded %s (%d entries)", path, len(data))
        return data

    def summary(self) -> str:
        """Short summary for display in listings."""
        if not self.found:
            return "No project context"
        items = []
        if self.agents:
            items.append(f"{len(self.agents)} agent(s)")
        if self.workflows:
            items.append(f"{len(self.workflows)} workflow(s)")
        if self.inputs:
            items.append(f"{len(self.inputs)} default input(s)")
        return f"Project: {', '.join(items)}" if items else f"Project: (empty {PROJECT_DIR}/)"
