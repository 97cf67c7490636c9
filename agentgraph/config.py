"""Configuration management for agentgraph."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .providers.base import ProviderConfig
from .retry import RetryPolicy

_log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/agentgraph/config.yaml"

_EXECUTOR_DEFAULTS: Dict[str, Any] = {
    "max_concurrency": None,
    "node_timeout": None,
    "checkpoint_timeout": None,
    "max_cost_usd": None,
    "include_metadata": False,
}


class ConfigManager:
    """Manage agentgraph configuration from YAML."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
        self.data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            self._create_default_config()
        return self._read_yaml()

    def _read_yaml(self) -> Dict[str, Any]:
        """Read and parse YAML file."""
        try:
            with open(self.config_path, "r") as f:
                content = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            _log.warning("could not read config %s: %s", self.config_path, e)
            return {}
        if not isinstance(content, dict):
            return {}
        return content

    def _create_default_config(self) -> None:
        """Create default configuration file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        default_config = {
            "providers": {
                "openrouter": {
                    "enabled": False,
                    "api_key": "${OPENROUTER_API_KEY}",
                    "model": "claude-sonnet",
                    "temperature": 0.7,
                },
                "claude": {
                    "enabled": False,
                    "api_key": "${ANTHROPIC_API_KEY}",
                    "model": "claude-sonnet-4-0",
                    "temperature": 0.7,
                },
                "openai": {
                    "enabled": False,
                    "api_key": "${OPENAI_API_KEY}",
                    "model": "gpt-4o",
                    "temperature": 0.7,
                },
            },
            "defaults": {
                "provider": "openrouter",
            },
            "executor": dict(_EXECUTOR_DEFAULTS),
            "retry": {
                "max_attempts": 3,
                "base_delay": 1.0,
                "max_delay": 30.0,
                "jitter": 0.1,
            },
            "logging": {
                "level": "WARNING",
            },
        }

        with open(self.config_path, "w") as f:
            yaml.dump(default_config, f, default_flow_style=False)
        _log.info("wrote default config to %s", self.config_path)

    def get_provider_config(self, provider_name: str) -> Optional[ProviderConfig]:
        """Get configuration for a specific provider.

        Returns None when the provider is disabled or its key is unset.
        """
        provider_data = self.data.get("providers", {}).get(provider_name) or {}

        if not provider_data.get("enabled", False):
            return None

        api_key = self._resolve_env_var(str(provider_data.get("api_key", "")))
        if not api_key:
            return None

        return ProviderConfig(
            api_key=api_key,
            model=provider_data.get("model", ""),
            base_url=provider_data.get("base_url"),
            temperature=float(provider_data.get("temperature", 0.7)),
            max_tokens=provider_data.get("max_tokens"),
            timeout=float(provider_data.get("timeout", 60.0)),
        )

    def _resolve_env_var(self, value: str) -> str:
        """Resolve environment variable references like ${VAR_NAME}."""
        if not value.startswith("${") or not value.endswith("}"):
            return value

        var_name = value[2:-1]
        return os.getenv(var_name, "")

    def get_default_provider(self) -> str:
        """Get the default provider name."""
        return self.data.get("defaults", {}).get("provider", "openrouter")

    def get_enabled_providers(self) -> list[str]:
        """Get list of enabled provider names."""
        providers = self.data.get("providers", {})
        return [name for name, config in providers.items() if (config or {}).get("enabled", False)]

    def get_retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_dict(self.data.get("retry") or {})

    def get_executor_config(self) -> Dict[str, Any]:
        """Executor keyword arguments, defaults filled in."""
        config = {**_EXECUTOR_DEFAULTS, **(self.data.get("executor") or {})}
        return {k: v for k, v in config.items() if k in _EXECUTOR_DEFAULTS}

    def get_logging_level(self) -> str:
        return str((self.data.get("logging") or {}).get("level", "WARNING")).upper()

    def save(self) -> None:
        """Save configuration to file."""
        with open(self.config_path, "w") as f:
            yaml.dump(self.data, f, default_flow_style=False)
