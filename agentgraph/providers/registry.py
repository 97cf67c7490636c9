"""Name -> provider class lookup, filled by the ``@register_provider`` decorator."""

import importlib
import logging
import sys
from typing import Callable, Dict, Optional, Type

from .base import BaseProvider, ProviderConfig

_log = logging.getLogger(__name__)

_REGISTRY: Dict[str, Type[BaseProvider]] = {}

BUILTIN_MODULES = ("openrouter", "openai_provider", "claude")


def register_provider(name: str):
    """Register the decorated ``BaseProvider`` subclass under ``name``.

    Registering a different class under a taken name is an error; a
    reloaded module re-registering its own class is not.
    """
    def decorator(cls: Type[BaseProvider]):
        if not (isinstance(cls, type) and issubclass(cls, BaseProvider)):
            raise TypeError(f"{getattr(cls, '__name__', cls)!r} must be a subclass of BaseProvider")
        existing = _REGISTRY.get(name)
        if existing is not None and (existing.__module__, existing.__qualname__) != (
            cls.__module__,
            cls.__qualname__,
        ):
            raise ValueError(f"Provider name {name!r} already registered by {existing.__qualname__}")
        _REGISTRY[name] = cls
        return cls
    return decorator


def discover_providers() -> Dict[str, Type[BaseProvider]]:
    """Import the built-in provider modules and return the registry.

    Modules already imported are reloaded so their decorators run again
    after ``clear_registry()``.
    """
    for module_name in BUILTIN_MODULES:
        fqn = f"{__package__}.{module_name}"
        if fqn in sys.modules:
            importlib.reload(sys.modules[fqn])
        else:
            importlib.import_module(fqn)
    return get_registry()


def get_registry() -> Dict[str, Type[BaseProvider]]:
    return dict(_REGISTRY)


def clear_registry() -> None:
    _REGISTRY.clear()


def create_providers(
    config_for: Callable[[str], Optional[ProviderConfig]],
) -> Dict[str, BaseProvider]:
    """Instantiate every registered provider that ``config_for`` returns a config for.

    A provider whose constructor raises is logged and left out; the nodes
    that need it fail at run time with an unconfigured-provider error.
    """
    providers: Dict[str, BaseProvider] = {}
    for name, provider_class in get_registry().items():
        config = config_for(name)
        if config is None:
            continue
        try:
            providers[name] = provider_class(config)
        except Exception as e:
            _log.warning("failed to initialize provider %s: %s", name, e)
    return providers
