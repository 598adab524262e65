"""
Resource Registry - Discovery and registration of resource adapters.

This module provides the central registry mapping resource type names to
the adapters that implement them.
"""

import logging
from importlib.metadata import entry_points
from typing import Dict, List, Optional, Type

from resources.base import ResourceAdapter

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "sncloud.resources"


class ResourceRegistry:
    """
    Central registry for resource adapters.

    Adapter classes are registered by their type name and instantiated
    lazily, once, on first use.
    """

    def __init__(self):
        # Registered adapter classes (not instantiated)
        self._adapters: Dict[str, Type[ResourceAdapter]] = {}
        # Instantiated adapters
        self._instances: Dict[str, ResourceAdapter] = {}

    def register(self, adapter_class: Type[ResourceAdapter]) -> None:
        """
        Register an adapter class.

        Args:
            adapter_class: The ResourceAdapter subclass to register

        Raises:
            ValueError: If the type name is already claimed by another adapter
        """
        temp_instance = adapter_class()
        type_name = temp_instance.type_name

        existing = self._adapters.get(type_name)
        if existing is not None and existing is not adapter_class:
            raise ValueError(
                f"Resource type '{type_name}' is already claimed by "
                f"{existing.__name__}. Cannot register {adapter_class.__name__}."
            )
        if existing is adapter_class:
            logger.warning(f"Re-registering resource adapter: {type_name}")

        self._adapters[type_name] = adapter_class
        self._instances.pop(type_name, None)
        logger.debug(f"Registered resource adapter: {type_name} ({temp_instance.kind})")

    def get(self, type_name: str) -> ResourceAdapter:
        """
        Get the adapter for a resource type.

        Raises:
            ValueError: If the type name is not registered
        """
        if type_name not in self._adapters:
            available = ", ".join(sorted(self._adapters)) or "none"
            raise ValueError(
                f"Unknown resource type: {type_name}. Available types: {available}"
            )

        if type_name not in self._instances:
            self._instances[type_name] = self._adapters[type_name]()
        return self._instances[type_name]

    def has(self, type_name: str) -> bool:
        """Check if a resource type is registered."""
        return type_name in self._adapters

    def list_types(self) -> List[str]:
        """List all registered resource type names."""
        return sorted(self._adapters)


# Global registry instance
_registry: Optional[ResourceRegistry] = None


def get_registry() -> ResourceRegistry:
    """Get the global resource registry singleton."""
    global _registry
    if _registry is None:
        _registry = ResourceRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_resources() -> ResourceRegistry:
    """
    Register the built-in adapters and discover third-party adapters
    via entry points.
    """
    from resources import BUILTIN_ADAPTERS

    registry = get_registry()
    for adapter_class in BUILTIN_ADAPTERS:
        if not registry.has(adapter_class().type_name):
            registry.register(adapter_class)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            registry.register(ep.load())
        except Exception as e:
            logger.warning(f"Could not load resource adapter {ep.name}: {e}")

    return registry
