"""Plugin registry with dependency-ordered lifecycle management.

- Plugin / PluginMetadata / PluginConfig / PluginHooks / PluginCapabilities: data model
- DependencyGraph: load order and cycle detection
- PluginRegistry: registration, lifecycle and pipeline integration
- PluginBuilder: fluent construction
"""

from .builder import PluginBuilder
from .graph import DependencyGraph, GraphStats
from .registry import PluginFactory, PluginRegistry, PluginRegistryConfig, RegistryStats
from .types import (
    HookFn,
    MiddlewareCapabilities,
    Plugin,
    PluginCapabilities,
    PluginConfig,
    PluginHooks,
    PluginMetadata,
    PluginState,
)

__all__ = [
    # Data model
    "Plugin", "PluginMetadata", "PluginConfig", "PluginHooks", "HookFn", "PluginCapabilities",
    "MiddlewareCapabilities", "PluginState",
    # Graph
    "DependencyGraph", "GraphStats",
    # Registry
    "PluginRegistry", "PluginRegistryConfig", "RegistryStats", "PluginFactory",
    # Builder
    "PluginBuilder",
]
