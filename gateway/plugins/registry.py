"""Plugin registry - tracks loaded plugins and the routes bound to them."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from gateway.plugins.manifest import PluginManifest, Resource

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Plugin lifecycle states."""

    DISCOVERED = "discovered"
    REGISTERED = "registered"
    PARTIAL = "partial"  # some resources failed to bind
    ERROR = "error"


@dataclass
class PluginInstance:
    """Represents a discovered plugin and its registration outcome."""

    manifest: PluginManifest
    path: Path
    state: PluginState = PluginState.DISCOVERED
    error: Optional[str] = None

    @property
    def id(self) -> str:
        return self.manifest.id

    def to_dict(self) -> dict:
        """Serialize plugin instance to dict for API responses."""
        return {
            "id": self.manifest.id,
            "name": self.manifest.name,
            "description": self.manifest.description,
            "route": self.manifest.route.uri,
            "required": self.manifest.informational.required,
            "resources": len(self.manifest.resources),
            "cors": self.manifest.cors_enabled,
            "path": str(self.path),
            "state": self.state.value,
            "error": self.error,
        }


@dataclass
class RouteBinding:
    """A synthesized (verb, URI) bound to a plugin function."""

    method: str
    uri: str
    plugin_id: str
    resource: Resource
    function_name: Optional[str] = None
    handler: Optional[Callable[..., Any]] = field(default=None, repr=False)

    @property
    def enumeration_only(self) -> bool:
        """True for bindings that only answer with the self-description."""
        return self.handler is None

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "uri": self.uri,
            "plugin": self.plugin_id,
            "implementation": self.resource.implementation,
            "function": self.function_name,
        }


@dataclass
class LoadFailure:
    """A plugin directory that could not be turned into a manifest."""

    directory: str
    reason: str

    def to_dict(self) -> dict:
        return {"directory": self.directory, "reason": self.reason}


class PluginRegistry:
    """Central registry for plugins and their route bindings."""

    def __init__(self):
        self._plugins: Dict[str, PluginInstance] = {}
        self._routes: Dict[Tuple[str, str], RouteBinding] = {}
        self.failures: List[LoadFailure] = []

    def register(self, instance: PluginInstance) -> None:
        """Register a plugin instance.

        A colliding identifier replaces the earlier entry (last write wins).
        """
        if instance.id in self._plugins:
            logger.warning(f"Plugin '{instance.id}' already registered, overwriting")
        self._plugins[instance.id] = instance
        logger.info(f"Registered plugin: {instance.id}")

    def get(self, plugin_id: str) -> Optional[PluginInstance]:
        """Get a plugin by ID."""
        return self._plugins.get(plugin_id)

    def get_manifest(self, plugin_id: str) -> Optional[PluginManifest]:
        instance = self._plugins.get(plugin_id)
        return instance.manifest if instance else None

    def get_all(self) -> list[PluginInstance]:
        """Get all registered plugins."""
        return list(self._plugins.values())

    def remove(self, plugin_id: str) -> Optional[PluginInstance]:
        """Remove a plugin and every route bound to it."""
        for key in [k for k, b in self._routes.items() if b.plugin_id == plugin_id]:
            del self._routes[key]
        return self._plugins.pop(plugin_id, None)

    def has(self, plugin_id: str) -> bool:
        """Check if a plugin is registered."""
        return plugin_id in self._plugins

    def count(self) -> int:
        """Get total number of registered plugins."""
        return len(self._plugins)

    def add_route(self, binding: RouteBinding) -> None:
        key = (binding.method, binding.uri)
        if key in self._routes:
            logger.warning(f"Route {binding.uri} [{binding.method}] already bound, overwriting")
        self._routes[key] = binding

    def resolve(self, method: str, uri: str) -> Optional[RouteBinding]:
        """Find the binding for a verb and registered URI."""
        return self._routes.get((method.upper(), uri))

    def has_route(self, method: str, uri: str) -> bool:
        return (method.upper(), uri) in self._routes

    def routes(self) -> list[RouteBinding]:
        return list(self._routes.values())

    def routes_for(self, plugin_id: str) -> list[RouteBinding]:
        return [b for b in self._routes.values() if b.plugin_id == plugin_id]

    def record_failure(self, directory: str, reason: str) -> None:
        self.failures.append(LoadFailure(directory=directory, reason=reason))
