"""Plugin system: manifest model, discovery, registry, lifecycle and route synthesis.

Imports are lazy so lightweight tooling such as manage_plugins.py only
loads the components it uses.
"""

__all__ = [
    "PluginManifest",
    "PluginRegistry",
    "PluginInstance",
    "PluginState",
    "RouteBinding",
    "PluginDiscovery",
    "PluginLifecycle",
    "RouteSynthesizer",
    "compose_uris",
]


def __getattr__(name):
    if name == "PluginManifest":
        from gateway.plugins.manifest import PluginManifest
        return PluginManifest
    if name in ("PluginRegistry", "PluginInstance", "PluginState", "RouteBinding"):
        from gateway.plugins import registry
        return getattr(registry, name)
    if name == "PluginDiscovery":
        from gateway.plugins.discovery import PluginDiscovery
        return PluginDiscovery
    if name == "PluginLifecycle":
        from gateway.plugins.lifecycle import PluginLifecycle
        return PluginLifecycle
    if name in ("RouteSynthesizer", "compose_uris"):
        from gateway.plugins import synthesizer
        return getattr(synthesizer, name)
    raise AttributeError(f"module 'gateway.plugins' has no attribute {name!r}")
