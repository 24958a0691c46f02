"""Plugin introspection REST API endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from gateway.dependencies import get_orchestrator, get_registry
from gateway.plugins.registry import PluginState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gateway/plugins", tags=["plugins"])


@router.get("/")
async def list_plugins():
    """List all loaded plugins and their registration state."""
    registry = get_registry()
    orchestrator = get_orchestrator()
    return {
        "ready": orchestrator.ready,
        "stage": orchestrator.startup_stage.value if orchestrator.startup_stage else None,
        "plugins": [p.to_dict() for p in registry.get_all()],
    }


@router.get("/failures")
async def list_failures():
    """Plugin directories skipped at discovery and plugins that failed to bind."""
    registry = get_registry()
    unbound = [
        p.to_dict()
        for p in registry.get_all()
        if p.state in (PluginState.ERROR, PluginState.PARTIAL)
    ]
    return {
        "skipped": [f.to_dict() for f in registry.failures],
        "unbound": unbound,
    }


@router.get("/{plugin_id}")
async def get_plugin(plugin_id: str):
    """Get detailed information about a plugin, including its synthesized routes."""
    registry = get_registry()
    instance = registry.get(plugin_id)
    if not instance:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")

    info = instance.to_dict()
    info["options"] = instance.manifest.enabled_options()
    info["routes"] = [b.to_dict() for b in registry.routes_for(plugin_id)]
    return info
