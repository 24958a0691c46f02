"""Dependency injection container for services."""

import logging

from gateway.constants import RESERVED_CONFIG_FILE, TIMING_CAPACITY
from gateway.pipeline.orchestrator import PipelineOrchestrator
from gateway.pipeline.producers import FormatProducerRegistry
from gateway.pipeline.reserved import ReservedParameterRegistry
from gateway.pipeline.timing import TimingStore
from gateway.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)

# ============================================================================
# Global service instances (Singleton pattern, but exposed via functions for easier testing/mocking)
# ============================================================================

_registry_instance = None
_reserved_registry_instance = None
_timing_store_instance = None
_producers_instance = None
_orchestrator_instance = None


def get_registry() -> PluginRegistry:
    """Get plugin registry (singleton)."""
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = PluginRegistry()
        logger.info("Created PluginRegistry instance")
    return _registry_instance


def get_reserved_registry() -> ReservedParameterRegistry:
    """Get reserved parameter table (singleton)."""
    global _reserved_registry_instance
    if _reserved_registry_instance is None:
        _reserved_registry_instance = ReservedParameterRegistry.from_file(RESERVED_CONFIG_FILE)
    return _reserved_registry_instance


def get_timing_store() -> TimingStore:
    """Get timing store (singleton)."""
    global _timing_store_instance
    if _timing_store_instance is None:
        _timing_store_instance = TimingStore(capacity=TIMING_CAPACITY)
        logger.info(f"Created TimingStore instance (capacity {TIMING_CAPACITY})")
    return _timing_store_instance


def get_producers() -> FormatProducerRegistry:
    """Get format producer registry (singleton)."""
    global _producers_instance
    if _producers_instance is None:
        _producers_instance = FormatProducerRegistry()
        logger.info(f"Created FormatProducerRegistry ({', '.join(_producers_instance.formats())})")
    return _producers_instance


def get_orchestrator() -> PipelineOrchestrator:
    """Get pipeline orchestrator (singleton)."""
    global _orchestrator_instance
    if _orchestrator_instance is None:
        _orchestrator_instance = PipelineOrchestrator(
            registry=get_registry(),
            reserved=get_reserved_registry(),
            timing=get_timing_store(),
            producers=get_producers(),
        )
        logger.info("Created PipelineOrchestrator instance")
    return _orchestrator_instance


def reset_services():
    """Reset all service instances (only for testing)."""
    global _registry_instance, _reserved_registry_instance, _timing_store_instance
    global _producers_instance, _orchestrator_instance
    _registry_instance = None
    _reserved_registry_instance = None
    _timing_store_instance = None
    _producers_instance = None
    _orchestrator_instance = None
    logger.info("Reset all service instances")
