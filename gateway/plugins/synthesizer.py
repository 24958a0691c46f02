"""Route synthesis - expands manifests into concrete (verb, URI) bindings."""

import logging
from typing import Any, Callable, Iterable, List, Optional, Tuple

from gateway.events import EventEmitter
from gateway.exceptions import GatewayError, RegistrationError
from gateway.plugins.lifecycle import PluginLifecycle
from gateway.plugins.manifest import PluginManifest, Resource
from gateway.plugins.registry import PluginInstance, PluginRegistry, PluginState, RouteBinding

logger = logging.getLogger(__name__)


def compose_uris(context_root: str, manifest: PluginManifest) -> List[Tuple[Resource, str]]:
    """Compute the URI of every resource of a manifest, in declaration order.

    The URI is built by concatenation across the resource list, so each
    resource is rooted under the segments of all resources declared
    before it: ``/api/svc/v1/a/`` then ``/api/svc/v1/a/v1/b/``.
    """
    uri = context_root + manifest.route.uri
    composed = []
    for resource in manifest.resources:
        uri += resource.path_segment
        composed.append((resource, uri))
    return composed


class ReadinessTracker:
    """Fires ``ready`` once every discovered plugin has settled.

    Success raises the loaded count, failure lowers the expected count;
    readiness is reached when both meet. There is no timeout.
    """

    def __init__(self, expected: int, events: EventEmitter):
        self.expected = expected
        self.loaded = 0
        self.events = events
        self.ready = False
        self._check()

    def succeed(self) -> None:
        self.loaded += 1
        self._check()

    def fail(self) -> None:
        self.expected -= 1
        self._check()

    def _check(self) -> None:
        if not self.ready and self.loaded == self.expected:
            self.ready = True
            logger.info(f"Plugins are loaded ({self.loaded} ready)")
            self.events.publish("ready", self.loaded)


class RouteSynthesizer:
    """Registers every plugin resource with the transport layer.

    The transport is anything exposing FastAPI's ``add_api_route``.
    Every route points at the same ``entry_point``; the pipeline
    resolves the plugin from the matched route afterwards.

    Events:
        registered(binding): a (verb, URI) was bound
        failure(plugin_id, reason): a resource could not be bound
        ready(loaded_count): all plugins settled
    """

    def __init__(
        self,
        registry: PluginRegistry,
        lifecycle: PluginLifecycle,
        context_root: str,
        entry_point: Callable[..., Any],
    ):
        self.registry = registry
        self.lifecycle = lifecycle
        self.context_root = context_root
        self.entry_point = entry_point
        self.events = EventEmitter()
        self.tracker: Optional[ReadinessTracker] = None

    def synthesize(self, transport: Any, instances: Iterable[PluginInstance]) -> ReadinessTracker:
        """Register all resources of all plugins.

        Args:
            transport: FastAPI application or APIRouter
            instances: Discovered plugins

        Returns:
            The readiness tracker, already settled
        """
        instances = list(instances)
        self.tracker = ReadinessTracker(len(instances), self.events)

        for instance in instances:
            if self.registry.has(instance.id):
                self.registry.remove(instance.id)
                self.lifecycle.forget(instance.id)
            self.registry.register(instance)

            if self.register_plugin(transport, instance):
                self.tracker.succeed()
            else:
                self.tracker.fail()

        return self.tracker

    def register_plugin(self, transport: Any, instance: PluginInstance) -> bool:
        """Bind every resource of one plugin. Returns False if any resource failed."""
        manifest = instance.manifest
        logger.info(
            f"Associating API route {self.context_root}{manifest.route.uri} => '{manifest.name}'"
        )

        errors = []
        for resource, uri in compose_uris(self.context_root, manifest):
            try:
                self._register_resource(transport, instance, resource, uri)
            except GatewayError as e:
                reason = f"{resource.implementation} ({e})"
                errors.append(reason)
                logger.error(f"Not able to instantiate plugin {instance.id}: {reason}")
                self.events.publish("failure", instance.id, reason)

        if errors:
            bound = self.registry.routes_for(instance.id)
            instance.state = PluginState.PARTIAL if bound else PluginState.ERROR
            instance.error = "; ".join(errors)
            return False

        instance.state = PluginState.REGISTERED
        return True

    def _register_resource(
        self, transport: Any, instance: PluginInstance, resource: Resource, uri: str
    ) -> None:
        unit = self.lifecycle.instantiate(instance, resource)

        # Resolve everything first so a bad binding leaves the resource unregistered
        bindings = []
        for method_binding in resource.http_methods:
            handler = self.lifecycle.resolve_function(unit, method_binding.function)
            bindings.append(
                RouteBinding(
                    method=method_binding.http_method,
                    uri=uri,
                    plugin_id=instance.id,
                    resource=resource,
                    function_name=method_binding.function,
                    handler=handler,
                )
            )
        if resource.binding_for("OPTIONS") is None:
            bindings.append(
                RouteBinding(method="OPTIONS", uri=uri, plugin_id=instance.id, resource=resource)
            )

        for binding in bindings:
            try:
                transport.add_api_route(
                    uri,
                    self.entry_point,
                    methods=[binding.method],
                    include_in_schema=not binding.enumeration_only,
                )
            except Exception as e:
                raise RegistrationError(f"Cannot bind {uri} [{binding.method}]: {e}") from e
            self.registry.add_route(binding)
            target = f"{resource.implementation}::{binding.function_name}()" if binding.function_name else "enumeration"
            logger.info(f"Associating URI {uri} [{binding.method}] => {target}")
            self.events.publish("registered", binding)
