"""Execution dispatcher - resolves and invokes the plugin function for a matched route."""

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, List, Optional

from gateway.exceptions import (
    PluginExecutionError,
    PluginResultError,
    PluginTimeoutError,
    RouteNotFoundError,
)
from gateway.pipeline.context import ParameterView, RequestContext
from gateway.pipeline.timing import API, POST_API, PRE_API, TimingStore
from gateway.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


@dataclass
class PluginResult:
    """What a plugin function hands back: an optional HTTP code and a list of records."""

    results: List[Any] = field(default_factory=list)
    http_code: Optional[int] = None

    @classmethod
    def coerce(cls, value: Any) -> "PluginResult":
        """Validate a raw plugin return value.

        Raises:
            PluginResultError: not a mapping, or ``results`` is not a list
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise PluginResultError(f"Plugin returned {type(value).__name__}, expected a mapping")
        results = value.get("results")
        if not isinstance(results, list):
            raise PluginResultError("Plugin result has no 'results' list")
        http_code = value.get("httpCode")
        if http_code is not None and not isinstance(http_code, int):
            raise PluginResultError(f"Plugin returned non-integer httpCode {http_code!r}")
        return cls(results=results, http_code=http_code)


class ExecutionDispatcher:
    """Invokes plugin functions and records the pre-api/api/post-api phases.

    Plugin failures are wrapped and re-raised, never retried or replaced
    by a fallback result.
    """

    def __init__(self, registry: PluginRegistry, timing: TimingStore, timeout: Optional[float] = None):
        self.registry = registry
        self.timing = timing
        self.timeout = timeout

    def resolve(self, ctx: RequestContext) -> None:
        """Attach the route binding and manifest for the request's verb and route."""
        binding = self.registry.resolve(ctx.method, ctx.route_path)
        if binding is None:
            raise RouteNotFoundError(f"No plugin bound to {ctx.route_path} [{ctx.method}]")
        ctx.binding = binding
        ctx.manifest = self.registry.get_manifest(binding.plugin_id)

    async def dispatch(self, ctx: RequestContext) -> PluginResult:
        """Run the plugin function bound to the request's route.

        In enumeration mode, or for enumeration-only bindings, the plugin
        is not invoked and an empty result is returned.
        """
        if ctx.binding is None:
            self.resolve(ctx)
        binding = ctx.binding

        self.timing.end(ctx.request_id, PRE_API)
        self.timing.start(ctx.request_id, API)

        if ctx.enumerate or binding.enumeration_only:
            result = PluginResult()
        else:
            result = await self._invoke(ctx)
            logger.info(f"Ran plugin '{binding.plugin_id}::{binding.function_name}()'")

        self.timing.end(ctx.request_id, API)
        self.timing.start(ctx.request_id, POST_API)
        ctx.result = result
        return result

    async def _invoke(self, ctx: RequestContext) -> PluginResult:
        binding = ctx.binding
        view = ParameterView(ctx.parameters)
        try:
            value = binding.handler(view)
            if inspect.isawaitable(value):
                if self.timeout is not None:
                    value = await asyncio.wait_for(value, timeout=self.timeout)
                else:
                    value = await value
        except asyncio.TimeoutError as e:
            raise PluginTimeoutError(
                f"Plugin '{binding.plugin_id}::{binding.function_name}()' "
                f"did not return within {self.timeout}s"
            ) from e
        except Exception as e:
            raise PluginExecutionError(
                f"Plugin '{binding.plugin_id}::{binding.function_name}()' failed: {e}"
            ) from e
        return PluginResult.coerce(value)
