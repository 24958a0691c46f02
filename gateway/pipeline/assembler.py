"""Response assembly - envelope construction, enumeration, metadata and headers.

Each public method is one stage of the response state machine
(built, enumerated or annotated, formatted, headered). The orchestrator
decides which stage runs next; the assembler never calls a producer or
another stage on its own.
"""

import logging
from typing import Any, Dict, Optional

from gateway.pipeline.context import RequestContext
from gateway.pipeline.metadata import performance_metadata, request_metadata, system_metadata
from gateway.pipeline.producers import ProducedOutput
from gateway.pipeline.timing import TimingStore

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = "X-Requested-With, Content-Type"
CORS_ALLOW_METHODS = "POST, GET, PUT, DELETE, OPTIONS"

METADATA_FLAGS = ("performance", "system", "request")


def service_name(route_path: str) -> str:
    """Last non-empty segment of a synthesized URI (the resource route)."""
    tokens = [token for token in route_path.split("/") if token]
    return tokens[-1] if tokens else ""


class ResponseAssembler:
    """Turns a plugin result into the envelope, then into a wire response."""

    def __init__(self, timing: TimingStore):
        self.timing = timing

    def build(self, ctx: RequestContext) -> Dict[str, Any]:
        """Seed the envelope from the plugin result."""
        result = ctx.result
        results = list(result.results) if result is not None else []
        http_code = result.http_code if result is not None and result.http_code else 200

        ctx.http_code = http_code
        ctx.envelope = {
            "httpCode": http_code,
            "url": ctx.url,
            "total": len(results),
            "results": results,
        }
        return ctx.envelope

    def enumerate(self, ctx: RequestContext) -> Dict[str, Any]:
        """Replace the envelope with the self-description of the matched resource."""
        manifest = ctx.manifest
        if manifest is None:
            ctx.envelope = {}
            return ctx.envelope

        name = service_name(ctx.route_path)
        resource = manifest.resource_for(name)
        ctx.envelope = {
            "plugin": manifest.id,
            "name": manifest.name,
            "description": manifest.description,
            "headers": manifest.enabled_options(),
            "route": ctx.route_path,
            "serviceName": name,
            "resource": resource.model_dump(by_alias=True) if resource else None,
        }
        logger.debug(f"Enumerating {manifest.id} resource '{name}'")
        return ctx.envelope

    def annotate(self, ctx: RequestContext) -> Dict[str, Any]:
        """Merge the metadata blocks whose reserved flag resolved true."""
        if ctx.reserved_value("performance") is True:
            ctx.envelope.update(performance_metadata(self.timing, ctx.request_id))
        if ctx.reserved_value("system") is True:
            ctx.envelope.update(system_metadata())
        if ctx.reserved_value("request") is True:
            ctx.envelope.update(request_metadata(ctx.client, ctx.parameters, ctx.reserved))
        return ctx.envelope

    def apply_output(self, ctx: RequestContext, output: ProducedOutput) -> None:
        """Store a rendered body and its producer headers on the context."""
        ctx.body = output.body
        ctx.content_type = output.content_type
        ctx.headers.update(output.headers)

    def attach_headers(self, ctx: RequestContext) -> Dict[str, str]:
        """Add cross-origin headers when the plugin's manifest opts in."""
        manifest = ctx.manifest
        if manifest is not None and manifest.cors_enabled:
            ctx.headers.update(cors_headers(manifest.route.cors.whitelist))
        return ctx.headers


def cors_headers(origin: Optional[str]) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
    }
