"""Pipeline orchestrator - sequences startup and every request through named stages.

Startup runs DISCOVER -> SYNTHESIZE -> READY once. Each request runs
CLASSIFY -> DISPATCH -> BUILD -> (ENUMERATE | ANNOTATE) -> FORMAT ->
HEADERS -> SEND. Every stage handler returns the stage that follows it,
so the order lives in one place: the dispatch loop in ``run``.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import parse_qsl

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from gateway.constants import CONTEXT_ROOT, PLUGIN_TIMEOUT, PLUGINS_DIR
from gateway.events import EventEmitter
from gateway.exceptions import GatewayError, InstallerRequired
from gateway.pipeline.assembler import ResponseAssembler
from gateway.pipeline.classifier import ParameterClassifier
from gateway.pipeline.context import ClientInfo, RequestContext, RequestStage
from gateway.pipeline.dispatcher import ExecutionDispatcher
from gateway.pipeline.producers import FormatProducerRegistry
from gateway.pipeline.reserved import ReservedParameterRegistry
from gateway.pipeline.timing import POST_API, PRE_API, TimingStore
from gateway.plugins.discovery import PluginDiscovery
from gateway.plugins.lifecycle import PluginLifecycle
from gateway.plugins.registry import PluginRegistry
from gateway.plugins.synthesizer import RouteSynthesizer

logger = logging.getLogger(__name__)

BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
INSTALLER_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class StartupStage(str, Enum):
    DISCOVER = "discover"
    SYNTHESIZE = "synthesize"
    READY = "ready"
    INSTALLER = "installer"


StageHandler = Callable[[RequestContext], Awaitable[RequestStage]]


class PipelineOrchestrator:
    """Owns the pipeline components and mediates every transition between them.

    Components never call each other; the orchestrator hands the
    per-request ``RequestContext`` from one stage to the next.

    Events:
        stage(stage, ctx): a request entered a stage
        sent(ctx): a response was handed to the transport
        error(ctx, exc): a request failed and was answered with an error envelope
        ready(loaded_count): startup settled, requests are admitted
        installer(reason): startup fell back to the installer
    """

    def __init__(
        self,
        registry: PluginRegistry,
        reserved: ReservedParameterRegistry,
        timing: TimingStore,
        producers: FormatProducerRegistry,
        plugins_dir: Path = PLUGINS_DIR,
        context_root: str = CONTEXT_ROOT,
        timeout: Optional[float] = PLUGIN_TIMEOUT,
        discovery: Optional[PluginDiscovery] = None,
        lifecycle: Optional[PluginLifecycle] = None,
    ):
        self.registry = registry
        self.timing = timing
        self.producers = producers
        self.plugins_dir = Path(plugins_dir)
        self.context_root = context_root

        self.events = EventEmitter()
        self.classifier = ParameterClassifier(reserved)
        self.dispatcher = ExecutionDispatcher(registry, timing, timeout=timeout)
        self.assembler = ResponseAssembler(timing)
        self.discovery = discovery or PluginDiscovery()
        self.synthesizer = RouteSynthesizer(
            registry, lifecycle or PluginLifecycle(), context_root, self.handle
        )

        self.ready = False
        self.startup_stage: Optional[StartupStage] = None
        self.installer_reason: Optional[str] = None

        self.discovery.events.subscribe("failure", self.registry.record_failure)
        self.synthesizer.events.subscribe("ready", self._on_ready)

        self._stages: Dict[RequestStage, StageHandler] = {
            RequestStage.CLASSIFY: self._classify,
            RequestStage.DISPATCH: self._dispatch,
            RequestStage.BUILD: self._build,
            RequestStage.ENUMERATE: self._enumerate,
            RequestStage.ANNOTATE: self._annotate,
            RequestStage.FORMAT: self._format,
            RequestStage.HEADERS: self._headers,
        }

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def startup(self, transport: Any) -> bool:
        """Discover plugins and synthesize their routes on ``transport``.

        An unusable plugin directory does not raise: the installer
        fallback is mounted instead.

        Returns:
            True if the gateway reached readiness, False if the installer took over
        """
        self.startup_stage = StartupStage.DISCOVER
        logger.info(f"Loading plugins from {self.plugins_dir}")
        try:
            instances = self.discovery.discover_all(self.plugins_dir)
        except InstallerRequired as e:
            self.mount_installer(transport, str(e))
            return False

        self.startup_stage = StartupStage.SYNTHESIZE
        tracker = self.synthesizer.synthesize(transport, instances)
        logger.info(
            f"Route synthesis finished: {tracker.loaded}/{len(instances)} plugin(s) loaded, "
            f"{self.discovery.failed} skipped"
        )
        return self.ready

    def mount_installer(self, transport: Any, reason: str) -> None:
        """Answer every gateway path with 503 until the installation is fixed."""
        self.startup_stage = StartupStage.INSTALLER
        self.installer_reason = reason
        logger.error(f"Gateway cannot start, falling back to installer: {reason}")

        async def installer(request: Request) -> JSONResponse:
            return JSONResponse(
                status_code=InstallerRequired.status_code,
                content={
                    "httpCode": InstallerRequired.status_code,
                    "url": request.url.path,
                    "installer": True,
                    "error": reason,
                },
            )

        transport.add_api_route(
            f"{self.context_root}/{{path:path}}",
            installer,
            methods=INSTALLER_METHODS,
            include_in_schema=False,
        )
        self.events.publish("installer", reason)

    def _on_ready(self, loaded: int) -> None:
        self.ready = True
        self.startup_stage = StartupStage.READY
        self.events.publish("ready", loaded)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def handle(self, request: Request) -> Response:
        """Entry point bound to every synthesized route."""
        ctx = await self.create_context(request)
        self.timing.start(ctx.request_id, PRE_API)

        if not self.ready:
            logger.warning(f"Rejecting {ctx.method} {ctx.url}: plugins are still loading")
            return self._error_response(ctx, 503, "Gateway is not ready")

        try:
            await self.run(ctx)
            return self.send(ctx)
        except Exception as e:
            return self.fail(ctx, e)

    async def run(self, ctx: RequestContext) -> RequestContext:
        """Advance ``ctx`` through every stage up to SEND."""
        stage = RequestStage.CLASSIFY
        while stage is not RequestStage.SEND:
            ctx.stage = stage
            self.events.publish("stage", stage, ctx)
            stage = await self._stages[stage](ctx)
        ctx.stage = stage
        return ctx

    def send(self, ctx: RequestContext) -> Response:
        """Hand the rendered body to the transport and close the request's timing."""
        response = Response(
            content=ctx.body,
            status_code=ctx.http_code or 200,
            media_type=ctx.content_type,
            headers=ctx.headers,
        )
        self._close_timing(ctx)
        ctx.stage = RequestStage.DONE
        self.events.publish("sent", ctx)
        return response

    def _close_timing(self, ctx: RequestContext) -> None:
        self.timing.end(ctx.request_id, POST_API)
        round_trip = self.timing.round_trip(ctx.request_id) or 0.0
        logger.info(
            f"Request round trip time was: {round_trip:.3f} ms "
            f"({ctx.method} {ctx.url} by {ctx.identity})"
        )

    def fail(self, ctx: RequestContext, exc: Exception) -> Response:
        """Map any exception raised inside the pipeline to an error envelope."""
        status = exc.status_code if isinstance(exc, GatewayError) else 500
        if status >= 500:
            logger.error(
                f"Request {ctx.method} {ctx.url} failed in stage '{ctx.stage.value}': {exc}",
                exc_info=True,
            )
        else:
            logger.warning(f"Request {ctx.method} {ctx.url} failed: {exc}")

        self.events.publish("error", ctx, exc)
        return self._error_response(ctx, status, str(exc))

    def _error_response(self, ctx: RequestContext, status: int, message: str) -> JSONResponse:
        headers = self.assembler.attach_headers(ctx) if ctx.manifest else None
        self._close_timing(ctx)
        return JSONResponse(
            status_code=status,
            content={
                "httpCode": status,
                "url": ctx.url,
                "total": 0,
                "results": [],
                "error": message,
            },
            headers=headers,
        )

    async def create_context(self, request: Request) -> RequestContext:
        """Capture everything the stages need from the transport request."""
        route = request.scope.get("route")
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        user = request.scope.get("user")
        identity = getattr(user, "display_name", None) or "anonymous"

        return RequestContext(
            method=request.method.upper(),
            url=url,
            route_path=getattr(route, "path", request.url.path),
            identity=identity,
            raw_sources=[
                dict(request.path_params),
                await self._body_parameters(request),
                _query_parameters(request),
            ],
            client=ClientInfo(
                requested_with=request.headers.get("x-requested-with"),
                user_agent=request.headers.get("user-agent"),
                ip_address=request.client.host if request.client else None,
                secure=request.url.scheme == "https",
            ),
        )

    async def _body_parameters(self, request: Request) -> Dict[str, Any]:
        if request.method.upper() not in BODY_METHODS:
            return {}
        body = await request.body()
        if not body:
            return {}

        content_type = request.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data = json.loads(body)
            except ValueError as e:
                logger.warning(f"Ignoring unparsable JSON body: {e}")
                return {}
            return data if isinstance(data, dict) else {}
        if "application/x-www-form-urlencoded" in content_type:
            return _collect(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
        return {}

    # ------------------------------------------------------------------
    # Stage handlers
    # ------------------------------------------------------------------

    async def _classify(self, ctx: RequestContext) -> RequestStage:
        ctx.reserved, ctx.parameters = self.classifier.classify(ctx.raw_sources)
        return RequestStage.DISPATCH

    async def _dispatch(self, ctx: RequestContext) -> RequestStage:
        self.dispatcher.resolve(ctx)
        await self.dispatcher.dispatch(ctx)
        return RequestStage.BUILD

    async def _build(self, ctx: RequestContext) -> RequestStage:
        self.assembler.build(ctx)
        ctx.enumerating = ctx.enumerate or ctx.binding.enumeration_only
        return RequestStage.ENUMERATE if ctx.enumerating else RequestStage.ANNOTATE

    async def _enumerate(self, ctx: RequestContext) -> RequestStage:
        self.assembler.enumerate(ctx)
        return RequestStage.FORMAT

    async def _annotate(self, ctx: RequestContext) -> RequestStage:
        self.assembler.annotate(ctx)
        return RequestStage.FORMAT

    async def _format(self, ctx: RequestContext) -> RequestStage:
        output = self.producers.produce(
            ctx.format, ctx.envelope, enumerate=ctx.enumerating, manifest=ctx.manifest
        )
        self.assembler.apply_output(ctx, output)
        return RequestStage.HEADERS

    async def _headers(self, ctx: RequestContext) -> RequestStage:
        self.assembler.attach_headers(ctx)
        return RequestStage.SEND


def _collect(pairs: List[tuple]) -> Dict[str, Any]:
    """Fold repeated keys into lists, keeping single values scalar."""
    collected: Dict[str, Any] = {}
    for key, value in pairs:
        if key in collected:
            existing = collected[key]
            collected[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            collected[key] = value
    return collected


def _query_parameters(request: Request) -> Dict[str, Any]:
    return _collect(request.query_params.multi_items())
