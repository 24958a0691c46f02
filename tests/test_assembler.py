"""Tests for response assembly and diagnostic metadata."""

from unittest.mock import patch

from gateway.pipeline.assembler import ResponseAssembler, service_name
from gateway.pipeline.context import ClientInfo, ParsedParameter, RequestContext
from gateway.pipeline.dispatcher import PluginResult
from gateway.pipeline.metadata import request_metadata, system_metadata
from gateway.pipeline.timing import API, PRE_API, TimingStore
from gateway.plugins.manifest import PluginManifest
from gateway.utils.user_agent import parse_user_agent

URI = "/api/widgets/v1/list/"
CHROME_ON_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.109 Safari/537.36"
)


def make_context(widgets_manifest, results=None, http_code=None, **reserved):
    ctx = RequestContext(method="GET", url=URI + "?price>10", route_path=URI)
    ctx.manifest = PluginManifest.model_validate(widgets_manifest)
    ctx.parameters = [ParsedParameter("price", ">", "10")]
    ctx.reserved = [ParsedParameter(k, "=", v) for k, v in reserved.items()]
    ctx.result = PluginResult(results=results or [], http_code=http_code)
    return ctx


class TestResponseAssembler:
    """Tests for ResponseAssembler stages."""

    def setup_method(self):
        self.timing = TimingStore()
        self.assembler = ResponseAssembler(self.timing)

    def test_build_envelope(self, widgets_manifest):
        ctx = make_context(widgets_manifest, results=[{"id": 1}, {"id": 2}])
        envelope = self.assembler.build(ctx)
        assert envelope == {
            "httpCode": 200,
            "url": URI + "?price>10",
            "total": 2,
            "results": [{"id": 1}, {"id": 2}],
        }
        assert envelope["total"] == len(envelope["results"])

    def test_build_keeps_plugin_http_code(self, widgets_manifest):
        ctx = make_context(widgets_manifest, http_code=201)
        self.assembler.build(ctx)
        assert ctx.envelope["httpCode"] == 201
        assert ctx.http_code == 201

    def test_enumeration_envelope(self, widgets_manifest):
        ctx = make_context(widgets_manifest, enumerate=True)
        envelope = self.assembler.enumerate(ctx)

        assert envelope["plugin"] == "widgets"
        assert envelope["name"] == "widget catalog"
        assert envelope["description"] == "Widgets for testing"
        assert envelope["headers"] == [{"header": "pagination", "value": True}]
        assert envelope["route"] == URI
        assert envelope["serviceName"] == "list"
        assert envelope["resource"]["route"] == "list"
        assert envelope["resource"]["httpMethods"][0]["httpMethod"] == "GET"
        assert "total" not in envelope

    def test_annotate_adds_requested_blocks(self, widgets_manifest):
        ctx = make_context(widgets_manifest, performance=True, system=False, request=True)
        for phase in (PRE_API, API):
            self.timing.start(ctx.request_id, phase)
            self.timing.end(ctx.request_id, phase)
        self.assembler.build(ctx)
        envelope = self.assembler.annotate(ctx)

        assert "system" not in envelope
        pre = self.timing.get(ctx.request_id, PRE_API)
        api = self.timing.get(ctx.request_id, API)
        assert envelope["performance"]["requestTimeMs"] == pre.total + api.total
        assert envelope["performance"]["requestStarted"] == pre.start.isoformat()
        assert envelope["performance"]["requestEnded"] == api.end.isoformat()
        assert envelope["request"]["apiParameters"] == [{"key": "price", "op": ">", "value": "10"}]

    def test_annotate_without_flags_is_a_no_op(self, widgets_manifest):
        ctx = make_context(widgets_manifest)
        self.assembler.build(ctx)
        assert set(self.assembler.annotate(ctx)) == {"httpCode", "url", "total", "results"}

    def test_cors_headers_when_enabled(self, widgets_manifest):
        ctx = make_context(widgets_manifest)
        headers = self.assembler.attach_headers(ctx)
        assert headers["Access-Control-Allow-Origin"] == "https://example.com"
        assert headers["Access-Control-Allow-Headers"] == "X-Requested-With, Content-Type"
        assert headers["Access-Control-Allow-Methods"] == "POST, GET, PUT, DELETE, OPTIONS"

    def test_no_cors_headers_when_disabled(self, widgets_manifest):
        widgets_manifest["route"]["cors"]["enable"] = False
        ctx = make_context(widgets_manifest)
        assert self.assembler.attach_headers(ctx) == {}

    def test_service_name(self):
        assert service_name("/api/svc/v1/a/v2/b/") == "b"
        assert service_name("/") == ""


class TestMetadata:
    """Tests for metadata blocks."""

    def test_system_metadata(self):
        class Memory:
            available = 1_234_567_890

        with patch("gateway.pipeline.metadata.psutil.virtual_memory", return_value=Memory()), \
                patch("gateway.pipeline.metadata.psutil.cpu_count", return_value=8), \
                patch("gateway.pipeline.metadata.psutil.getloadavg", return_value=(0.5, 0.4, 0.3)), \
                patch("gateway.pipeline.metadata.socket.gethostname", return_value="node-1"):
            block = system_metadata()["system"]

        assert block == {"proc": 8, "server": "node-1", "load": 0.5, "freeMem": 1234.57}

    def test_request_metadata(self):
        client = ClientInfo(
            requested_with="XMLHttpRequest",
            user_agent=CHROME_ON_MAC,
            ip_address="10.0.0.5",
            secure=True,
        )
        block = request_metadata(
            client,
            [ParsedParameter("age", ">", "21")],
            [ParsedParameter("format", "=", "xml")],
        )["request"]

        assert block["viaAjax"] is True
        assert block["os"] == "OS X"
        assert block["platform"] == "Apple Mac"
        assert block["browser"] == "Chrome"
        assert block["browserVersion"] == "120.0.6099.109"
        assert block["ipAddress"] == "10.0.0.5"
        assert block["ssl"] is True
        assert block["globalParameters"] == [{"key": "format", "op": "=", "value": "xml"}]


class TestUserAgent:
    """Tests for User-Agent parsing."""

    def test_empty_header(self):
        agent = parse_user_agent(None)
        assert (agent.os, agent.browser, agent.version) == ("unknown", "unknown", "unknown")

    def test_firefox_on_linux(self):
        agent = parse_user_agent("Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0")
        assert agent.browser == "Firefox"
        assert agent.version == "121.0"
        assert agent.os == "Linux"

    def test_edge_is_not_reported_as_chrome(self):
        agent = parse_user_agent(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36 Edg/120.0.2210.91"
        )
        assert agent.browser == "Edge"
        assert agent.os == "Windows"
        assert agent.platform == "Microsoft Windows"

    def test_curl(self):
        assert parse_user_agent("curl/8.4.0").browser == "curl"
