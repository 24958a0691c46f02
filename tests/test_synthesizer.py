"""Tests for route synthesis and readiness tracking."""

from gateway.events import EventEmitter
from gateway.plugins.discovery import PluginDiscovery
from gateway.plugins.lifecycle import PluginLifecycle
from gateway.plugins.manifest import PluginManifest
from gateway.plugins.registry import PluginRegistry, PluginState
from gateway.plugins.synthesizer import ReadinessTracker, RouteSynthesizer, compose_uris

from conftest import write_plugin


class RecordingTransport:
    """Stands in for FastAPI, recording every registered route."""

    def __init__(self, fail_on=None):
        self.routes = []
        self.fail_on = fail_on

    def add_api_route(self, path, endpoint, methods=None, include_in_schema=True):
        if self.fail_on and self.fail_on in path:
            raise ValueError("transport refused")
        self.routes.append((methods[0], path, include_in_schema))


async def entry_point(request):
    return None


def make_manifest(resources, uri="/svc/"):
    return PluginManifest.model_validate(
        {"informational": {"plugin": "svc"}, "route": {"uri": uri}, "resources": resources}
    )


class TestComposeUris:
    """Tests for URI composition."""

    def test_single_resource(self):
        manifest = make_manifest(
            [{"version": 1, "route": "list", "implementation": "w", "httpMethods": []}],
            uri="/widgets/",
        )
        assert [uri for _, uri in compose_uris("/api", manifest)] == ["/api/widgets/v1/list/"]

    def test_resources_accumulate_prefix(self):
        manifest = make_manifest(
            [
                {"version": 1, "route": "a", "implementation": "w"},
                {"version": 2, "route": "b", "implementation": "w"},
                {"version": 1, "route": "c", "implementation": "w"},
            ]
        )
        assert [uri for _, uri in compose_uris("/api", manifest)] == [
            "/api/svc/v1/a/",
            "/api/svc/v1/a/v2/b/",
            "/api/svc/v1/a/v2/b/v1/c/",
        ]


class TestReadinessTracker:
    """Tests for the quiescence detector."""

    def setup_method(self):
        self.events = EventEmitter()
        self.fired = []
        self.events.subscribe("ready", self.fired.append)

    def test_ready_when_all_succeed(self):
        tracker = ReadinessTracker(2, self.events)
        tracker.succeed()
        assert not tracker.ready
        tracker.succeed()
        assert tracker.ready
        assert self.fired == [2]

    def test_failure_settles_the_count(self):
        tracker = ReadinessTracker(2, self.events)
        tracker.succeed()
        tracker.fail()
        assert tracker.ready
        assert tracker.expected == 1
        assert self.fired == [1]

    def test_nothing_expected_is_ready_immediately(self):
        tracker = ReadinessTracker(0, self.events)
        assert tracker.ready
        assert self.fired == [0]


class TestRouteSynthesizer:
    """Tests for RouteSynthesizer registration."""

    def setup_method(self):
        self.registry = PluginRegistry()
        self.synthesizer = RouteSynthesizer(self.registry, PluginLifecycle(), "/api", entry_point)
        self.transport = RecordingTransport()
        self.ready = []
        self.failures = []
        self.synthesizer.events.subscribe("ready", self.ready.append)
        self.synthesizer.events.subscribe("failure", lambda p, r: self.failures.append(p))

    def synthesize(self, plugins_dir):
        instances = PluginDiscovery().discover_all(plugins_dir)
        return self.synthesizer.synthesize(self.transport, instances)

    def test_registers_every_verb_and_options(self, plugins_dir):
        tracker = self.synthesize(plugins_dir)

        assert tracker.ready
        assert self.ready == [1]
        assert ("GET", "/api/widgets/v1/list/", True) in self.transport.routes
        assert ("POST", "/api/widgets/v1/list/", True) in self.transport.routes
        assert ("OPTIONS", "/api/widgets/v1/list/", False) in self.transport.routes

        binding = self.registry.resolve("get", "/api/widgets/v1/list/")
        assert binding.plugin_id == "widgets"
        assert binding.function_name == "list_widgets"
        assert callable(binding.handler)
        assert self.registry.resolve("OPTIONS", "/api/widgets/v1/list/").enumeration_only
        assert self.registry.get("widgets").state == PluginState.REGISTERED

    def test_declared_options_binding_is_kept(self, tmp_path):
        manifest = {
            "informational": {"plugin": "opt"},
            "route": {"uri": "/opt/"},
            "resources": [
                {
                    "version": 1,
                    "route": "x",
                    "implementation": "mod",
                    "httpMethods": [{"httpMethod": "OPTIONS", "function": "describe"}],
                }
            ],
        }
        write_plugin(tmp_path, "gateway-opt", manifest, {"mod": "def describe(p):\n    return {'results': []}\n"})
        self.synthesize(tmp_path)

        binding = self.registry.resolve("OPTIONS", "/api/opt/v1/x/")
        assert binding.function_name == "describe"
        assert not binding.enumeration_only

    def test_class_implementation_is_instantiated(self, tmp_path):
        manifest = {
            "informational": {"plugin": "cls"},
            "route": {"uri": "/cls/"},
            "resources": [
                {
                    "version": 1,
                    "route": "item",
                    "implementation": "items.py:Items",
                    "httpMethods": [{"httpMethod": "GET", "function": "fetch"}],
                }
            ],
        }
        source = "class Items:\n    def fetch(self, parameters):\n        return {'results': [1]}\n"
        write_plugin(tmp_path, "gateway-cls", manifest, {"items": source})
        self.synthesize(tmp_path)

        binding = self.registry.resolve("GET", "/api/cls/v1/item/")
        assert binding.handler(None) == {"results": [1]}

    def test_missing_module_fails_plugin_but_not_others(self, plugins_dir, widgets_manifest):
        widgets_manifest["informational"]["plugin"] = "ghost"
        widgets_manifest["route"]["uri"] = "/ghost/"
        write_plugin(plugins_dir, "gateway-ghost", widgets_manifest)

        tracker = self.synthesize(plugins_dir)

        assert tracker.ready
        assert tracker.expected == 1
        assert self.ready == [1]
        assert self.failures == ["ghost"]
        assert self.registry.get("ghost").state == PluginState.ERROR
        assert self.registry.routes_for("ghost") == []
        assert self.registry.has_route("GET", "/api/widgets/v1/list/")

    def test_missing_function_leaves_plugin_partial(self, tmp_path):
        manifest = {
            "informational": {"plugin": "half"},
            "route": {"uri": "/half/"},
            "resources": [
                {
                    "version": 1,
                    "route": "good",
                    "implementation": "mod",
                    "httpMethods": [{"httpMethod": "GET", "function": "present"}],
                },
                {
                    "version": 1,
                    "route": "bad",
                    "implementation": "mod",
                    "httpMethods": [{"httpMethod": "GET", "function": "absent"}],
                },
            ],
        }
        write_plugin(tmp_path, "gateway-half", manifest, {"mod": "def present(p):\n    return {'results': []}\n"})
        self.synthesize(tmp_path)

        instance = self.registry.get("half")
        assert instance.state == PluginState.PARTIAL
        assert "absent" in instance.error
        assert self.registry.has_route("GET", "/api/half/v1/good/")
        assert not self.registry.has_route("GET", "/api/half/v1/good/v1/bad/")

    def test_transport_failure_is_isolated(self, plugins_dir):
        self.transport = RecordingTransport(fail_on="/widgets/")
        tracker = self.synthesize(plugins_dir)

        assert tracker.ready
        assert self.registry.get("widgets").state == PluginState.ERROR

    def test_resynthesis_replaces_plugin(self, plugins_dir):
        self.synthesize(plugins_dir)
        self.synthesize(plugins_dir)

        assert self.registry.count() == 1
        assert len(self.registry.routes_for("widgets")) == 5
        assert self.ready == [1, 1]

    def test_plugin_module_gets_a_plugin_logger(self, plugins_dir):
        self.synthesize(plugins_dir)
        handler = self.registry.resolve("GET", "/api/widgets/v1/list/").handler
        assert handler.__globals__["logger"].name == "plugin.widgets"
