"""Shared fixtures: temporary plugin directories and a gateway test client."""

import copy
import json
import textwrap
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from gateway.dependencies import reset_services

WIDGETS_MANIFEST = {
    "informational": {
        "plugin": "widgets",
        "name": "widget catalog",
        "description": "Widgets for testing",
    },
    "route": {
        "uri": "/widgets/",
        "options": {"pagination": {"enable": True}, "caching": {"enable": False}},
        "cors": {"enable": True, "whitelist": "https://example.com"},
    },
    "resources": [
        {
            "version": 1,
            "route": "list",
            "implementation": "widgets",
            "httpMethods": [
                {"httpMethod": "GET", "function": "list_widgets"},
                {"httpMethod": "POST", "function": "create_widget"},
                {"httpMethod": "PUT", "function": "explode"},
                {"httpMethod": "DELETE", "function": "malformed"},
            ],
            "parameters": [
                {
                    "parameter": "price",
                    "type": "number",
                    "operators": ["=", "<", ">"],
                    "required": [{"method": "post", "isRequired": True}],
                }
            ],
        }
    ],
}

WIDGETS_MODULE = textwrap.dedent(
    '''
    def list_widgets(parameters):
        return {"results": [{"key": p.key, "op": p.op, "value": p.value} for p in parameters]}


    def create_widget(parameters):
        return {"httpCode": 201, "results": [{"created": True}]}


    def explode(parameters):
        raise RuntimeError("boom")


    def malformed(parameters):
        return ["not", "a", "mapping"]
    '''
)


def write_plugin(root: Path, dirname: str, manifest, modules=None) -> Path:
    """Create a plugin directory with a manifest and implementation modules."""
    plugin_dir = root / dirname
    (plugin_dir / "api").mkdir(parents=True, exist_ok=True)
    with open(plugin_dir / "manifest.json", "w", encoding="utf-8") as f:
        if isinstance(manifest, str):
            f.write(manifest)
        else:
            json.dump(manifest, f)
    for name, source in (modules or {}).items():
        (plugin_dir / "api" / f"{name}.py").write_text(source, encoding="utf-8")
    return plugin_dir


@pytest.fixture
def widgets_manifest():
    return copy.deepcopy(WIDGETS_MANIFEST)


@pytest.fixture
def plugins_dir(tmp_path, widgets_manifest):
    root = tmp_path / "plugins"
    root.mkdir()
    write_plugin(root, "gateway-widgets", widgets_manifest, {"widgets": WIDGETS_MODULE})
    return root


@pytest.fixture
def client(plugins_dir):
    from app import create_app

    reset_services()
    app = create_app(plugins_dir)
    with TestClient(app) as test_client:
        yield test_client
    reset_services()
