"""Tests for the format producer registry."""

import json
import xml.etree.ElementTree as ET

import pytest

from gateway.pipeline.producers import FormatProducerRegistry, Producer
from gateway.plugins.manifest import PluginManifest

ENVELOPE = {
    "httpCode": 200,
    "url": "/api/widgets/v1/list/",
    "total": 2,
    "results": [
        {"id": 1, "name": "gear", "tags": ["a", "b"]},
        {"id": 2, "price": 9.5},
    ],
}


class TestFormatProducerRegistry:
    """Tests for FormatProducerRegistry."""

    def setup_method(self):
        self.producers = FormatProducerRegistry()

    def test_registered_formats(self):
        assert set(self.producers.formats()) == {"json", "xml", "html", "csv"}

    @pytest.mark.parametrize(
        "token, content_type",
        [("json", "application/json"), ("xml", "text/xml"), ("html", "text/html"), ("csv", "text/csv")],
    )
    def test_content_types(self, token, content_type):
        assert self.producers.produce(token, ENVELOPE).content_type == content_type

    @pytest.mark.parametrize("token", [None, "", "yaml", "JSONP", {"x": 1}, ["xml"], 7])
    def test_unknown_format_renders_as_json(self, token):
        expected = self.producers.produce("json", ENVELOPE)
        output = self.producers.produce(token, ENVELOPE)
        assert output.body == expected.body
        assert output.content_type == expected.content_type

    def test_json_is_identity(self):
        output = self.producers.produce("json", ENVELOPE)
        assert json.loads(output.body) == ENVELOPE

    def test_xml_structure(self):
        output = self.producers.produce("xml", ENVELOPE)
        root = ET.fromstring(output.body)
        assert root.tag == "response"
        assert root.findtext("total") == "2"
        results = root.findall("results")
        assert len(results) == 2
        assert [t.text for t in results[0].findall("tags")] == ["a", "b"]

    def test_csv_uses_key_union(self):
        output = self.producers.produce("csv", ENVELOPE)
        lines = output.body.decode("utf-8").splitlines()
        assert lines[0] == "id,name,tags,price"
        assert lines[1] == '1,gear,"[""a"", ""b""]",'
        assert lines[2] == "2,,,9.5"
        assert output.headers["Content-Disposition"] == "attachment;filename=gateway-services-request.csv"

    def test_csv_keeps_a_row_per_record(self):
        envelope = dict(ENVELOPE, results=[{"id": 1}, 2, "three"], total=3)
        lines = self.producers.produce("csv", envelope).body.decode("utf-8").splitlines()
        assert lines == ["id", "1", '""', '""']

    def test_html_response_view(self):
        output = self.producers.produce("html", ENVELOPE)
        body = output.body.decode("utf-8")
        assert "<table>" in body
        assert "gear" in body
        assert "Parameter</th>" not in body

    def test_html_enumeration_view(self, widgets_manifest):
        manifest = PluginManifest.model_validate(widgets_manifest)
        envelope = {
            "plugin": manifest.id,
            "name": manifest.name,
            "description": manifest.description,
            "headers": manifest.enabled_options(),
            "route": "/api/widgets/v1/list/",
            "serviceName": "list",
            "resource": manifest.resources[0].model_dump(by_alias=True),
        }
        body = self.producers.produce("html", envelope, enumerate=True, manifest=manifest).body.decode("utf-8")
        assert "<h1>widget catalog</h1>" in body
        assert "Parameter</th>" in body
        assert "price" in body
        assert "List (v1)" in body

    def test_html_is_escaped(self):
        envelope = dict(ENVELOPE, results=[{"name": "<script>"}], total=1)
        body = self.producers.produce("html", envelope).body.decode("utf-8")
        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_custom_producer(self):
        self.producers.register(Producer("text", "text/plain", lambda envelope, **_: str(envelope["total"])))
        output = self.producers.produce("text", ENVELOPE)
        assert output.body == b"2"
        assert output.content_type == "text/plain"
