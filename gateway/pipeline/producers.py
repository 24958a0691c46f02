"""Format producers - render the response envelope into wire bytes."""

import csv
import io
import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from gateway.constants import CSV_ATTACHMENT_NAME, VIEWS_DIR
from gateway.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "json"
RESPONSE_VIEW = "response.html"
ENUMERATION_VIEW = "enumeration.html"

_XML_TAG_INVALID = re.compile(r"[^A-Za-z0-9_.\-]")


@dataclass
class ProducedOutput:
    body: bytes
    content_type: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class Producer:
    """A renderer plus the Content-Type it emits."""

    name: str
    content_type: str
    render: Callable[..., str]
    headers: Dict[str, str] = field(default_factory=dict)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return str(value)


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _xml_tag(key: Any) -> str:
    tag = _XML_TAG_INVALID.sub("_", str(key)) or "item"
    if not (tag[0].isalpha() or tag[0] == "_"):
        tag = "_" + tag
    return tag


def _append_xml(parent: ET.Element, key: Any, value: Any) -> None:
    # Lists repeat the element under the parent key
    if isinstance(value, (list, tuple)):
        for item in value:
            _append_xml(parent, key, item)
        return

    element = ET.SubElement(parent, _xml_tag(key))
    if isinstance(value, dict):
        for child_key, child_value in value.items():
            _append_xml(element, child_key, child_value)
    else:
        element.text = _scalar_text(value)


def json_producer(envelope: Dict[str, Any], **_: Any) -> str:
    return json.dumps(envelope, default=_json_default, ensure_ascii=False)


def xml_producer(envelope: Dict[str, Any], **_: Any) -> str:
    root = ET.Element("response")
    for key, value in envelope.items():
        _append_xml(root, key, value)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True).decode("utf-8")


def csv_producer(envelope: Dict[str, Any], **_: Any) -> str:
    """Header row from the key union of all records, then one row per record.

    Records that are not mappings still get a row, with every cell empty.
    """
    records = [r if isinstance(r, dict) else {} for r in envelope.get("results") or []]
    columns: List[str] = list(dict.fromkeys(key for record in records for key in record))

    def cell(value: Any) -> str:
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, default=_json_default, ensure_ascii=False)
        return _scalar_text(value)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for record in records:
        writer.writerow([cell(record[column]) if column in record else "" for column in columns])
    return buffer.getvalue()


class FormatProducerRegistry:
    """Maps a format token to a producer, falling back to JSON."""

    def __init__(self, views_dir: Path = VIEWS_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(views_dir)),
            autoescape=select_autoescape(["html"]),
        )
        self.env.filters["capitalize_first"] = lambda word: word[:1].upper() + word[1:] if word else word
        self._producers: Dict[str, Producer] = {}

        self.register(Producer("json", "application/json", json_producer))
        self.register(Producer("xml", "text/xml", xml_producer))
        self.register(Producer("html", "text/html", self.html_producer))
        self.register(
            Producer(
                "csv",
                "text/csv",
                csv_producer,
                headers={"Content-Disposition": f"attachment;filename={CSV_ATTACHMENT_NAME}"},
            )
        )

    def register(self, producer: Producer) -> None:
        self._producers[producer.name] = producer

    def formats(self) -> List[str]:
        return list(self._producers)

    def resolve(self, format_token: Optional[str]) -> Producer:
        """Producer for ``format_token``; unknown or missing tokens resolve to JSON."""
        token = format_token.lower() if isinstance(format_token, str) else ""
        producer = self._producers.get(token)
        if producer is None:
            if format_token:
                logger.debug(f"Unrecognized format '{format_token}', using {DEFAULT_FORMAT}")
            producer = self._producers[DEFAULT_FORMAT]
        return producer

    def produce(
        self,
        format_token: Optional[str],
        envelope: Dict[str, Any],
        enumerate: bool = False,
        manifest: Optional[PluginManifest] = None,
    ) -> ProducedOutput:
        producer = self.resolve(format_token)
        body = producer.render(envelope, enumerate=enumerate, manifest=manifest)
        return ProducedOutput(
            body=body.encode("utf-8"),
            content_type=producer.content_type,
            headers=dict(producer.headers),
        )

    def html_producer(
        self,
        envelope: Dict[str, Any],
        enumerate: bool = False,
        manifest: Optional[PluginManifest] = None,
        **_: Any,
    ) -> str:
        """Render the enumeration view in enumeration mode, the response view otherwise."""
        template = self.env.get_template(ENUMERATION_VIEW if enumerate else RESPONSE_VIEW)
        info = {
            "name": manifest.name if manifest else envelope.get("name", ""),
            "desc": manifest.description if manifest else envelope.get("description", ""),
        }
        return template.render(service=envelope, response=envelope, info=info)
