"""Per-request pipeline state: parsed parameters, the parameter view and the request context."""

import re
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from gateway.plugins.manifest import PluginManifest
from gateway.plugins.registry import RouteBinding

_EMAIL_RE = re.compile(
    r"^(([^<>()\[\]\\.,;:\s@\"]+(\.[^<>()\[\]\\.,;:\s@\"]+)*)|(\".+\"))@"
    r"((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$"
)

OPERATOR_TYPES = {
    "=": "assignment",
    ">": "greater-than",
    "<": "less-than",
    ">=": "greater-than-or-equal",
    "<=": "less-than-or-equal",
}


@dataclass(frozen=True)
class ClientInfo:
    """Transport facts about the caller, captured when the request enters the pipeline."""

    requested_with: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    secure: bool = False

    @property
    def via_ajax(self) -> bool:
        return (self.requested_with or "").lower() == "xmlhttprequest"


class RequestStage(str, Enum):
    """Named stages a request passes through, in order."""

    CLASSIFY = "classify"
    DISPATCH = "dispatch"
    BUILD = "build"
    ENUMERATE = "enumerate"
    ANNOTATE = "annotate"
    FORMAT = "format"
    HEADERS = "headers"
    SEND = "send"
    DONE = "done"


@dataclass(frozen=True)
class ParsedParameter:
    """One classified ``key op value`` triple."""

    key: str
    op: str
    value: Any

    @property
    def op_type(self) -> str:
        return OPERATOR_TYPES.get(self.op, "assignment")

    @property
    def value_type(self) -> str:
        """Best-effort type of the value: number, email or string."""
        if isinstance(self.value, bool):
            return "boolean"
        if isinstance(self.value, (int, float)):
            return "number"
        if isinstance(self.value, str):
            try:
                if float(self.value):
                    return "number"
            except ValueError:
                pass
            if _EMAIL_RE.match(self.value):
                return "email"
        return "string"

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "op": self.op, "value": self.value}


class ParameterView(Sequence):
    """Read-only view over the domain parameters handed to a plugin."""

    def __init__(self, parameters: Sequence[ParsedParameter]):
        self._parameters = tuple(parameters)

    def __getitem__(self, index):
        return self._parameters[index]

    def __len__(self) -> int:
        return len(self._parameters)

    def __iter__(self) -> Iterator[ParsedParameter]:
        return iter(self._parameters)

    def count(self, *args) -> int:
        """Number of parameters, or occurrences of one parameter when given."""
        if args:
            return self._parameters.count(*args)
        return len(self._parameters)

    def keys(self) -> List[str]:
        """Unique parameter keys in first-seen order."""
        return list(dict.fromkeys(p.key for p in self._parameters))

    def get(self, key: str, default: Optional[ParsedParameter] = None) -> Optional[ParsedParameter]:
        return next((p for p in self._parameters if p.key == key), default)

    def to_list(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self._parameters]

    def __repr__(self) -> str:
        return f"ParameterView({list(self._parameters)!r})"


@dataclass
class RequestContext:
    """State threaded through every stage of one request."""

    method: str
    url: str
    route_path: str
    identity: str = "anonymous"
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    raw_sources: List[Dict[str, Any]] = field(default_factory=list)
    client: ClientInfo = field(default_factory=ClientInfo)

    # Filled in by the stages
    reserved: List[ParsedParameter] = field(default_factory=list)
    parameters: List[ParsedParameter] = field(default_factory=list)
    binding: Optional[RouteBinding] = None
    manifest: Optional[PluginManifest] = None
    result: Optional[Any] = None
    envelope: Dict[str, Any] = field(default_factory=dict)
    body: bytes = b""
    content_type: str = "application/json"
    headers: Dict[str, str] = field(default_factory=dict)
    http_code: int = 200
    enumerating: bool = False
    stage: RequestStage = RequestStage.CLASSIFY

    @property
    def plugin_id(self) -> Optional[str]:
        return self.binding.plugin_id if self.binding else None

    def reserved_value(self, key: str, default: Any = None) -> Any:
        """Value of a classified reserved parameter, ``default`` if absent."""
        match = next((p for p in self.reserved if p.key == key), None)
        return match.value if match else default

    @property
    def format(self) -> Optional[str]:
        return self.reserved_value("format")

    @property
    def enumerate(self) -> bool:
        return self.reserved_value("enumerate", False) is True
