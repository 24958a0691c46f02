"""Reserved (system) parameter table - manages config/reserved.json."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "1", "yes", "on"}

DEFAULT_RESERVED: Dict[str, Dict[str, Any]] = {
    "format": {"type": "string", "defaultValue": "json"},
    "performance": {"type": "boolean", "defaultValue": False},
    "system": {"type": "boolean", "defaultValue": False},
    "request": {"type": "boolean", "defaultValue": False},
    "enumerate": {"type": "boolean", "defaultValue": False},
}


@dataclass(frozen=True)
class ReservedParameter:
    """Declared type and default of one reserved parameter."""

    name: str
    type: str
    default_value: Any

    @property
    def default_string(self) -> str:
        """Default rendered the way it arrives over the wire (``false``, not ``False``)."""
        if isinstance(self.default_value, bool):
            return "true" if self.default_value else "false"
        return str(self.default_value)

    def coerce(self, value: Any) -> Any:
        """Convert a raw request value to the declared type."""
        if self.type == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                return value.strip().lower() in _TRUE_STRINGS
            return bool(value)
        if self.type == "number":
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return value
            try:
                number = float(value)
            except (TypeError, ValueError):
                return self.default_value
            return int(number) if number.is_integer() else number
        if value is None:
            return ""
        if isinstance(value, (list, dict)):
            return json.dumps(value, sort_keys=True)
        return str(value)


class ReservedParameterRegistry:
    """Read-only table of reserved parameters.

    File format:
    {
        "format": {"type": "string", "defaultValue": "json"},
        "enumerate": {"type": "boolean", "defaultValue": false}
    }
    """

    def __init__(self, table: Optional[Dict[str, Dict[str, Any]]] = None):
        table = DEFAULT_RESERVED if table is None else table
        self._parameters: Dict[str, ReservedParameter] = {
            name: ReservedParameter(
                name=name,
                type=spec.get("type", "string"),
                default_value=spec.get("defaultValue"),
            )
            for name, spec in table.items()
        }

    @classmethod
    def from_file(cls, config_file: Path) -> "ReservedParameterRegistry":
        """Load the table from disk, falling back to the built-in defaults."""
        if config_file.exists():
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    table = json.load(f)
                if not isinstance(table, dict):
                    raise ValueError("reserved parameter table must be a JSON object")
                logger.info(f"Loaded {len(table)} reserved parameter(s) from {config_file}")
                return cls(table)
            except (json.JSONDecodeError, IOError, ValueError, AttributeError) as e:
                logger.error(f"Error loading reserved parameters: {e}")
        else:
            logger.warning(f"Reserved parameter file not found: {config_file}, using defaults")

        return cls()

    def __contains__(self, name: str) -> bool:
        return name in self._parameters

    def __iter__(self) -> Iterator[ReservedParameter]:
        return iter(self._parameters.values())

    def __len__(self) -> int:
        return len(self._parameters)

    def get(self, name: str) -> Optional[ReservedParameter]:
        return self._parameters.get(name)

    def default(self, name: str) -> Any:
        parameter = self._parameters.get(name)
        return parameter.default_value if parameter else None

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            p.name: {"type": p.type, "defaultValue": p.default_value}
            for p in self._parameters.values()
        }
