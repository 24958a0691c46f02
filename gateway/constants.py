"""Global constants for the gateway service."""

import os
from pathlib import Path
from typing import Optional

# Directory paths
GATEWAY_ROOT = Path(__file__).resolve().parent.parent  # repository root
VIEWS_DIR = Path(__file__).resolve().parent / "views"


def _resolve(path_value: str) -> Path:
    path = Path(path_value)
    return path if path.is_absolute() else (GATEWAY_ROOT / path).resolve()


def _optional_float(value: str) -> Optional[float]:
    value = value.strip()
    return float(value) if value else None


# RESTful API context root every synthesized route hangs under
CONTEXT_ROOT = os.getenv("GATEWAY_CONTEXT_ROOT", "/api")

# Plugin directory and the naming prefix a subdirectory needs to be considered a plugin
PLUGINS_DIR = _resolve(os.getenv("GATEWAY_PLUGINS_DIR", "plugins/bundled"))
PLUGIN_PREFIX = os.getenv("GATEWAY_PLUGIN_PREFIX", "gateway-")
MANIFEST_FILE = "manifest.json"
IMPLEMENTATION_DIR = "api"

# Reserved (system) parameter table
RESERVED_CONFIG_FILE = _resolve(os.getenv("GATEWAY_RESERVED_CONFIG", "config/reserved.json"))

# Maximum number of request keys kept in the timing store
TIMING_CAPACITY = int(os.getenv("GATEWAY_TIMING_CAPACITY", "1024"))

# Bounded wait for plugin calls in seconds (unset = wait forever)
PLUGIN_TIMEOUT = _optional_float(os.getenv("GATEWAY_PLUGIN_TIMEOUT", ""))

# Filename hint sent with CSV responses
CSV_ATTACHMENT_NAME = "gateway-services-request.csv"
