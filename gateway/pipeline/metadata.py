"""Diagnostic metadata blocks injected into the response envelope."""

import os
import socket
from typing import Any, Dict, List, Optional

import psutil

from gateway.pipeline.context import ClientInfo, ParsedParameter
from gateway.pipeline.timing import API, PRE_API, TimingStore
from gateway.utils.user_agent import parse_user_agent


def performance_metadata(timing: TimingStore, key: str) -> Dict[str, Any]:
    """Elapsed milliseconds over the pre-api and api phases with their boundary timestamps."""
    pre = timing.get(key, PRE_API)
    api = timing.get(key, API)
    total = (pre.total or 0) + (api.total or 0) if pre and api else None
    return {
        "performance": {
            "requestStarted": pre.start.isoformat() if pre and pre.start else None,
            "requestEnded": api.end.isoformat() if api and api.end else None,
            "requestTimeMs": total,
        }
    }


def _load_average() -> float:
    try:
        return psutil.getloadavg()[0]
    except (AttributeError, OSError):
        return 0.0


def system_metadata() -> Dict[str, Any]:
    """Host facts at the time of the request."""
    return {
        "system": {
            "proc": psutil.cpu_count() or os.cpu_count() or 0,
            "server": socket.gethostname(),
            "load": _load_average(),
            "freeMem": round(psutil.virtual_memory().available / 1_000_000, 2),
        }
    }


def request_metadata(
    client: Optional[ClientInfo],
    parameters: List[ParsedParameter],
    reserved: List[ParsedParameter],
) -> Dict[str, Any]:
    """Caller facts plus the parameter lists as classified."""
    client = client or ClientInfo()
    agent = parse_user_agent(client.user_agent)
    return {
        "request": {
            "viaAjax": client.via_ajax,
            "os": agent.os,
            "platform": agent.platform,
            "browser": agent.browser,
            "browserVersion": agent.version,
            "ipAddress": client.ip_address,
            "ssl": client.secure,
            "apiParameters": [p.to_dict() for p in parameters],
            "globalParameters": [p.to_dict() for p in reserved],
        }
    }
