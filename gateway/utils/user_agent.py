"""User-Agent header parsing for request metadata."""

import re
from dataclasses import dataclass
from typing import Optional

# Order matters: Edge and Opera also announce Chrome, Chrome also announces Safari
_BROWSERS = [
    ("Edge", re.compile(r"Edg(?:e|A|iOS)?/([\d.]+)")),
    ("Opera", re.compile(r"(?:OPR|Opera)/([\d.]+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/([\d.]+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/([\d.]+)")),
    ("Safari", re.compile(r"Version/([\d.]+).*Safari/")),
    ("IE", re.compile(r"(?:MSIE |Trident/.*rv:)([\d.]+)")),
    ("curl", re.compile(r"curl/([\d.]+)")),
]

_OPERATING_SYSTEMS = [
    ("Windows Phone", re.compile(r"Windows Phone")),
    ("Windows", re.compile(r"Windows NT")),
    ("iOS", re.compile(r"iPhone|iPad|iPod")),
    ("Android", re.compile(r"Android")),
    ("OS X", re.compile(r"Mac OS X|Macintosh")),
    ("Linux", re.compile(r"Linux")),
]

_PLATFORMS = [
    ("iPhone", re.compile(r"iPhone")),
    ("iPad", re.compile(r"iPad")),
    ("Android", re.compile(r"Android")),
    ("Microsoft Windows", re.compile(r"Windows")),
    ("Apple Mac", re.compile(r"Macintosh")),
    ("Linux", re.compile(r"Linux|X11")),
]


@dataclass(frozen=True)
class UserAgent:
    os: str = "unknown"
    platform: str = "unknown"
    browser: str = "unknown"
    version: str = "unknown"


def _first(table, header: str) -> Optional[str]:
    for name, pattern in table:
        if pattern.search(header):
            return name
    return None


def parse_user_agent(header: Optional[str]) -> UserAgent:
    """Extract OS, platform, browser and browser version from a User-Agent string."""
    if not header:
        return UserAgent()

    browser, version = "unknown", "unknown"
    for name, pattern in _BROWSERS:
        match = pattern.search(header)
        if match:
            browser, version = name, match.group(1)
            break

    return UserAgent(
        os=_first(_OPERATING_SYSTEMS, header) or "unknown",
        platform=_first(_PLATFORMS, header) or "unknown",
        browser=browser,
        version=version,
    )
