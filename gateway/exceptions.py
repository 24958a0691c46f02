"""Gateway exception hierarchy."""

from pathlib import Path
from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""

    status_code = 500


class ManifestError(GatewayError):
    """A plugin manifest is missing, unreadable or fails schema validation."""

    def __init__(self, message: str, plugin_dir: Optional[Path] = None):
        super().__init__(message)
        self.plugin_dir = plugin_dir


class RegistrationError(GatewayError):
    """A resource or HTTP-method binding could not be registered."""


class RouteNotFoundError(GatewayError):
    """No plugin binding exists for the requested verb and URI."""

    status_code = 404


class PluginExecutionError(GatewayError):
    """A plugin function raised while handling a request."""


class PluginResultError(GatewayError):
    """A plugin function returned something other than a result mapping."""


class PluginTimeoutError(GatewayError):
    """A plugin call exceeded the configured bounded wait."""

    status_code = 504


class InstallerRequired(GatewayError):
    """Startup configuration is unusable; the installer must take over."""

    status_code = 503
