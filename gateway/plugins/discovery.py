"""Plugin discovery - scans the plugin directory and loads manifests."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from gateway.constants import MANIFEST_FILE, PLUGIN_PREFIX
from gateway.events import EventEmitter
from gateway.exceptions import InstallerRequired, ManifestError
from gateway.plugins.manifest import PluginManifest
from gateway.plugins.registry import PluginInstance, PluginState

logger = logging.getLogger(__name__)


class PluginDiscovery:
    """Discovers plugins by scanning a directory for prefixed subdirectories.

    One bad plugin never aborts the scan: its directory is skipped,
    counted in ``failed`` and surfaced through a ``failure`` event.

    Events:
        loaded(instance): a manifest was parsed and validated
        failure(directory, reason): a plugin directory was skipped
    """

    def __init__(self, prefix: str = PLUGIN_PREFIX, manifest_file: str = MANIFEST_FILE):
        self.prefix = prefix
        self.manifest_file = manifest_file
        self.events = EventEmitter()
        self.failed = 0

    def load(self, directory: Path) -> Dict[str, PluginManifest]:
        """Load every plugin manifest under ``directory``.

        Args:
            directory: Plugin root directory

        Returns:
            Mapping of plugin identifier to manifest
        """
        return {instance.id: instance.manifest for instance in self.discover_all(directory)}

    def discover_all(self, directory: Path) -> List[PluginInstance]:
        """Discover all plugins in ``directory``.

        Colliding identifiers are all returned in scan order; whoever
        registers them keeps the last one.

        Raises:
            InstallerRequired: the plugin directory itself does not exist
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise InstallerRequired(f"Plugin directory does not exist: {directory}")

        self.failed = 0
        discovered = []
        for item in sorted(directory.iterdir()):
            if not item.is_dir() or not item.name.startswith(self.prefix):
                continue
            try:
                instance = self.discover_single(item)
            except ManifestError as e:
                self._fail(item, str(e))
                continue
            discovered.append(instance)
            self.events.publish("loaded", instance)

        logger.info(
            f"Discovered {len(discovered)} plugin(s) in {directory} ({self.failed} failed)"
        )
        return discovered

    def discover_single(self, plugin_path: Path) -> PluginInstance:
        """Load and validate the manifest of one plugin directory.

        Raises:
            ManifestError: manifest missing, not JSON, or failing the schema
        """
        manifest_file = plugin_path / self.manifest_file
        if not manifest_file.exists():
            raise ManifestError(f"No {self.manifest_file} found", plugin_path)

        try:
            with open(manifest_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            manifest = PluginManifest.model_validate(data)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Invalid JSON in {manifest_file}: {e}", plugin_path) from e
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest in {manifest_file}: {e}", plugin_path) from e
        except UnicodeDecodeError as e:
            raise ManifestError(f"{manifest_file} is not valid UTF-8: {e}", plugin_path) from e
        except OSError as e:
            raise ManifestError(f"Error reading {manifest_file}: {e}", plugin_path) from e

        logger.debug(f"Discovered plugin: {manifest.id} at {plugin_path}")
        return PluginInstance(manifest=manifest, path=plugin_path, state=PluginState.DISCOVERED)

    def find(self, directory: Path, plugin_id: str) -> Optional[PluginInstance]:
        """Return the last plugin in ``directory`` declaring ``plugin_id``."""
        match = None
        for instance in self.discover_all(directory):
            if instance.id == plugin_id:
                match = instance
        return match

    def _fail(self, plugin_path: Path, reason: str) -> None:
        self.failed += 1
        logger.error(f"Skipping plugin {plugin_path.name}: {reason}")
        self.events.publish("failure", plugin_path.name, reason)
