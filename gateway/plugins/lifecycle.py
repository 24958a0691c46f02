"""Plugin lifecycle - loads resource implementations and resolves their functions."""

import importlib.util
import logging
import sys
from types import ModuleType
from typing import Any, Callable, Dict, Optional, Tuple

from gateway.constants import IMPLEMENTATION_DIR
from gateway.exceptions import RegistrationError
from gateway.plugins.manifest import Resource
from gateway.plugins.registry import PluginInstance

logger = logging.getLogger(__name__)


class PluginLifecycle:
    """Turns a resource's ``implementation`` reference into a live handler object.

    ``implementation`` names a module file under the plugin's ``api/``
    folder (``widgets`` or ``widgets.py``). With a ``:ClassName`` suffix
    the class is instantiated without arguments; otherwise the module
    itself is the implementation unit.
    """

    def __init__(self, implementation_dir: str = IMPLEMENTATION_DIR):
        self.implementation_dir = implementation_dir
        self._modules: Dict[Tuple[str, str], ModuleType] = {}

    def instantiate(self, instance: PluginInstance, resource: Resource) -> Any:
        """Load the implementation module of ``resource`` and build its unit.

        Raises:
            RegistrationError: module missing, import failure, or class missing
        """
        module_name, _, class_name = resource.implementation.partition(":")
        if module_name.endswith(".py"):
            module_name = module_name[:-3]

        module = self._load_module(instance, module_name)
        if not class_name:
            return module

        factory = getattr(module, class_name, None)
        if factory is None or not callable(factory):
            raise RegistrationError(f"Module {module_name} has no class '{class_name}'")
        try:
            return factory()
        except Exception as e:
            raise RegistrationError(f"Cannot instantiate {module_name}:{class_name}: {e}") from e

    def resolve_function(self, unit: Any, function_name: str) -> Callable[..., Any]:
        """Resolve a bound function on an implementation unit.

        Raises:
            RegistrationError: function missing or not callable
        """
        func = getattr(unit, function_name, None)
        if func is None:
            raise RegistrationError(f"Implementation has no function '{function_name}'")
        if not callable(func):
            raise RegistrationError(f"'{function_name}' is not callable")
        return func

    def _load_module(self, instance: PluginInstance, module_name: str) -> ModuleType:
        key = (instance.id, module_name)
        if key in self._modules:
            return self._modules[key]

        api_dir = instance.path / self.implementation_dir
        module_file = api_dir / f"{module_name}.py"
        if not module_file.exists():
            raise RegistrationError(f"Cannot find module {module_name}.py in {api_dir}")

        # Add implementation directory to sys.path temporarily so sibling imports resolve
        plugin_dir = str(api_dir)
        added = plugin_dir not in sys.path
        if added:
            sys.path.insert(0, plugin_dir)

        try:
            spec = importlib.util.spec_from_file_location(
                f"gateway_plugin_{_safe(instance.id)}_{_safe(module_name)}",
                module_file,
            )
            if spec is None or spec.loader is None:
                raise RegistrationError(f"Cannot load module {module_file}")
            module = importlib.util.module_from_spec(spec)
            module.logger = plugin_logger(instance.id)
            spec.loader.exec_module(module)
        except RegistrationError:
            raise
        except Exception as e:
            raise RegistrationError(f"Error importing {module_file}: {e}") from e
        finally:
            if added and plugin_dir in sys.path:
                sys.path.remove(plugin_dir)

        self._modules[key] = module
        logger.debug(f"Loaded implementation {module_file}")
        return module

    def forget(self, plugin_id: str) -> None:
        """Drop cached modules of a plugin so the next load re-imports them."""
        for key in [k for k in self._modules if k[0] == plugin_id]:
            del self._modules[key]


def plugin_logger(plugin_id: str, name: Optional[str] = None) -> logging.Logger:
    """Logger for plugin-side code, ``plugin.<id>`` or ``plugin.<id>.<name>``.

    Implementation modules find it pre-bound as the module global ``logger``.
    """
    if name:
        return logging.getLogger(f"plugin.{plugin_id}.{name}")
    return logging.getLogger(f"plugin.{plugin_id}")


def _safe(name: str) -> str:
    return "".join(c if c.isalnum() else "_" for c in name)
