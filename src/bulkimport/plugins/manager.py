# src/bulkimport/plugins/manager.py
"""Plugin manager for observer discovery, registration and chain building.

Uses pluggy for hook-based registration. Names are resolved once, when the
chain is built from settings; rows are never dispatched by name.
"""

from collections.abc import Sequence
from typing import Any

import pluggy

from bulkimport.contracts.errors import PipelineConfigurationError
from bulkimport.core.config import ObserverSettings
from bulkimport.observers import BUILTIN_OBSERVERS, BaseObserver, ObserverChain
from bulkimport.plugins.hookspecs import PROJECT_NAME, BulkImportObserverSpec, hookimpl


class _BuiltinObservers:
    """hookimpl provider for the observers shipped with bulkimport."""

    @hookimpl
    def bulkimport_get_observers(self) -> list[type[BaseObserver]]:
        return list(BUILTIN_OBSERVERS)


class PluginManager:
    """Manages observer discovery, registration and lookup.

    Usage:
        manager = PluginManager()
        manager.register_builtin_plugins()
        chain = manager.build_chain(settings.observers)
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(BulkImportObserverSpec)
        self._observers: dict[str, type[BaseObserver]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the built-in observers. Call once at startup."""
        self.register(_BuiltinObservers())

    def register(self, plugin: Any) -> None:
        """Register a plugin object implementing bulkimport hooks.

        Raises:
            ValueError: If the plugin provides an observer name that is
                already registered by another class
        """
        self._pm.register(plugin)
        try:
            self._refresh_cache()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_cache(self) -> None:
        observers: dict[str, type[BaseObserver]] = {}
        for batch in self._pm.hook.bulkimport_get_observers():
            for cls in batch:
                existing = observers.get(cls.name)
                if existing is not None and existing is not cls:
                    raise ValueError(
                        f"Duplicate observer name '{cls.name}': {existing.__qualname__} and {cls.__qualname__}"
                    )
                observers[cls.name] = cls
        self._observers = observers

    def get_observers(self) -> list[type[BaseObserver]]:
        """Registered observer classes, sorted by name."""
        return [self._observers[name] for name in sorted(self._observers)]

    def get_observer_by_name(self, name: str) -> type[BaseObserver]:
        """Look up an observer class.

        Raises:
            PipelineConfigurationError: If no observer has that name
        """
        try:
            return self._observers[name]
        except KeyError:
            available = ", ".join(sorted(self._observers)) or "(none)"
            raise PipelineConfigurationError(f"Unknown observer '{name}'. Available observers: {available}") from None

    def build_chain(self, settings: Sequence[ObserverSettings]) -> ObserverChain:
        """Instantiate observers in settings order.

        Raises:
            PipelineConfigurationError: If an observer name is unknown
            PluginConfigError: If observer options are invalid
        """
        observers = [self.get_observer_by_name(entry.plugin)(dict(entry.options)) for entry in settings]
        return ObserverChain(observers)
