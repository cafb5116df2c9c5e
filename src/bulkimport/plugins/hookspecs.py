# src/bulkimport/plugins/hookspecs.py
"""pluggy hook specifications for observer plugins.

Usage (implementing a plugin):
    from bulkimport.plugins.hookspecs import hookimpl

    class MyPlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def bulkimport_get_observers(self):
            return [MyObserver]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from bulkimport.observers.base import BaseObserver

PROJECT_NAME = "bulkimport"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class BulkImportObserverSpec:
    """Hook specifications for observer plugins."""

    @hookspec
    def bulkimport_get_observers(self) -> list[type["BaseObserver"]]:  # type: ignore[empty-body]
        """Return observer classes (not instances)."""
