"""Observer plugin registration (pluggy) and typed plugin configuration."""

from bulkimport.plugins.config_base import ObserverConfig, PluginConfigError
from bulkimport.plugins.hookspecs import hookimpl

__all__ = ["ObserverConfig", "PluginConfigError", "hookimpl"]
