"""
Plugin registry: plugin instances by name.
"""

import logging

from interview_flow.plugins.base import FlowPlugin, PluginBinding

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Holds the plugin instances a flow may reference by name."""

    def __init__(self, plugins: list[FlowPlugin] | None = None) -> None:
        self._plugins: dict[str, FlowPlugin] = {}
        for plugin in plugins or []:
            self.register(plugin)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    @property
    def names(self) -> list[str]:
        return list(self._plugins)

    def register(self, plugin: FlowPlugin) -> None:
        """
        Register a plugin under its declared name.

        Raises:
            ValueError: If a different plugin already uses the name.
        """
        existing = self._plugins.get(plugin.name)
        if existing is not None and existing is not plugin:
            raise ValueError(f"Plugin name already registered: {plugin.name}")
        self._plugins[plugin.name] = plugin
        logger.debug(f"Registered plugin {plugin.name}")

    def get(self, name: str) -> FlowPlugin:
        """
        Look up a plugin.

        Raises:
            KeyError: If no plugin has that name.
        """
        try:
            return self._plugins[name]
        except KeyError:
            raise KeyError(f"Unknown plugin: {name}") from None

    def binding(self, name: str) -> PluginBinding:
        return self.get(name).binding
