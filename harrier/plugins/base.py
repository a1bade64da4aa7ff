"""
Plugin system.

A plugin extends an Application before its routes compile: it may
register routes, middleware and providers from ``install(app)``. Plugins
install in dependency order; optional async ``on_startup`` /
``on_shutdown`` hooks run with the application lifecycle (shutdown in
reverse order).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from ..faults import PluginFault

if TYPE_CHECKING:
    from ..app import Application

logger = logging.getLogger("harrier.plugins")


class Plugin:
    """
    Base class for plugins.

    Attributes:
        name: Unique plugin name
        version: Plugin version
        dependencies: Names of plugins that must install first
    """

    name: str = ""
    version: str = "0.0.0"
    dependencies: Sequence[str] = ()

    def install(self, app: "Application") -> None:
        raise NotImplementedError

    async def on_startup(self, app: "Application") -> None:
        pass

    async def on_shutdown(self, app: "Application") -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.version}>"


class PluginManager:
    """Registers plugins and drives their installation and lifecycle."""

    def __init__(self):
        self._plugins: Dict[str, Plugin] = {}
        self._installed: List[str] = []
        self._started: List[str] = []

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    def register(self, plugin: Plugin) -> Plugin:
        """
        Raises:
            PluginFault: nameless plugin, or the name is already registered
        """
        name = getattr(plugin, "name", "")
        if not name:
            raise PluginFault(type(plugin).__name__, "plugins must define a name", code="PLUGIN_INVALID")
        if name in self._plugins:
            raise PluginFault(name, "is already registered", code="PLUGIN_DUPLICATE")
        self._plugins[name] = plugin
        logger.debug(f"Registered plugin {name} {getattr(plugin, 'version', '')}".rstrip())
        return plugin

    def get(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)

    def names(self) -> List[str]:
        return list(self._plugins)

    def is_installed(self, name: str) -> bool:
        return name in self._installed

    def install_order(self) -> List[str]:
        """
        Registration order, with every plugin moved after its dependencies.

        Raises:
            PluginFault: a dependency is not registered, or dependencies
                form a cycle ("a -> b -> a")
        """
        order: List[str] = []
        done = set()
        visiting: List[str] = []

        def visit(name: str) -> None:
            if name in done:
                return
            if name in visiting:
                cycle = " -> ".join(visiting[visiting.index(name):] + [name])
                raise PluginFault(name, f"circular plugin dependency: {cycle}", code="PLUGIN_CYCLE")
            visiting.append(name)
            for dependency in getattr(self._plugins[name], "dependencies", ()) or ():
                if dependency not in self._plugins:
                    raise PluginFault(
                        name,
                        f"depends on '{dependency}' which is not registered",
                        code="PLUGIN_MISSING_DEPENDENCY",
                    )
                visit(dependency)
            visiting.pop()
            done.add(name)
            order.append(name)

        for name in self._plugins:
            visit(name)
        return order

    def install(self, app: "Application") -> List[str]:
        """Install every registered plugin not yet installed."""
        for name in self.install_order():
            if name in self._installed:
                continue
            plugin = self._plugins[name]
            try:
                plugin.install(app)
            except PluginFault:
                raise
            except Exception as exc:
                raise PluginFault(name, f"install failed: {exc}") from exc
            self._installed.append(name)
            logger.info(f"Installed plugin {name}")
        return list(self._installed)

    async def startup(self, app: "Application") -> None:
        for name in self._installed:
            if name in self._started:
                continue
            try:
                await self._plugins[name].on_startup(app)
            except Exception as exc:
                raise PluginFault(name, f"startup failed: {exc}", code="PLUGIN_STARTUP_FAILED") from exc
            self._started.append(name)

    async def shutdown(self, app: "Application") -> None:
        """Reverse startup order; a failing hook is logged and the rest still run."""
        while self._started:
            name = self._started.pop()
            try:
                await self._plugins[name].on_shutdown(app)
            except Exception as exc:
                logger.error(f"Plugin {name} shutdown failed: {exc}", exc_info=True)
