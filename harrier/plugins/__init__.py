"""
Harrier plugins - extend an application before its routes compile.
"""

from .base import Plugin, PluginManager
from .health import HealthPlugin
from .openapi import OpenAPIPlugin

__all__ = [
    "Plugin",
    "PluginManager",
    "HealthPlugin",
    "OpenAPIPlugin",
]
