"""
Scope definitions.
"""

from enum import Enum


class ServiceScope(str, Enum):
    """Service lifetime scopes."""

    SINGLETON = "singleton"  # One instance per container lifetime
    REQUEST = "request"      # One instance per ResolutionContext
    TRANSIENT = "transient"  # New instance every resolve
