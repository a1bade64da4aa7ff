"""
Config system - Layered typed configuration.

Sources, in increasing precedence:
1. YAML / JSON files
2. .env file (HARRIER_* keys only)
3. Environment variables (HARRIER_* prefix, "__" separates nested keys)
4. Explicit overrides

The merged mapping is validated into HarrierConfig.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

import yaml
from dotenv import dotenv_values


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class CacheSettings:
    """
    Cache store settings.

    Attributes:
        enabled: Create a cache store at startup
        backend: "memory" or "redis"
        max_size: Memory store capacity (LRU beyond it)
        sweep_interval: Seconds between expired-entry sweeps (memory)
        key_prefix: Key namespace (redis)
        redis_url: Connection URL (redis)
    """
    enabled: bool = True
    backend: str = "memory"
    max_size: int = 1000
    sweep_interval: float = 30.0
    key_prefix: str = "harrier:"
    redis_url: str = "redis://localhost:6379/0"

    def __post_init__(self):
        if isinstance(self.max_size, int) and self.max_size < 1:
            raise ConfigError(f"Config field 'cache.max_size' must be at least 1, got {self.max_size}")


@dataclass
class HarrierConfig:
    """Application configuration."""
    debug: bool = False
    title: str = "Harrier"
    version: str = "0.1.0"
    strict_route_keys: bool = False
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000
    max_body_size: int = 10 * 1024 * 1024
    cache: CacheSettings = field(default_factory=CacheSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Example::

        loader = ConfigLoader.load(["config/base.yaml", "config/prod.yaml"])
        config = loader.to_config()
    """

    def __init__(self, env_prefix: str = "HARRIER_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "HARRIER_",
        env_file: Optional[str] = ".env",
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration with proper merge strategy.

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file (ignored when missing)
            overrides: Manual overrides (highest precedence)
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        matches = sorted(glob(pattern))
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ConfigError(f"Config file not found: {pattern}")

        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigError(f"Unsupported config file type: {path}")

    def _load_json_file(self, path: Path):
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
        self._merge_file_data(path, data)

    def _load_yaml_file(self, path: Path):
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        self._merge_file_data(path, data)

    def _merge_file_data(self, path: Path, data: Any):
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping at the top level")
        self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self):
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert HARRIER_CACHE__MAX_SIZE to {"cache": {"max_size": ...}}."""
        parts = key[len(self.env_prefix):].lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_dict(self) -> dict:
        return self.config_data

    def to_config(self) -> HarrierConfig:
        """Validate the merged data into HarrierConfig."""
        return _instantiate_dataclass(HarrierConfig, self.config_data, "")


def _instantiate_dataclass(config_class: type, data: Dict[str, Any], prefix: str):
    if not isinstance(data, dict):
        raise ConfigError(f"Config section '{prefix.rstrip('.')}' must be a mapping")

    hints = get_type_hints(config_class)
    known = {f.name for f in fields(config_class)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown config fields: {', '.join(prefix + name for name in sorted(unknown))}")

    kwargs: Dict[str, Any] = {}
    for field_info in fields(config_class):
        name = field_info.name
        if name not in data:
            continue
        expected = hints[name]
        value = data[name]

        if is_dataclass(expected):
            kwargs[name] = _instantiate_dataclass(expected, value, f"{prefix}{name}.")
            continue

        value = _coerce(value, expected)
        if not _check_type(value, expected):
            raise ConfigError(
                f"Config field '{prefix}{name}' expected {getattr(expected, '__name__', expected)}, "
                f"got {type(value).__name__}"
            )
        kwargs[name] = value

    return config_class(**kwargs)


def _coerce(value: Any, expected: Any) -> Any:
    # Ints are accepted where floats are expected
    if expected is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if expected is str and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _check_type(value: Any, expected: Any) -> bool:
    origin = get_origin(expected)
    if origin is Union:
        return any(_check_type(value, arg) for arg in get_args(expected))
    if expected is type(None):
        return value is None
    if origin:
        return isinstance(value, origin)
    if expected is int and isinstance(value, bool):
        return False
    try:
        return isinstance(value, expected)
    except TypeError:
        return True
