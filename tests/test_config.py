"""
Tests for the configuration layer.

Covers:
- YAML / JSON files and glob patterns
- .env files and HARRIER_* environment variables ("__" nesting)
- precedence: files < .env < environment < overrides
- validation into HarrierConfig (unknown fields, type mismatches)
- configure_logging
"""

import json
import logging
import os

import pytest

from harrier.config import CacheSettings, ConfigError, ConfigLoader, HarrierConfig
from harrier.log import configure_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("HARRIER_"):
            monkeypatch.delenv(key)


def write(path, text):
    path.write_text(text)
    return str(path)


# ============================================================================
# Sources
# ============================================================================


class TestSources:
    def test_yaml_file(self, tmp_path):
        path = write(tmp_path / "base.yaml", "debug: true\ncache:\n  backend: redis\n  max_size: 50\n")

        config = ConfigLoader.load([path], env_file=None).to_config()

        assert config.debug is True
        assert config.cache.backend == "redis"
        assert config.cache.max_size == 50
        assert config.cache.sweep_interval == 30.0

    def test_json_file(self, tmp_path):
        path = write(tmp_path / "base.json", json.dumps({"title": "Shop", "port": 9000}))

        config = ConfigLoader.load([path], env_file=None).to_config()

        assert config.title == "Shop"
        assert config.port == 9000

    def test_files_merge_deeply_in_order(self, tmp_path):
        base = write(tmp_path / "10-base.yaml", "cache:\n  backend: memory\n  max_size: 10\n")
        prod = write(tmp_path / "20-prod.yaml", "cache:\n  max_size: 500\n")

        loader = ConfigLoader.load([base, prod], env_file=None)

        assert loader.get("cache.backend") == "memory"
        assert loader.get("cache.max_size") == 500

    def test_glob_pattern(self, tmp_path):
        write(tmp_path / "a.yaml", "title: A\n")
        write(tmp_path / "b.yaml", "title: B\n")

        loader = ConfigLoader.load([str(tmp_path / "*.yaml")], env_file=None)
        assert loader.get("title") == "B"

    def test_empty_glob_is_fine(self, tmp_path):
        loader = ConfigLoader.load([str(tmp_path / "*.yaml")], env_file=None)
        assert loader.to_dict() == {}

    def test_env_file_filters_prefix(self, tmp_path):
        env_file = write(tmp_path / ".env", "HARRIER_DEBUG=true\nOTHER_SETTING=1\nHARRIER_CACHE__MAX_SIZE=7\n")

        loader = ConfigLoader.load(env_file=env_file)

        assert loader.get("debug") is True
        assert loader.get("cache.max_size") == 7
        assert loader.get("other_setting") is None

    def test_missing_env_file_ignored(self, tmp_path):
        loader = ConfigLoader.load(env_file=str(tmp_path / "missing.env"))
        assert loader.to_dict() == {}

    def test_environment_nesting(self, monkeypatch):
        monkeypatch.setenv("HARRIER_CACHE__BACKEND", "redis")
        monkeypatch.setenv("HARRIER_CACHE__SWEEP_INTERVAL", "2.5")
        monkeypatch.setenv("HARRIER_STRICT_ROUTE_KEYS", "yes")

        config = ConfigLoader.load(env_file=None).to_config()

        assert config.cache.backend == "redis"
        assert config.cache.sweep_interval == 2.5
        assert config.strict_route_keys is True

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("SHOP_TITLE", "Shop")
        assert ConfigLoader.load(env_prefix="SHOP_", env_file=None).get("title") == "Shop"

    def test_precedence(self, tmp_path, monkeypatch):
        path = write(tmp_path / "base.yaml", "title: file\nport: 1000\nlog_level: DEBUG\nversion: '1'\n")
        env_file = write(tmp_path / ".env", "HARRIER_PORT=2000\nHARRIER_LOG_LEVEL=WARNING\nHARRIER_VERSION=2\n")
        monkeypatch.setenv("HARRIER_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("HARRIER_VERSION", "3")

        loader = ConfigLoader.load([path], env_file=env_file, overrides={"version": "4"})

        assert loader.get("title") == "file"
        assert loader.get("port") == 2000
        assert loader.get("log_level") == "ERROR"
        assert loader.get("version") == "4"

    def test_get_default(self):
        loader = ConfigLoader.load(env_file=None, overrides={"cache": {"enabled": False}})

        assert loader.get("cache.enabled") is False
        assert loader.get("cache.missing", "fallback") == "fallback"
        assert loader.get("title.nested") is None


class TestParseValue:
    @pytest.mark.parametrize(
        "raw,parsed",
        [
            ("true", True),
            ("off", False),
            ("42", 42),
            ("0.5", 0.5),
            ("1", 1),
            ('{"a": 1}', {"a": 1}),
            ("[1, 2]", [1, 2]),
            ("{broken", "{broken"),
            ("redis://host:6379/0", "redis://host:6379/0"),
        ],
    )
    def test_parse(self, raw, parsed):
        assert ConfigLoader()._parse_value(raw) == parsed


# ============================================================================
# Failures
# ============================================================================


class TestFailures:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            ConfigLoader.load([str(tmp_path / "nope.yaml")], env_file=None)

    def test_unsupported_file_type(self, tmp_path):
        path = write(tmp_path / "config.toml", "debug = true\n")

        with pytest.raises(ConfigError, match="Unsupported"):
            ConfigLoader.load([path], env_file=None)

    def test_bad_yaml(self, tmp_path):
        path = write(tmp_path / "bad.yaml", "cache: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            ConfigLoader.load([path], env_file=None)

    def test_bad_json(self, tmp_path):
        path = write(tmp_path / "bad.json", "{nope")

        with pytest.raises(ConfigError, match="Invalid JSON"):
            ConfigLoader.load([path], env_file=None)

    def test_non_mapping_file(self, tmp_path):
        path = write(tmp_path / "list.yaml", "- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            ConfigLoader.load([path], env_file=None)

    def test_unknown_fields(self):
        loader = ConfigLoader.load(env_file=None, overrides={"cache": {"flavour": "x"}, "colour": "red"})

        with pytest.raises(ConfigError, match="colour"):
            loader.to_config()

    def test_cache_capacity_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("HARRIER_CACHE__MAX_SIZE", "0")
        loader = ConfigLoader.load(env_file=None)

        with pytest.raises(ConfigError, match="cache.max_size"):
            loader.to_config()
        with pytest.raises(ConfigError):
            CacheSettings(max_size=-5)

    def test_unknown_nested_field(self):
        loader = ConfigLoader.load(env_file=None, overrides={"cache": {"flavour": "x"}})

        with pytest.raises(ConfigError, match="cache.flavour"):
            loader.to_config()

    def test_type_mismatch(self):
        loader = ConfigLoader.load(env_file=None, overrides={"port": "eighty"})

        with pytest.raises(ConfigError, match="'port' expected int"):
            loader.to_config()

    def test_bool_is_not_int(self):
        loader = ConfigLoader.load(env_file=None, overrides={"cache": {"max_size": True}})

        with pytest.raises(ConfigError):
            loader.to_config()

    def test_section_must_be_mapping(self):
        loader = ConfigLoader.load(env_file=None, overrides={"cache": "memory"})

        with pytest.raises(ConfigError, match="must be a mapping"):
            loader.to_config()


# ============================================================================
# Typed config
# ============================================================================


class TestHarrierConfig:
    def test_defaults(self):
        config = ConfigLoader.load(env_file=None).to_config()

        assert config == HarrierConfig()
        assert config.cache == CacheSettings()

    def test_coercions(self):
        loader = ConfigLoader.load(
            env_file=None,
            overrides={"version": 2, "cache": {"sweep_interval": 5}},
        )
        config = loader.to_config()

        assert config.version == "2"
        assert config.cache.sweep_interval == 5.0
        assert isinstance(config.cache.sweep_interval, float)

    def test_to_dict(self):
        data = HarrierConfig(debug=True).to_dict()

        assert data["debug"] is True
        assert data["cache"]["backend"] == "memory"


# ============================================================================
# Logging
# ============================================================================


@pytest.fixture
def restore_harrier_logger():
    logger = logging.getLogger("harrier")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield logger
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]


class TestLogging:
    def test_configure_logging(self, restore_harrier_logger):
        configure_logging("debug")

        logger = restore_harrier_logger
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_numeric_level(self, restore_harrier_logger):
        configure_logging(logging.WARNING)
        assert restore_harrier_logger.level == logging.WARNING
