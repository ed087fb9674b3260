"""Unit tests for the Configuration Manager."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dsrpackager.core.config_manager import ConfigManager, ConfigSchema, PackagerSettings
from dsrpackager.utils.exceptions import ConfigurationError


def test_config_schema_default_values() -> None:
    """Test that ConfigSchema provides correct default values."""
    schema = ConfigSchema()

    assert schema.packaging["extensions"] == ["dll", "png", "ndll", "so", "dylib"]
    assert schema.packaging["ignore"] == [
        "DSRemapper.Core.dll", "DSRemapper.Framework.dll", "FireLibs.Logging.dll", "manifest.json"
    ]
    assert schema.packaging["catalog_file"] == "manifest.json"
    assert schema.packaging["fallback_version"] == "1.0.0"
    assert schema.packaging["fallback_dependency_version"] is None
    assert schema.packaging["strict"] is False
    assert schema.signing["key_env"] == "DSR_SIGNING_KEY"
    assert schema.signing["purge_env"] is True
    assert schema.logging["level"] == "INFO"


def test_config_schema_validation_versions() -> None:
    """Test validation of the fallback versions."""
    schema = ConfigSchema(packaging={"fallback_version": 2.5})
    assert schema.packaging["fallback_version"] == "2.5"

    with pytest.raises(ValueError, match="dotted version"):
        ConfigSchema(packaging={"fallback_version": "latest"})

    with pytest.raises(ValueError, match="must be set"):
        ConfigSchema(packaging={"fallback_version": None})


def test_config_schema_validation_chunk_size() -> None:
    with pytest.raises(ValueError, match="chunk_size"):
        ConfigSchema(signing={"chunk_size": 0})
    with pytest.raises(ValueError, match="chunk_size"):
        ConfigSchema(signing={"chunk_size": True})


def test_config_manager_yaml_file(config_manager: ConfigManager, temp_config_file: Path) -> None:
    """Test loading configuration from a YAML file merged over the defaults."""
    assert config_manager.initialized
    assert config_manager.get("packaging.fallback_version") == "0.9.0"
    assert config_manager.get("packaging.extensions") == ["dll", "png"]
    assert config_manager.get("packaging.catalog_file") == "manifest.json"
    assert config_manager.get("signing.purge_env") is False
    assert config_manager.get("logging.level") == "DEBUG"

    status = config_manager.status()
    assert status["loaded_from_file"] is True
    assert status["config_file"] == str(temp_config_file)


def test_config_manager_json_file(tmp_path: Path) -> None:
    """Test loading configuration from a JSON file."""
    config_file = tmp_path / "config.json"
    with config_file.open("w") as f:
        json.dump({"packaging": {"strict": True, "catalog_file": "catalog.json"}}, f)

    manager = ConfigManager(config_path=config_file)
    manager.initialize()

    assert manager.get("packaging.strict") is True
    assert manager.get("packaging.catalog_file") == "catalog.json"


def test_config_manager_nonexistent_file() -> None:
    """Test initialization with a non-existent file path."""
    manager = ConfigManager(config_path="/path/that/does/not/exist.yaml")
    manager.initialize()

    assert manager.initialized
    assert manager.get("packaging.fallback_version") == "1.0.0"
    assert manager.status()["loaded_from_file"] is False


def test_config_manager_invalid_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("packaging: [unclosed", encoding="utf-8")

    manager = ConfigManager(config_path=config_file)
    with pytest.raises(ConfigurationError, match="Error parsing config file"):
        manager.initialize()


def test_config_manager_non_mapping_file(tmp_path: Path) -> None:
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="mapping"):
        ConfigManager(config_path=config_file).initialize()


def test_config_manager_unsupported_format(tmp_path: Path) -> None:
    config_file = tmp_path / "config.ini"
    config_file.write_text("[packaging]\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Unsupported config file format"):
        ConfigManager(config_path=config_file).initialize()


def test_config_manager_invalid_values(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("packaging:\n  fallback_version: latest\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Invalid configuration") as exc_info:
        ConfigManager(config_path=config_file).initialize()
    assert "validation_errors" in exc_info.value.details


def test_config_manager_env_vars(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that prefixed environment variables override the file."""
    monkeypatch.setenv("DSRPACK_PACKAGING_STRICT", "true")
    monkeypatch.setenv("DSRPACK_PACKAGING_FALLBACK_VERSION", "2.0")
    monkeypatch.setenv("DSRPACK_PACKAGING_EXTENSIONS", "dll,so")
    monkeypatch.setenv("DSRPACK_SIGNING_KEY_ENV", "RELEASE_KEY")
    monkeypatch.setenv("DSRPACK_SIGNING_CHUNK_SIZE", "4096")
    monkeypatch.setenv("DSRPACK_LOGGING_FILE_ENABLED", "false")
    monkeypatch.setenv("DSRPACK_UNKNOWN_SECTION", "ignored")

    manager = ConfigManager(config_path=tmp_path / "missing.yaml")
    manager.initialize()

    assert manager.get("packaging.strict") is True
    assert manager.get("packaging.fallback_version") == "2.0"
    assert manager.get("packaging.extensions") == ["dll", "so"]
    assert manager.get("signing.key_env") == "RELEASE_KEY"
    assert manager.get("signing.chunk_size") == 4096
    assert manager.get("logging.file.enabled") is False
    assert manager.get("unknown") is None
    assert manager.status()["env_vars_applied"] == 6


@pytest.mark.parametrize("value,expected", [
    ("true", True),
    ("Off", False),
    ("none", None),
    ("42", 42),
    ("-3", -3),
    ("0.5", 0.5),
    ("1.2.3", "1.2.3"),
    ("a, b,", ["a", "b"]),
    ("plain", "plain"),
])
def test_parse_env_value(value: str, expected) -> None:
    assert ConfigManager._parse_env_value(value) == expected


def test_get_and_set_before_initialize() -> None:
    manager = ConfigManager()
    with pytest.raises(ConfigurationError, match="before initialization"):
        manager.get("packaging")
    with pytest.raises(ConfigurationError, match="before initialization"):
        manager.set("packaging.strict", True)
    with pytest.raises(ConfigurationError):
        manager.settings()


def test_get_default(config_manager: ConfigManager) -> None:
    assert config_manager.get("packaging.missing", "fallback") == "fallback"
    assert config_manager.get("packaging.strict.deeper", 1) == 1


def test_set(config_manager: ConfigManager) -> None:
    config_manager.set("packaging.strict", True)
    assert config_manager.get("packaging.strict") is True

    with pytest.raises(ConfigurationError, match="packaging.fallback_version"):
        config_manager.set("packaging.fallback_version", "not-a-version")
    assert config_manager.get("packaging.fallback_version") == "0.9.0"


def test_settings(config_manager: ConfigManager) -> None:
    settings = config_manager.settings()

    assert isinstance(settings, PackagerSettings)
    assert settings.fallback_version == "0.9.0"
    assert settings.extensions == ["dll", "png"]
    assert settings.purge_env is False
    assert settings.chunk_size == 65536


def test_packager_settings_defaults() -> None:
    settings = PackagerSettings.defaults()

    assert settings.catalog_file == "manifest.json"
    assert settings.core_dependency == "DSRemapper.Core"
    assert settings.framework_dependency == "DSRemapper.Framework"
    assert settings.fallback_dependency_version is None
    assert settings.strict is False
