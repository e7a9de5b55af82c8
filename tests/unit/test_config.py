"""Tests for configuration management"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from export_service.core.config import ConfigService, ExportsConfig


class TestConfigService:
    """Test ConfigService functionality"""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        """Test loading configuration from YAML file"""
        config_file = tmp_path / "config.yaml"
        config_data = {
            "server": {"host": "127.0.0.1", "port": 9000},
            "exports": {"expiry_hours": 48, "max_concurrent": 2},
            "logging": {"level": "debug"},
        }

        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        service = ConfigService(str(config_file))
        config = service.load()

        assert config.server.host == "127.0.0.1"
        assert config.server.port == 9000
        assert config.exports.expiry_hours == 48
        assert config.exports.max_concurrent == 2
        assert config.logging.level == "DEBUG"

    def test_load_with_defaults(self, tmp_path: Path) -> None:
        """Test loading configuration with default values"""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("{}")

        config = ConfigService(str(config_file)).load()

        assert config.server.port == 8000
        assert set(config.server.model_dump()) == {"host", "port"}
        assert config.storage.export_dir == "/tmp/exports"
        assert config.exports.expiry_hours == 24
        assert config.exports.max_rows == 100000
        assert config.exports.cache_ttl == 300
        assert config.exports.max_concurrent == 5
        assert config.exports.producer_timeout == 300
        assert config.exports.sweep_interval == 3600
        assert config.exports.resume_on_startup is True
        assert config.security.api_keys == []

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = ConfigService(str(tmp_path / "absent.yaml")).load()
        assert config.exports.expiry_hours == 24

    def test_config_path_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("exports:\n  max_rows: 10\n")
        monkeypatch.setenv("APP_CONFIG_PATH", str(config_file))

        config = ConfigService().load()

        assert config.exports.max_rows == 10

    def test_environment_variable_override(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test environment variable overrides YAML configuration"""
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"exports": {"expiry_hours": 12, "max_rows": 500}}, f)

        monkeypatch.setenv("APP_EXPORTS_EXPIRY_HOURS", "6")
        monkeypatch.setenv("APP_STORAGE_EXPORT_DIR", "/data/exports")

        config = ConfigService(str(config_file)).load()

        assert config.exports.expiry_hours == 6
        assert config.exports.max_rows == 500
        assert config.storage.export_dir == "/data/exports"

    def test_list_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("APP_SECURITY_API_KEYS", '["key-1", "key-2"]')

        config = ConfigService(str(tmp_path / "absent.yaml")).load()

        assert config.security.api_keys == ["key-1", "key-2"]

    def test_config_before_load(self) -> None:
        with pytest.raises(ValueError, match="not loaded"):
            _ = ConfigService("config.yaml").config


class TestValidation:
    """Test configuration validation"""

    def test_requires_keys_without_degraded_start(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("security:\n  allow_degraded_start: false\n")

        service = ConfigService(str(config_file))
        service.load()

        with pytest.raises(ValueError, match="API key"):
            service.validate()

    def test_valid_with_keys(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "security:\n  allow_degraded_start: false\n  api_keys: ['k']\n"
        )

        service = ConfigService(str(config_file))
        service.load()

        assert service.validate() is True

    @pytest.mark.parametrize(
        "field", ["expiry_hours", "max_rows", "cache_size", "max_concurrent", "sweep_interval"]
    )
    def test_exports_values_must_be_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            ExportsConfig(**{field: 0})

    def test_producer_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ExportsConfig(producer_timeout=-1)

    def test_invalid_log_level(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("logging:\n  level: LOUD\n")

        with pytest.raises(ValidationError):
            ConfigService(str(config_file)).load()
