"""
Runtime settings: YAML defaults, environment overrides, validation.
"""

from pathlib import Path

import pytest
import yaml

from gem_config import DEFAULT_CONFIG_PATH, KernelSettings, get_active_config
from gem_config.loader import compute_checksum, flatten_settings, parse_bool


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_packaged_defaults_load(self):
        settings = get_active_config(environ={})

        assert settings.database_url == "sqlite:///gem_erp.db"
        assert settings.echo is False
        assert settings.busy_timeout_seconds == 30.0
        assert settings.log_level == "INFO"
        assert settings.allocation_max_attempts == 3
        assert settings.sku_counter_name == "sku"

    def test_default_path_ships_with_package(self):
        assert DEFAULT_CONFIG_PATH.name == "defaults.yaml"
        assert DEFAULT_CONFIG_PATH.exists()

    def test_settings_are_frozen(self):
        settings = get_active_config(environ={})
        with pytest.raises(AttributeError):
            settings.database_url = "postgresql://elsewhere"


class TestFileAndEnvironment:

    def test_custom_file(self, tmp_path):
        path = _write(tmp_path, {
            "database": {"url": "postgresql://gem@localhost/gem", "pool_size": 5},
            "allocation": {"max_attempts": 5},
        })

        settings = get_active_config(path, environ={})

        assert settings.database_url == "postgresql://gem@localhost/gem"
        assert settings.pool_size == 5
        assert settings.max_overflow == 10
        assert settings.allocation_max_attempts == 5

    def test_environment_overrides(self):
        settings = get_active_config(environ={
            "GEM_DATABASE_URL": "sqlite:///override.db",
            "GEM_LOG_LEVEL": "debug",
            "GEM_SQL_ECHO": "yes",
        })

        assert settings.database_url == "sqlite:///override.db"
        assert settings.log_level == "DEBUG"
        assert settings.echo is True

    def test_empty_env_values_do_not_override(self):
        settings = get_active_config(environ={"GEM_DATABASE_URL": "", "GEM_LOG_LEVEL": ""})
        assert settings.database_url == "sqlite:///gem_erp.db"
        assert settings.log_level == "INFO"

    def test_checksum_tracks_content(self, tmp_path):
        a = get_active_config(_write(tmp_path, {"database": {"url": "sqlite:///a.db"}}), environ={})
        b = get_active_config(environ={"GEM_DATABASE_URL": "sqlite:///a.db"})
        assert a.checksum != b.checksum
        assert compute_checksum({"x": 1, "y": 2}) == compute_checksum({"y": 2, "x": 1})


class TestValidation:

    @pytest.mark.parametrize(
        "data",
        [
            {"database": {"url": "sqlite://", "colour": "blue"}},
            {"caching": {"enabled": True}},
            {"database": "sqlite://"},
        ],
    )
    def test_unknown_keys_rejected(self, tmp_path, data):
        with pytest.raises(ValueError):
            get_active_config(_write(tmp_path, data), environ={})

    def test_missing_url_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            get_active_config(_write(tmp_path, {"logging": {"level": "INFO"}}), environ={})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"log_level": "LOUD"},
            {"allocation_max_attempts": 0},
            {"busy_timeout_seconds": -1},
            {"database_url": ""},
            {"sku_counter_name": ""},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        fields = {"database_url": "sqlite://", **overrides}
        with pytest.raises(ValueError):
            KernelSettings(**fields)

    def test_bad_echo_value(self):
        with pytest.raises(ValueError):
            get_active_config(environ={"GEM_SQL_ECHO": "maybe"})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml", environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            get_active_config(path, environ={})


class TestHelpers:

    @pytest.mark.parametrize("raw, expected", [(True, True), ("on", True), ("0", False), ("False", False)])
    def test_parse_bool(self, raw, expected):
        assert parse_bool(raw) is expected

    def test_flatten_maps_sections_to_fields(self):
        assert flatten_settings({"logging": {"level": "WARNING"}}) == {"log_level": "WARNING"}
