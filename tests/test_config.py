"""
Unit tests for configuration loading.

Run tests with: python -m pytest tests/test_config.py -v
"""

import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cincexporter.config import (
    DEFAULT_STATUS_COMMAND,
    ConfigError,
    build_config,
    load_config,
    normalize_database_url,
)

ENV_VARS = [
    "DATABASE_URL", "GRAPHITE_HOST", "GRAPHITE_PORT", "METRICS_PREFIX",
    "METRICS_HOST", "HOSTNAME", "STALE_AFTER_MINUTES", "STALE_SOURCE",
    "POLL_INTERVAL", "STATUS_COMMAND", "LOG_LEVEL", "LOG_FILE", "DRY_RUN",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "cincexporter.yml"
    path.write_text(
        "database_url: postgresql://file@db/opscode_chef\n"
        "graphite_host: graphite.file\n"
        "prefix: file.prefix\n"
        "stale_after_minutes: 90\n"
        "status_command: [/usr/bin/chef-server-ctl, status]\n",
        encoding="utf-8",
    )
    return str(path)


class TestDefaults:

    def test_minimal(self):
        config = build_config({"database_url": "postgresql://u@h/db", "host_label": "cinc01"})
        assert config.graphite_host == "localhost"
        assert config.graphite_port == 2003
        assert config.prefix == "vlg.cinc"
        assert config.stale_after_minutes == 60
        assert config.stale_source == "local"
        assert config.interval_s == 60
        assert config.status_command == DEFAULT_STATUS_COMMAND
        assert config.dry_run is False

    def test_database_url_required(self):
        with pytest.raises(ConfigError):
            build_config({})

    def test_postgres_scheme_normalized(self):
        assert normalize_database_url("postgres://u@h/db") == "postgresql://u@h/db"
        assert normalize_database_url("postgresql+psycopg2://u@h/db") == "postgresql+psycopg2://u@h/db"

    def test_host_label_defaults_to_short_hostname(self):
        config = build_config({"database_url": "sqlite://"})
        assert "." not in config.host_label
        assert config.host_label


class TestValidation:

    @pytest.mark.parametrize("raw", [
        {"graphite_port": "two"},
        {"stale_after_minutes": "soon"},
        {"stale_after_minutes": 0},
        {"stale_source": "cache"},
        {"status_command": ""},
        {"status_command": 5},
    ])
    def test_invalid(self, raw):
        raw["database_url"] = "sqlite://"
        with pytest.raises(ConfigError):
            build_config(raw)

    def test_interval_has_floor(self):
        config = build_config({"database_url": "sqlite://", "interval_s": 1})
        assert config.interval_s == 5

    def test_command_string_is_split(self):
        config = build_config({"database_url": "sqlite://", "status_command": "sudo chef-server-ctl status"})
        assert config.status_command == ["sudo", "chef-server-ctl", "status"]


class TestLoadConfig:

    def test_file_values(self, config_file):
        config = load_config(config_file)
        assert config.database_url == "postgresql://file@db/opscode_chef"
        assert config.graphite_host == "graphite.file"
        assert config.prefix == "file.prefix"
        assert config.stale_after_minutes == 90
        assert config.status_command == ["/usr/bin/chef-server-ctl", "status"]

    def test_environment_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://env@db/opscode_chef")
        monkeypatch.setenv("GRAPHITE_HOST", "graphite.env")
        monkeypatch.setenv("STALE_AFTER_MINUTES", "120")
        monkeypatch.setenv("HOSTNAME", "cinc02.example.com")
        config = load_config(config_file)
        assert config.database_url == "postgresql://env@db/opscode_chef"
        assert config.graphite_host == "graphite.env"
        assert config.stale_after_minutes == 120
        assert config.host_label == "cinc02"
        assert config.prefix == "file.prefix"

    def test_empty_metrics_host_drops_segment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        monkeypatch.setenv("HOSTNAME", "cinc02.example.com")
        monkeypatch.setenv("METRICS_HOST", "")
        assert load_config().host_label == ""

    def test_dry_run_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        monkeypatch.setenv("DRY_RUN", "yes")
        assert load_config().dry_run is True

    def test_cli_overrides(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        config = load_config().with_overrides(interval_s=30, dry_run=None)
        assert config.interval_s == 30
        assert config.dry_run is False

    def test_cli_interval_has_floor(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        assert load_config().with_overrides(interval_s=0).interval_s == 5
        assert load_config().with_overrides(interval_s=-10).interval_s == 5

    @pytest.mark.parametrize("value,expected", [
        ("false", False), ("no", False), ("0", False), ("", False),
        ("yes", True), ("on", True), (True, True), (False, False),
    ])
    def test_dry_run_from_file_values(self, tmp_path, monkeypatch, value, expected):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        path = tmp_path / "dry.yml"
        path.write_text(f"dry_run: {value!r}\n" if isinstance(value, str) else f"dry_run: {str(value).lower()}\n",
                        encoding="utf-8")
        assert load_config(str(path)).dry_run is expected

    def test_host_label_from_file_is_shortened(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        path = tmp_path / "host.yml"
        path.write_text("host_label: cinc03.example.com\n", encoding="utf-8")
        assert load_config(str(path)).host_label == "cinc03"

    def test_empty_host_label_in_file_drops_segment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        path = tmp_path / "host.yml"
        path.write_text("host_label: ''\n", encoding="utf-8")
        assert load_config(str(path)).host_label == ""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "nope.yml"))

    def test_file_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))
