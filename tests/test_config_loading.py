"""Tests for loading services documents and legacy environment config."""

import json
from pathlib import Path

import pytest
import yaml

from config_watcher.errors import ConfigInvalid
from config_watcher.model import DEFAULT_LOCKFILE, ServiceKind
from config_watcher.model.loader import (
    load_config,
    load_config_file,
    load_legacy_config,
    parse_bool,
)


class TestParseBool:
    """Test environment boolean parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("TRUE", True), (" True ", True), ("false", False), ("1", False), ("yes", False)],
    )
    def test_values(self, value, expected):
        """Test only case-insensitive "true" is truthy."""
        assert parse_bool(value) is expected

    def test_default(self):
        """Test unset values use the default."""
        assert parse_bool(None, True) is True


class TestConfigFile:
    """Test JSON and YAML services documents."""

    def test_json_document(self, tmp_path, sample_config_data):
        """Test a JSON document loads every service."""
        path = tmp_path / "services.json"
        path.write_text(json.dumps(sample_config_data))

        config = load_config_file(path, environ={})

        assert [s.name for s in config.services] == ["web", "api"]
        assert config.global_settings.watch_interval == 30
        assert config.global_settings.grace_seconds == 60
        assert config.services[0].service_type == ServiceKind.NGINX
        assert config.lockfile == DEFAULT_LOCKFILE

    def test_yaml_document(self, tmp_path, sample_config_data):
        """Test a YAML document is parsed by extension."""
        path = tmp_path / "services.yml"
        path.write_text(yaml.safe_dump(sample_config_data))

        config = load_config_file(path, environ={})

        assert config.service("api").effective_use_docker_compose(config.global_settings) is True

    def test_environment_overlay(self, tmp_path, sample_config_data):
        """Test LOCKFILE, VERBOSE and SSH_PRIVATE_KEY come from the environment."""
        path = tmp_path / "services.json"
        path.write_text(json.dumps(sample_config_data))
        environ = {"LOCKFILE": str(tmp_path / "w.lock"), "VERBOSE": "true", "SSH_PRIVATE_KEY": "KEY"}

        config = load_config_file(path, environ=environ)

        assert config.lockfile == tmp_path / "w.lock"
        assert config.verbose is True
        assert config.ssh_private_key.get_secret_value() == "KEY"
        assert "KEY" not in repr(config)

    def test_empty_services_uses_default_nginx(self, tmp_path):
        """Test a document without services gets the default nginx service."""
        path = tmp_path / "services.json"
        path.write_text(json.dumps({"global_settings": {}}))

        config = load_config_file(path, environ={})

        assert len(config.services) == 1
        assert config.services[0].name == "nginx"
        assert config.services[0].service_type == ServiceKind.NGINX

    def test_invalid_json(self, tmp_path):
        """Test malformed JSON raises ConfigInvalid."""
        path = tmp_path / "services.json"
        path.write_text("{not json")

        with pytest.raises(ConfigInvalid, match="Failed to parse"):
            load_config_file(path, environ={})

    def test_non_object_document(self, tmp_path):
        """Test a document must be a mapping."""
        path = tmp_path / "services.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigInvalid, match="must contain an object"):
            load_config_file(path, environ={})

    def test_validation_errors_are_reported(self, tmp_path, sample_config_data):
        """Test model validation errors become ConfigInvalid with the field path."""
        sample_config_data["services"][1]["container_name"] = "web_nginx"
        path = tmp_path / "services.json"
        path.write_text(json.dumps(sample_config_data))

        with pytest.raises(ConfigInvalid, match="both manage container"):
            load_config_file(path, environ={})

    def test_invalid_grace_period(self, tmp_path, sample_config_data):
        """Test an invalid duration is a config error."""
        sample_config_data["global_settings"]["startup_grace_period"] = "30x"
        path = tmp_path / "services.json"
        path.write_text(json.dumps(sample_config_data))

        with pytest.raises(ConfigInvalid, match="startup_grace_period"):
            load_config_file(path, environ={})

    @pytest.mark.parametrize("value", [1.5, None, [30]])
    def test_non_string_grace_period(self, tmp_path, sample_config_data, value):
        """Test non-integer JSON values for a duration are config errors."""
        sample_config_data["global_settings"]["startup_grace_period"] = value
        path = tmp_path / "services.json"
        path.write_text(json.dumps(sample_config_data))

        with pytest.raises(ConfigInvalid, match="startup_grace_period"):
            load_config_file(path, environ={})


class TestLegacyConfig:
    """Test single-service configuration from environment variables."""

    def test_defaults(self):
        """Test the legacy defaults describe one nginx service."""
        config = load_legacy_config(environ={})
        service = config.services[0]

        assert service.name == "nginx"
        assert service.container_name == "nginx"
        assert service.service_type == ServiceKind.NGINX
        assert service.local_path == Path("/app/config")
        assert service.restart_command == "docker restart nginx"
        assert service.validation_command == "docker exec nginx nginx -t"
        assert config.global_settings.watch_interval == 300
        assert service.permissions.user == "nginx"

    def test_overrides(self):
        """Test environment values override the defaults."""
        environ = {
            "REPO_URL": "git@github.com:acme/proxy.git",
            "BRANCH": "prod",
            "WATCH_INTERVAL": "120",
            "NGINX_CONTAINER_NAME": "proxy",
            "CONFIG_DIR": "/srv/proxy",
            "AUTO_FIX": "true",
            "ENABLE_DIR_LISTING": "TRUE",
            "HEALTHCHECK_URL": "https://hc.example.com/ping/abc",
            "LOG_TAIL_LINES": "50",
        }
        config = load_legacy_config(environ=environ)
        service = config.services[0]

        assert service.repo_url == "git@github.com:acme/proxy.git"
        assert service.effective_branch(config.global_settings) == "prod"
        assert config.global_settings.watch_interval == 120
        assert service.restart_command == "docker restart proxy"
        assert service.local_path == Path("/srv/proxy")
        assert service.effective_auto_fix(config.global_settings) is True
        assert service.enable_dir_listing is True
        assert service.healthcheck_url == "https://hc.example.com/ping/abc"
        assert service.log_tail_lines == 50

    def test_invalid_integer(self):
        """Test non-numeric integers are rejected."""
        with pytest.raises(ConfigInvalid, match="WATCH_INTERVAL"):
            load_legacy_config(environ={"WATCH_INTERVAL": "often"})


class TestLoadConfig:
    """Test config source selection."""

    def test_services_config_env(self, tmp_path, sample_config_data):
        """Test $SERVICES_CONFIG selects the services document."""
        path = tmp_path / "services.json"
        path.write_text(json.dumps(sample_config_data))

        config = load_config(environ={"SERVICES_CONFIG": str(path)})

        assert len(config.services) == 2

    def test_missing_file_falls_back_to_legacy(self, tmp_path):
        """Test a missing services document falls back to legacy env vars."""
        config = load_config(tmp_path / "missing.json", environ={"NGINX_CONTAINER_NAME": "edge"})

        assert config.services[0].container_name == "edge"

    def test_no_source_uses_legacy(self):
        """Test legacy config when nothing points at a document."""
        config = load_config(environ={})
        assert config.services[0].name == "nginx"
