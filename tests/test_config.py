"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError

from harbourmaster.config import load_config


def _write(tmp_path, data):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        config = load_config(env={})

        assert config.server.host == "127.0.0.1"
        assert config.server.port == 9190
        assert config.runtime.docker_host is None
        assert config.runtime.stop_timeout == 10
        assert config.runtime.cache_ttl == 1.0
        assert config.events.retry_delay == 5.0
        assert config.auth.tokens == []

    def test_yaml_file(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "server": {"port": 9300},
                "runtime": {"docker_host": "unix:///custom.sock", "stop_timeout": 3},
                "auth": {"tokens": ["secret"]},
            },
        )

        config = load_config(path, env={})

        assert config.server.port == 9300
        assert config.runtime.docker_host == "unix:///custom.sock"
        assert config.runtime.stop_timeout == 3
        assert config.auth.tokens == ["secret"]

    def test_config_file_from_environment(self, tmp_path):
        path = _write(tmp_path, {"server": {"port": 9400}})

        config = load_config(env={"HARBOURMASTER_CONFIG_FILE": path})

        assert config.server.port == 9400

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yml"), env={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("server: [unclosed", encoding="utf-8")

        with pytest.raises(yaml.YAMLError):
            load_config(str(path), env={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_config(str(path), env={})

    def test_schema_violation(self, tmp_path):
        path = _write(tmp_path, {"server": {"port": 70000}})

        with pytest.raises(ValidationError):
            load_config(path, env={})


class TestEnvironmentOverrides:
    def test_host_port_and_token(self, tmp_path):
        path = _write(tmp_path, {"server": {"port": 9300}, "auth": {"tokens": ["file-token"]}})

        config = load_config(
            path,
            env={
                "HARBOURMASTER_HOST": "127.0.0.2",
                "HARBOURMASTER_PORT": "9500",
                "HARBOURMASTER_API_TOKEN": "env-token",
            },
        )

        assert config.server.host == "127.0.0.2"
        assert config.server.port == 9500
        assert config.auth.tokens == ["file-token", "env-token"]


class TestNetworkBind:
    def test_all_interfaces_refused_by_default(self, tmp_path):
        path = _write(tmp_path, {"server": {"host": "0.0.0.0"}})

        with pytest.raises(ValidationError) as exc_info:
            load_config(path, env={})

        assert "allow_network" in str(exc_info.value)

    def test_all_interfaces_with_opt_in(self, tmp_path, caplog):
        path = _write(tmp_path, {"server": {"host": "0.0.0.0"}})

        with caplog.at_level("WARNING"):
            config = load_config(path, env={"HARBOURMASTER_ALLOW_NETWORK": "true"})

        assert config.server.is_network_bind
        assert "SECURITY WARNING" in caplog.text

    def test_ipv6_any_is_a_network_bind(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ValidationError):
            load_config(env={"HARBOURMASTER_HOST": "::"})
