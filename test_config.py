#!/usr/bin/env python3
"""
Test explicit configuration requirements.
"""

import copy

import pytest
import yaml

from emi.config import Configuration

BASE_CONFIG = {
    "client": {
        "endpoint_url": "http://127.0.0.1:8787/emi-chat",
        "connect_timeout": 5.0,
        "read_timeout": None,
        "write_timeout": 5.0,
        "pool_timeout": 5.0,
        "api_key_env": "EMI_ENDPOINT_API_KEY",
    },
    "session": {
        "greetings": {"default": "Hi", "high-anxiety": "I'm here"},
    },
    "relay": {
        "host": "0.0.0.0",
        "port": 8787,
        "path": "/emi-chat",
        "gateway_url": "https://gateway.test/v1",
        "model": "m",
        "api_key_env": "AI_GATEWAY_API_KEY",
        "timeout": 60.0,
        "system_prompt": "Be kind.",
    },
    "logging": {"level": "DEBUG"},
}


def write_config(tmp_path, data) -> Configuration:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return Configuration(str(path))


def without(section: str, key: str) -> dict:
    data = copy.deepcopy(BASE_CONFIG)
    del data[section][key]
    return data


class TestConfigurationLoading:
    """Test YAML loading."""

    def test_packaged_config_is_complete(self):
        config = Configuration()
        assert config.get_client_config()["endpoint_url"]
        assert config.get_relay_config()["system_prompt"]
        assert set(config.get_session_config()["greetings"]) >= {"default", "high-anxiety"}

    def test_non_mapping_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="must be YAML dict"):
            write_config(tmp_path, ["not", "a", "dict"])

    def test_logging_config(self, tmp_path):
        config = write_config(tmp_path, BASE_CONFIG)
        assert config.get_logging_config() == {"level": "DEBUG"}


class TestClientConfig:
    """Test client configuration validation."""

    def test_valid(self, tmp_path):
        config = write_config(tmp_path, BASE_CONFIG)
        client_config = config.get_client_config()
        assert client_config["read_timeout"] is None
        assert client_config["connect_timeout"] == 5.0

    def test_missing_endpoint(self, tmp_path):
        config = write_config(tmp_path, without("client", "endpoint_url"))
        with pytest.raises(ValueError, match="client.endpoint_url must be explicitly configured"):
            config.get_client_config()

    def test_non_positive_timeout(self, tmp_path):
        data = copy.deepcopy(BASE_CONFIG)
        data["client"]["connect_timeout"] = 0
        with pytest.raises(ValueError, match="connect_timeout must be positive"):
            write_config(tmp_path, data).get_client_config()

    def test_negative_read_timeout(self, tmp_path):
        data = copy.deepcopy(BASE_CONFIG)
        data["client"]["read_timeout"] = -1
        with pytest.raises(ValueError, match="read_timeout"):
            write_config(tmp_path, data).get_client_config()

    def test_endpoint_api_key_from_environment(self, tmp_path, monkeypatch):
        config = write_config(tmp_path, BASE_CONFIG)
        monkeypatch.delenv("EMI_ENDPOINT_API_KEY", raising=False)
        assert config.endpoint_api_key is None
        monkeypatch.setenv("EMI_ENDPOINT_API_KEY", "anon")
        assert config.endpoint_api_key == "anon"


class TestSessionConfig:
    """Test session configuration validation."""

    def test_missing_greeting(self, tmp_path):
        data = copy.deepcopy(BASE_CONFIG)
        del data["session"]["greetings"]["high-anxiety"]
        with pytest.raises(ValueError, match="session.greetings.high-anxiety"):
            write_config(tmp_path, data).get_session_config()


class TestRelayConfig:
    """Test relay configuration validation."""

    def test_missing_model(self, tmp_path):
        config = write_config(tmp_path, without("relay", "model"))
        with pytest.raises(ValueError, match="relay.model must be explicitly configured"):
            config.get_relay_config()

    @pytest.mark.parametrize("port", [0, 70000, "8787"])
    def test_invalid_port(self, tmp_path, port):
        data = copy.deepcopy(BASE_CONFIG)
        data["relay"]["port"] = port
        with pytest.raises(ValueError, match="relay.port"):
            write_config(tmp_path, data).get_relay_config()

    def test_path_must_be_absolute(self, tmp_path):
        data = copy.deepcopy(BASE_CONFIG)
        data["relay"]["path"] = "emi-chat"
        with pytest.raises(ValueError, match="relay.path"):
            write_config(tmp_path, data).get_relay_config()

    def test_gateway_api_key(self, tmp_path, monkeypatch):
        config = write_config(tmp_path, BASE_CONFIG)
        monkeypatch.delenv("AI_GATEWAY_API_KEY", raising=False)
        assert config.gateway_api_key is None
        monkeypatch.setenv("AI_GATEWAY_API_KEY", "secret")
        assert config.gateway_api_key == "secret"
        assert config.gateway_api_key_env == "AI_GATEWAY_API_KEY"
