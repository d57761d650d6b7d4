"""Configuration management for the EMI chat companion."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv


class Configuration:
    """Manages configuration and environment variables for the chat companion."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._config = self._load_yaml_config(config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self, config_path: str | None) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if config_path is None:
            config_path = os.path.join(os.path.dirname(__file__), "config.yaml")
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_client_config(self) -> dict[str, Any]:
        """Get streaming client configuration from YAML.

        Returns:
            Client configuration dictionary with validated values.

        Raises:
            ValueError: If required client parameters are missing or invalid.
        """
        client_config = self._config.get("client", {})

        required_keys = [
            "endpoint_url", "connect_timeout", "read_timeout",
            "write_timeout", "pool_timeout", "api_key_env",
        ]
        for key in required_keys:
            if key not in client_config:
                raise ValueError(
                    f"client.{key} must be explicitly configured in config.yaml"
                )

        if not client_config["endpoint_url"]:
            raise ValueError("client.endpoint_url must not be empty")

        for key in ("connect_timeout", "write_timeout", "pool_timeout"):
            if client_config[key] <= 0:
                raise ValueError(f"client.{key} must be positive")

        # A null read timeout lets a reply stream for as long as it needs
        read_timeout = client_config["read_timeout"]
        if read_timeout is not None and read_timeout <= 0:
            raise ValueError("client.read_timeout must be positive or null")

        return {**client_config}

    @property
    def endpoint_api_key(self) -> str | None:
        """Get the optional bearer credential for the chat endpoint."""
        env_key = self.get_client_config()["api_key_env"]
        if not env_key:
            return None
        return os.getenv(env_key) or None

    def get_session_config(self) -> dict[str, Any]:
        """Get chat session configuration from YAML.

        Raises:
            ValueError: If greetings are not configured.
        """
        session_config = self._config.get("session", {})
        greetings = session_config.get("greetings", {})

        for key in ("default", "high-anxiety"):
            if key not in greetings:
                raise ValueError(
                    f"session.greetings.{key} must be explicitly configured "
                    "in config.yaml"
                )

        return session_config

    def get_relay_config(self) -> dict[str, Any]:
        """Get relay server configuration from YAML.

        Returns:
            Relay configuration dictionary with validated values.

        Raises:
            ValueError: If required relay parameters are missing or invalid.
        """
        relay_config = self._config.get("relay", {})

        required_keys = [
            "host", "port", "path", "gateway_url", "model",
            "api_key_env", "timeout", "system_prompt",
        ]
        for key in required_keys:
            if key not in relay_config:
                raise ValueError(
                    f"relay.{key} must be explicitly configured in config.yaml"
                )

        port = relay_config["port"]
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ValueError("relay.port must be a valid TCP port")
        if relay_config["timeout"] <= 0:
            raise ValueError("relay.timeout must be positive")
        if not relay_config["path"].startswith("/"):
            raise ValueError("relay.path must start with '/'")

        return relay_config

    @property
    def gateway_api_key_env(self) -> str:
        return self.get_relay_config()["api_key_env"]

    @property
    def gateway_api_key(self) -> str | None:
        """Get the API key for the completion gateway, if set."""
        return os.getenv(self.gateway_api_key_env) or None

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})
