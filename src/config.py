"""
Configuration module for the StreamNative Cloud provider.

Loads configuration from environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

DEFAULT_API_SERVER = "https://api.streamnative.cloud"
DEFAULT_ISSUER = "https://auth.streamnative.cloud/"
DEFAULT_AUDIENCE = "https://api.streamnative.cloud"


@dataclass
class CloudConfig:
    """Control-plane endpoint and credentials."""

    api_server: str = DEFAULT_API_SERVER
    issuer: str = DEFAULT_ISSUER
    audience: str = DEFAULT_AUDIENCE
    client_id: str = ""
    client_secret: str = field(default="", repr=False)  # Never log secret
    key_file_path: str = ""
    access_token: str = field(default="", repr=False)
    request_timeout: int = 30  # seconds

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            api_server=os.getenv("API_SERVER", DEFAULT_API_SERVER),
            issuer=os.getenv("ISSUER", DEFAULT_ISSUER),
            audience=os.getenv("AUDIENCE", DEFAULT_AUDIENCE),
            client_id=os.getenv("GLOBAL_DEFAULT_CLIENT_ID", ""),
            client_secret=os.getenv("GLOBAL_DEFAULT_CLIENT_SECRET", ""),
            key_file_path=os.getenv("KEY_FILE_PATH", ""),
            access_token=os.getenv("ACCESS_TOKEN", ""),
            request_timeout=int(os.getenv("REQUEST_TIMEOUT", "30")),
        )


def parse_resource_timeouts(raw: Any) -> Dict[str, Dict[str, float]]:
    """Keep the well-formed entries of a RESOURCE_TIMEOUTS document."""
    if not isinstance(raw, dict):
        return {}

    result = {}
    for type_name, operations in raw.items():
        if not isinstance(operations, dict):
            continue
        minutes = {}
        for operation, value in operations.items():
            if isinstance(value, bool):
                continue
            try:
                minutes[operation] = float(value)
            except (TypeError, ValueError):
                continue
        if minutes:
            result[type_name] = minutes
    return result


@dataclass
class PollingConfig:
    """Poll loop configuration shared by all resource kinds."""

    poll_interval: float = 10  # seconds
    poll_jitter: float = 0.0  # max extra seconds per interval

    # Per-kind overrides in minutes, e.g.
    # {"streamnative_pulsar_cluster": {"create": 180}}
    resource_timeouts: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        resource_timeouts = {}
        if os.getenv("RESOURCE_TIMEOUTS"):
            try:
                resource_timeouts = parse_resource_timeouts(
                    json.loads(os.getenv("RESOURCE_TIMEOUTS"))
                )
            except json.JSONDecodeError:
                pass

        return cls(
            poll_interval=float(os.getenv("POLL_INTERVAL", "10")),
            poll_jitter=float(os.getenv("POLL_JITTER", "0.0")),
            resource_timeouts=resource_timeouts,
        )

    def timeout_override(self, type_name: str, operation: str) -> Optional[float]:
        """Get the configured timeout in minutes for one kind and operation."""
        operations = self.resource_timeouts.get(type_name)
        if not isinstance(operations, dict):
            return None
        value = operations.get(operation)
        return float(value) if value is not None else None


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(log_level=os.getenv("LOG_LEVEL", "INFO"))


@dataclass
class Config:
    """Main configuration object."""

    cloud: CloudConfig
    polling: PollingConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            cloud=CloudConfig.from_env(),
            polling=PollingConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            cloud=CloudConfig(),
            polling=PollingConfig(),
            logging=LoggingConfig(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Render the configuration without secrets."""
        return {
            "api_server": self.cloud.api_server,
            "issuer": self.cloud.issuer,
            "audience": self.cloud.audience,
            "client_id": self.cloud.client_id,
            "key_file_path": self.cloud.key_file_path,
            "poll_interval": self.polling.poll_interval,
            "poll_jitter": self.polling.poll_jitter,
            "log_level": self.logging.log_level,
        }


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
