"""Configuration loading and merging for beacon."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from .registry.errors import ConfigError


# Environment variable holding the default registry address. The misspelling
# is kept for compatibility with existing deployments.
REGISTRY_ADDRESS_ENV = "CONSUL_RUL"
REGISTRY_TOKEN_ENV = "CONSUL_HTTP_TOKEN"


@dataclass
class RegistrationConfig:
    server_name: str = ""
    listen_addr: str = ""
    listen_port: int = 0

    # Health check polling interval (seconds)
    interval: int = 10
    # Grace period before a critical instance is removed (minutes)
    deregister_after: int = 10
    health_endpoint: str = "ok"

    registry_address: str = ""
    token: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    # Socket timeout for each registry request (seconds)
    timeout: float = 10.0

    @property
    def service_id(self) -> str:
        """Composite identity used for both registration and deregistration."""
        return f"{self.server_name}-{self.listen_addr}-{self.listen_port}"

    @property
    def health_url(self) -> str:
        endpoint = self.health_endpoint.lstrip("/")
        return f"http://{self.listen_addr}:{self.listen_port}/{endpoint}"

    def validate(self) -> None:
        """Raise ConfigError unless the config can be used for registration."""
        if not self.server_name:
            raise ConfigError("server name is required")
        if not self.listen_addr:
            raise ConfigError("listen address is required")
        if isinstance(self.listen_port, bool) or not isinstance(self.listen_port, int):
            raise ConfigError(f"listen port must be an integer, got {self.listen_port!r}")
        if not 0 < self.listen_port < 65536:
            raise ConfigError(f"listen port out of range: {self.listen_port}")
        for name, label in (("interval", "health check interval"),
                            ("deregister_after", "deregister grace period")):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{label} must be a whole number, got {value!r}")
            if value <= 0:
                raise ConfigError(f"{label} must be positive, got {value}")
        if not self.registry_address:
            raise ConfigError("registry address is required")


def parse_listen_address(ip_port: str) -> tuple[str, int]:
    """Split a ``host:port`` string into its host and integer port."""
    parts = ip_port.split(":")
    if len(parts) != 2:
        raise ConfigError(f"expected HOST:PORT, got {ip_port!r}")
    host, port_str = parts
    if not (port_str.isascii() and port_str.isdigit()):
        raise ConfigError(f"invalid port {port_str!r} in {ip_port!r}")
    return host, int(port_str)


def format_duration(seconds: int) -> str:
    """Render whole seconds as a registry-native duration string.

    Matches the registry's own formatting: ``10s``, ``10m0s``, ``1h30m0s``.
    """
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m{secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes}m{secs}s"


def load_config(path: str | Path) -> RegistrationConfig:
    """Load a RegistrationConfig from a YAML file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    valid_fields = {f.name for f in fields(RegistrationConfig)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return RegistrationConfig(**filtered)


def merge_cli_args(config: RegistrationConfig, args) -> RegistrationConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(RegistrationConfig):
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config
