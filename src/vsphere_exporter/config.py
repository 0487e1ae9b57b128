"""
Exporter Configuration

Settings are read once at startup from, in increasing precedence: defaults,
a YAML file, environment variables and command-line flags.

Author: uldyssian-sh
License: MIT
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .exceptions import ConfigurationError


ENVIRONMENT_VARIABLES = {
    "vcenter_url": "VCENTER_URL",
    "username": "VCENTER_USERNAME",
    "password": "VCENTER_PASSWORD",
    "insecure": "VCENTER_INSECURE",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


@dataclass
class ExporterConfig:
    """vSphere exporter configuration"""

    # vCenter settings
    vcenter_url: str = "localhost"
    username: str = ""
    password: str = ""
    insecure: bool = True

    # Web settings
    listen_address: str = ":9102"
    metrics_path: str = "/metrics"

    # Collection settings
    hierarchy_labels: bool = False
    call_timeout: float = 30.0
    poll_timeout: float = 60.0
    max_workers: int = 8

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_dir: Optional[str] = None

    def validate(self) -> None:
        if not self.vcenter_url:
            raise ConfigurationError("vCenter URL is required")
        if not self.metrics_path.startswith("/"):
            raise ConfigurationError(f"Metrics path must start with '/': {self.metrics_path}")
        if self.metrics_path == "/":
            raise ConfigurationError("Metrics path cannot be the landing page '/'")
        if self.call_timeout <= 0 or self.poll_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(f"Invalid log format: {self.log_format}")
        parse_listen_address(self.listen_address)

    @property
    def listen_host(self) -> Optional[str]:
        return parse_listen_address(self.listen_address)[0]

    @property
    def listen_port(self) -> int:
        return parse_listen_address(self.listen_address)[1]


def parse_listen_address(address: str) -> Tuple[Optional[str], int]:
    """Split host:port; an empty host listens on every interface"""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"Listen address must be host:port, got {address!r}")
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid listen port: {port!r}")
    if not 0 < port_number < 65536:
        raise ConfigurationError(f"Listen port out of range: {port_number}")
    return (host.strip("[]") or None), port_number


def _coerce(name: str, value: Any, field_type: Any) -> Any:
    if value is None:
        return None
    try:
        if field_type is bool:
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if field_type is int:
            return int(value)
        if field_type is float:
            return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name}: {value!r}")
    return str(value) if field_type is str else value


def load_config(config_file: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> ExporterConfig:
    """Build and validate the exporter configuration"""
    environ = os.environ if environ is None else environ
    field_types = {f.name: f.type for f in fields(ExporterConfig)}
    data: Dict[str, Any] = {}

    if config_file:
        path = Path(config_file)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}")
        with open(path, "r") as f:
            try:
                file_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid configuration file {config_file}: {e}")
        if not isinstance(file_data, dict):
            raise ConfigurationError(f"Configuration file {config_file} must be a mapping")
        data.update(file_data)

    for name, variable in ENVIRONMENT_VARIABLES.items():
        if variable in environ:
            data[name] = environ[variable]

    for name, value in (overrides or {}).items():
        if value is not None:
            data[name] = value

    unknown = sorted(set(data) - set(field_types))
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    config = ExporterConfig(**{
        name: _coerce(name, value, field_types[name]) for name, value in data.items()
    })
    config.validate()
    return config
