"""
Provisioning settings.

Defaults are overridden by an optional YAML file, then by ``CTIPROV_*``
environment variables, then by CLI flags.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

ENV_PREFIX = "CTIPROV_"

RESERVED_ENV_PREFIXES = ["OPENCTI_", "MINIO_", "RABBITMQ_", "ELASTIC_", "CONNECTOR_"]


class FallbackService(BaseModel):
    """A critical service that can be started with a bare ``docker run``."""

    model_config = ConfigDict(extra="forbid")

    image: str
    container_name: str
    args: List[str] = Field(default_factory=list)


def _default_fallback_services() -> Dict[str, FallbackService]:
    return {
        "redis": FallbackService(
            image="redis:6.2",
            container_name="opencti_redis",
            args=["--restart", "unless-stopped"],
        ),
        "elasticsearch": FallbackService(
            image="docker.elastic.co/elasticsearch/elasticsearch:8.13.4",
            container_name="opencti_elasticsearch",
            args=[
                "--restart", "unless-stopped",
                "-e", "discovery.type=single-node",
                "-e", "xpack.ml.enabled=false",
                "-e", "xpack.security.enabled=false",
            ],
        ),
    }


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # Workspace
    install_dir: Path = Field(default_factory=lambda: Path.home() / "opencti")
    repo_url: str = "https://github.com/OpenCTI-Platform/docker.git"
    checkout_name: str = "docker"
    env_file_name: str = ".env"
    manifest_name: str = "docker-compose.yml"
    compose_cmd: List[str] = Field(default_factory=lambda: ["docker-compose"])
    min_compose_version: str = "1.29.0"

    # Platform configuration
    admin_email: str = "admin@opencti.io"
    admin_password: str = "ChangeMePlease"
    base_url: str = "http://localhost:8080"
    rabbitmq_user: str = "guest"
    rabbitmq_password: str = "guest"
    elastic_memory_size: str = "4G"
    smtp_hostname: str = "localhost"
    secrets_mode: Literal["regenerate", "preserve"] = "regenerate"

    # Health polling
    health_policy: Literal["permissive", "strict"] = "permissive"
    expected_services: List[str] = Field(
        default_factory=lambda: [
            "redis", "elasticsearch", "minio", "rabbitmq", "opencti",
        ]
    )
    health_retries: int = 10
    health_interval: float = 15.0
    log_tail_lines: int = 100
    fallback: bool = False
    fallback_services: Dict[str, FallbackService] = Field(default_factory=_default_fallback_services)
    smoke_check: bool = False

    # Host tuning
    sysctl_key: str = "vm.max_map_count"
    sysctl_value: int = 1048575
    sysctl_file: Path = Path("/etc/sysctl.conf")

    # Teardown
    environment_file: Path = Path("/etc/environment")
    reserved_env_prefixes: List[str] = Field(default_factory=lambda: list(RESERVED_ENV_PREFIXES))
    network_name: Optional[str] = None

    # Portainer
    with_portainer: bool = False
    portainer_image: str = "portainer/portainer-ce:latest"
    portainer_name: str = "portainer"
    portainer_volume: str = "portainer_data"

    # Local state (event log, lock, run record)
    state_home: Path = Field(default_factory=lambda: Path.home() / ".ctiprov")

    @field_validator("health_retries")
    @classmethod
    def _positive_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("health_retries must be at least 1")
        return v

    @field_validator("health_interval")
    @classmethod
    def _non_negative_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("health_interval must not be negative")
        return v

    @field_validator("install_dir", "state_home", "sysctl_file", "environment_file")
    @classmethod
    def _expand(cls, v: Path) -> Path:
        return Path(os.path.expanduser(str(v)))

    @property
    def checkout_dir(self) -> Path:
        return self.install_dir / self.checkout_name

    @property
    def env_file(self) -> Path:
        return self.checkout_dir / self.env_file_name

    @property
    def manifest_path(self) -> Path:
        return self.checkout_dir / self.manifest_name

    @property
    def compose_project(self) -> str:
        return self.checkout_name

    @property
    def stack_network(self) -> str:
        """The stack's default network, ``<project>_default`` unless set explicitly."""
        return self.network_name or f"{self.compose_project}_default"

    @property
    def log_file(self) -> Path:
        return self.state_home / "provision.log"


def _env_overrides(environ: Dict[str, str]) -> Dict[str, Any]:
    """Collect CTIPROV_<FIELD> variables; list fields are comma separated, except the compose command."""
    overrides: Dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is None:
            continue
        if name == "compose_cmd":
            overrides[name] = raw.split()
        elif field.annotation == List[str]:
            overrides[name] = [item.strip() for item in raw.split(",") if item.strip()]
        elif field.annotation is bool:
            overrides[name] = raw.strip().lower() in ("1", "true", "yes", "on")
        else:
            overrides[name] = raw
    return overrides


def load_settings(
    config_file: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    """
    Build Settings from defaults, a YAML file, the environment and overrides.

    Args:
        config_file: Optional YAML settings file
        overrides: Values from CLI flags; ``None`` entries are ignored
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        ConfigError: If the file cannot be read or a value is invalid
    """
    data: Dict[str, Any] = {}

    if config_file is not None:
        path = Path(config_file)
        if not path.exists():
            raise ConfigError(f"Settings file not found: {path}")
        try:
            loaded = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Settings file is not valid YAML: {e}")
        if not isinstance(loaded, dict):
            raise ConfigError(f"Settings file must contain a mapping: {path}")
        data.update(loaded)

    data.update(_env_overrides(os.environ if environ is None else environ))

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}")
