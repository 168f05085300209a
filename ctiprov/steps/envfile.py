"""
Configuration writer for the stack's ``.env`` file.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Callable, Dict, List

from ..config import Settings
from ..errors import ConfigError
from .base import ProvisionContext, Step, StepResult

logger = logging.getLogger(__name__)

ENV_KEYS: List[str] = [
    "OPENCTI_ADMIN_EMAIL",
    "OPENCTI_ADMIN_PASSWORD",
    "OPENCTI_ADMIN_TOKEN",
    "OPENCTI_BASE_URL",
    "MINIO_ROOT_USER",
    "MINIO_ROOT_PASSWORD",
    "RABBITMQ_DEFAULT_USER",
    "RABBITMQ_DEFAULT_PASS",
    "ELASTIC_MEMORY_SIZE",
    "CONNECTOR_HISTORY_ID",
    "CONNECTOR_EXPORT_FILE_STIX_ID",
    "CONNECTOR_EXPORT_FILE_CSV_ID",
    "CONNECTOR_IMPORT_FILE_STIX_ID",
    "CONNECTOR_EXPORT_FILE_TXT_ID",
    "CONNECTOR_IMPORT_DOCUMENT_ID",
    "SMTP_HOSTNAME",
]

GENERATED_KEYS = {
    "OPENCTI_ADMIN_TOKEN",
    "MINIO_ROOT_USER",
    "MINIO_ROOT_PASSWORD",
    "CONNECTOR_HISTORY_ID",
    "CONNECTOR_EXPORT_FILE_STIX_ID",
    "CONNECTOR_EXPORT_FILE_CSV_ID",
    "CONNECTOR_IMPORT_FILE_STIX_ID",
    "CONNECTOR_EXPORT_FILE_TXT_ID",
    "CONNECTOR_IMPORT_DOCUMENT_ID",
}


def parse_env_file(path: Path) -> Dict[str, str]:
    """Read KEY=VALUE lines, ignoring blanks and comments."""
    values: Dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


def build_env_values(
    settings: Settings,
    existing: Dict[str, str],
    new_id: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> Dict[str, str]:
    """
    Compute the full key set.

    Static keys always come from settings. Generated keys are fresh in
    ``regenerate`` mode; in ``preserve`` mode existing non-empty values win.
    """
    static = {
        "OPENCTI_ADMIN_EMAIL": settings.admin_email,
        "OPENCTI_ADMIN_PASSWORD": settings.admin_password,
        "OPENCTI_BASE_URL": settings.base_url,
        "RABBITMQ_DEFAULT_USER": settings.rabbitmq_user,
        "RABBITMQ_DEFAULT_PASS": settings.rabbitmq_password,
        "ELASTIC_MEMORY_SIZE": settings.elastic_memory_size,
        "SMTP_HOSTNAME": settings.smtp_hostname,
    }

    values: Dict[str, str] = {}
    for key in ENV_KEYS:
        if key in GENERATED_KEYS:
            if settings.secrets_mode == "preserve" and existing.get(key):
                values[key] = existing[key]
            else:
                values[key] = new_id()
        else:
            values[key] = static[key]

    empty = [k for k, v in values.items() if not str(v).strip()]
    if empty:
        raise ConfigError(f"Configuration values must not be empty: {', '.join(empty)}")
    return values


def render_env(values: Dict[str, str]) -> str:
    return "".join(f"{key}={values[key]}\n" for key in ENV_KEYS)


class ConfigurationWriter(Step):
    name = "configuration"

    def __init__(self, new_id: Callable[[], str] = lambda: str(uuid.uuid4())):
        self.new_id = new_id

    def run(self, ctx: ProvisionContext) -> StepResult:
        path = ctx.settings.env_file
        existing = parse_env_file(path)
        values = build_env_values(ctx.settings, existing, self.new_id)
        content = render_env(values)

        previous = path.read_text() if path.exists() else None
        if previous is not None and ctx.settings.secrets_mode == "regenerate":
            logger.info("Regenerating secrets in %s; previously issued credentials are replaced", path)

        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(content)
        os.chmod(path, 0o600)

        reused = sorted(k for k in GENERATED_KEYS if existing.get(k) and existing[k] == values[k])
        return self.result(
            changed=content != previous,
            message=f"wrote {len(values)} keys ({ctx.settings.secrets_mode})",
            details={"path": str(path), "reused": reused},
        )
