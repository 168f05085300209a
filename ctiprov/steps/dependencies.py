"""
Host dependencies: container runtime, stack CLI, git, the docker service
and the invoking user's access to it.
"""

import logging
import re
from typing import List, Optional, Tuple

from ..errors import CommandError, DependencyError, PermissionDeniedError, RuntimeUnreachableError
from .base import ProvisionContext, Step, StepResult

logger = logging.getLogger(__name__)

# command -> apt package
REQUIRED_PACKAGES: List[Tuple[str, str]] = [
    ("docker", "docker.io"),
    ("docker-compose", "docker-compose"),
    ("git", "git"),
]

RUNTIME_SERVICE = "docker"
RUNTIME_GROUP = "docker"

VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def parse_version(text: str) -> Optional[Tuple[int, int, int]]:
    m = VERSION_RE.search(text or "")
    if not m:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)


class DependencyEnsurer(Step):
    name = "dependencies"

    def __init__(self, packages: Optional[List[Tuple[str, str]]] = None):
        self.packages = packages if packages is not None else REQUIRED_PACKAGES

    def run(self, ctx: ProvisionContext) -> StepResult:
        host = ctx.host
        actions: List[str] = []

        standalone_compose = ctx.settings.compose_cmd[0] == "docker-compose"
        missing = [
            pkg for cmd, pkg in self.packages
            if (standalone_compose or cmd != "docker-compose") and not host.command_exists(cmd)
        ]
        if missing:
            logger.info("Installing missing packages: %s", ", ".join(missing))
            self._apt(ctx, ["update"])
            self._apt(ctx, ["install", "-y"] + missing)
            actions.append(f"installed {', '.join(missing)}")

        if self._upgrade_compose_if_outdated(ctx):
            actions.append("upgraded docker-compose")

        if not host.service_active(RUNTIME_SERVICE):
            logger.info("Docker service is not running. Starting Docker...")
            host.run(["systemctl", "start", RUNTIME_SERVICE], privileged=True)
            host.run(["systemctl", "enable", RUNTIME_SERVICE], privileged=True)
            actions.append("started docker service")

        self._ensure_group_membership(ctx)

        if not host.run(["docker", "info"], check=False).ok:
            raise RuntimeUnreachableError(
                "Failed to connect to the Docker daemon",
                hint="Ensure the docker service is running and its socket is accessible",
            )

        return self.result(
            changed=bool(actions),
            message="; ".join(actions) or "all dependencies present",
            details={"actions": actions},
        )

    def _apt(self, ctx: ProvisionContext, args: List[str]) -> None:
        try:
            ctx.host.run(["apt-get"] + args, privileged=True)
        except CommandError as e:
            raise DependencyError(
                f"Package manager failed: {e.message}",
                hint="Check network access and apt sources, then rerun",
            )

    def _upgrade_compose_if_outdated(self, ctx: ProvisionContext) -> bool:
        minimum = parse_version(ctx.settings.min_compose_version)
        if minimum is None or ctx.settings.compose_cmd[0] != "docker-compose":
            return False

        current = parse_version(ctx.host.run(["docker-compose", "version", "--short"], check=False).stdout)
        if current is None or current >= minimum:
            return False

        logger.info(
            "docker-compose %s is older than %s, upgrading",
            ".".join(map(str, current)), ctx.settings.min_compose_version,
        )
        self._apt(ctx, ["install", "-y", "--only-upgrade", "docker-compose"])
        return True

    def _ensure_group_membership(self, ctx: ProvisionContext) -> None:
        host = ctx.host
        if host.is_root():
            return
        if RUNTIME_GROUP in host.user_groups():
            return

        logger.info("Adding %s to the %s group", host.user, RUNTIME_GROUP)
        host.run(["usermod", "-aG", RUNTIME_GROUP, host.user], privileged=True)
        raise PermissionDeniedError(
            f"User '{host.user}' was added to the '{RUNTIME_GROUP}' group",
            hint=f"Log out and log back in, or run 'newgrp {RUNTIME_GROUP}', then rerun",
        )
