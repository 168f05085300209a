"""
Workspace: the installation directory and the deployment repository checkout.
"""

import logging
from enum import Enum
from pathlib import Path

from ..errors import WorkspaceConflictError
from .base import ProvisionContext, Step, StepResult

logger = logging.getLogger(__name__)


class WorkspaceState(Enum):
    ABSENT = "absent"
    CHECKOUT = "checkout"
    FOREIGN = "foreign"


def inspect_workspace(checkout: Path) -> WorkspaceState:
    """Classify the checkout path without touching it."""
    if not checkout.exists():
        return WorkspaceState.ABSENT
    if checkout.is_dir() and (checkout / ".git").is_dir():
        return WorkspaceState.CHECKOUT
    return WorkspaceState.FOREIGN


class WorkspaceEnsurer(Step):
    name = "workspace"

    def run(self, ctx: ProvisionContext) -> StepResult:
        settings = ctx.settings
        checkout = settings.checkout_dir
        state = inspect_workspace(checkout)

        if state is WorkspaceState.FOREIGN:
            raise WorkspaceConflictError(
                f"'{checkout}' exists but is not a Git repository",
                hint="Move or delete the existing directory and rerun",
            )
        if settings.install_dir.exists() and not settings.install_dir.is_dir():
            raise WorkspaceConflictError(
                f"'{settings.install_dir}' exists but is not a directory",
                hint="Move or delete the existing file, or pass a different --install-dir",
            )

        settings.install_dir.mkdir(parents=True, exist_ok=True)

        if state is WorkspaceState.CHECKOUT:
            logger.info("Directory '%s' is a Git repository. Pulling latest changes...", checkout)
            out = ctx.host.run(["git", "-C", str(checkout), "pull"]).stdout
            changed = "Already up to date" not in out and "Already up-to-date" not in out
            return self.result(changed=changed, message="pulled", details={"path": str(checkout)})

        logger.info("Cloning %s into %s", settings.repo_url, checkout)
        ctx.host.run(["git", "clone", settings.repo_url, str(checkout)])
        return self.result(changed=True, message="cloned", details={"path": str(checkout)})
