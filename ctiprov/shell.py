"""
Command execution and host access.

Every interaction with the host (package manager, service manager, docker,
git, sysctl, privileged file writes) goes through a ``Host`` so that tests
can swap the runner for a scripted fake.
"""

import getpass
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import CommandError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Thin wrapper around subprocess.run that logs every command."""

    def __init__(self, env: Optional[Dict[str, str]] = None):
        self.env = env

    def is_root(self) -> bool:
        return hasattr(os, "geteuid") and os.geteuid() == 0

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def run(
        self,
        argv: Sequence[str],
        check: bool = True,
        privileged: bool = False,
        cwd: Optional[Path] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """
        Run a command and capture its output.

        Args:
            argv: Command and arguments
            check: Raise CommandError on a non-zero exit
            privileged: Prefix with sudo unless already root
            cwd: Working directory
            input: Text fed to stdin

        Returns:
            CommandResult
        """
        argv = list(argv)
        if privileged and not self.is_root():
            argv = ["sudo"] + argv

        logger.info("$ %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                input=input,
                capture_output=True,
                text=True,
                env=self.env,
            )
        except FileNotFoundError as e:
            result = CommandResult(argv, 127, "", str(e))
        else:
            result = CommandResult(argv, proc.returncode, proc.stdout or "", proc.stderr or "")

        if not result.ok:
            logger.debug("exit %s: %s", result.returncode, result.stderr.strip())
            if check:
                raise CommandError(argv, result.returncode, result.stderr)
        return result


class Host:
    """Facts about, and mutations of, the machine being provisioned."""

    def __init__(self, runner: Optional[CommandRunner] = None, user: Optional[str] = None):
        self.runner = runner or CommandRunner()
        self.user = user or os.environ.get("USER") or getpass.getuser()

    def run(self, argv: Sequence[str], **kwargs) -> CommandResult:
        return self.runner.run(argv, **kwargs)

    def is_root(self) -> bool:
        return self.runner.is_root()

    def command_exists(self, name: str) -> bool:
        return self.runner.which(name) is not None

    def service_active(self, service: str) -> bool:
        return self.run(["systemctl", "is-active", "--quiet", service], check=False).ok

    def user_groups(self) -> List[str]:
        result = self.run(["id", "-nG", self.user], check=False)
        return result.stdout.split() if result.ok else []

    def write_text(self, path: Path, content: str) -> None:
        """Write a file directly when possible, otherwise through ``sudo tee``."""
        path = Path(path)
        target = path if path.exists() else path.parent
        if os.access(target, os.W_OK):
            path.write_text(content)
        else:
            self.run(["tee", str(path)], privileged=True, input=content)
