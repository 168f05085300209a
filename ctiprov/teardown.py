"""
Teardown: stop and remove the stack, its workspace and its environment entries.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import Settings
from .errors import TeardownError
from .events import EventLog, EventTypes
from .shell import Host
from .state import provision_lock

logger = logging.getLogger(__name__)


@dataclass
class TeardownReport:
    actions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    removed_env_lines: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actions": self.actions,
            "warnings": self.warnings,
            "removed_env_lines": self.removed_env_lines,
        }


def strip_env_prefixes(text: str, prefixes: List[str]) -> Tuple[str, int]:
    """Drop every line that starts with one of ``prefixes``."""
    kept = []
    removed = 0
    for line in text.splitlines():
        if any(line.startswith(p) for p in prefixes):
            removed += 1
            continue
        kept.append(line)
    new_text = "\n".join(kept) + "\n" if kept else ""
    return new_text, removed


class Teardown:
    def __init__(self, settings: Settings, host: Optional[Host] = None, events: Optional[EventLog] = None):
        self.settings = settings
        self.host = host or Host()
        self.events = events or EventLog(settings.state_home)

    def run(self, prune: bool = False, remove_portainer: bool = False) -> TeardownReport:
        with provision_lock(self.settings.state_home):
            return self._run(prune, remove_portainer)

    def _run(self, prune: bool, remove_portainer: bool) -> TeardownReport:
        settings = self.settings
        host = self.host
        report = TeardownReport()

        if not settings.install_dir.is_dir():
            self.events.emit(EventTypes.ERROR, {
                "step": "teardown",
                "message": f"Installation directory not found: {settings.install_dir}",
            })
            raise TeardownError(
                f"Installation directory not found: {settings.install_dir}",
                hint="Nothing to remove, or --install-dir points elsewhere",
            )

        self.events.emit(EventTypes.TEARDOWN_START, {"install_dir": str(settings.install_dir)})

        if settings.manifest_path.exists():
            logger.info("Stopping and removing containers and volumes...")
            host.run(list(settings.compose_cmd) + ["down", "-v"], cwd=settings.checkout_dir)
            report.actions.append("stack removed")
        else:
            report.warnings.append(f"no manifest at {settings.manifest_path}; skipped stack removal")

        net = host.run(["docker", "network", "rm", settings.stack_network], check=False)
        if net.ok:
            report.actions.append(f"network {settings.stack_network} removed")
        else:
            logger.info("Network %s not removed (absent or in use)", settings.stack_network)

        if remove_portainer:
            host.run(["docker", "rm", "-f", settings.portainer_name], check=False)
            host.run(["docker", "volume", "rm", settings.portainer_volume], check=False)
            report.actions.append("portainer removed")

        logger.info("Deleting %s", settings.install_dir)
        self._remove_tree(settings.install_dir)
        report.actions.append("installation directory deleted")

        report.removed_env_lines = self._clean_environment_file()
        if report.removed_env_lines:
            report.actions.append(f"removed {report.removed_env_lines} environment entries")

        if prune:
            logger.info("Pruning unused images and volumes...")
            host.run(["docker", "system", "prune", "-a", "--volumes", "-f"])
            report.actions.append("docker system pruned")

        self.events.emit(EventTypes.TEARDOWN_DONE, report.to_dict())
        return report

    def _remove_tree(self, path: Path) -> None:
        try:
            shutil.rmtree(path)
        except PermissionError:
            # files created by containers may be root-owned
            self.host.run(["rm", "-rf", str(path)], privileged=True)

    def _clean_environment_file(self) -> int:
        env_file = Path(self.settings.environment_file)
        if not env_file.exists():
            return 0
        new_text, removed = strip_env_prefixes(env_file.read_text(), self.settings.reserved_env_prefixes)
        if removed:
            self.host.write_text(env_file, new_text)
        return removed
