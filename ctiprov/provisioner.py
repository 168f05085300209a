"""
Main provisioner: runs the ordered steps and stops at the first failure.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import Settings
from .errors import HostFilesystemError, ProvisionError
from .events import EventLog, EventTypes
from .shell import Host
from .state import provision_lock, write_run_record
from .steps import (
    ConfigurationWriter, DependencyEnsurer, HostTuning, Launcher, ManifestPatcher,
    PortainerInstaller, ProvisionContext, Step, StepResult, WorkspaceEnsurer,
)

logger = logging.getLogger(__name__)

SKIPPABLE_STEPS = ("host-tuning", "portainer")


@dataclass
class ProvisionReport:
    ok: bool
    results: List[StepResult] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[ProvisionError] = None
    duration: float = 0.0

    @property
    def exit_code(self) -> int:
        if self.ok:
            return 0
        return self.error.exit_code if self.error else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "failed_step": self.failed_step,
            "error": self.error.to_dict() if self.error else None,
            "duration_s": round(self.duration, 2),
            "steps": [r.to_dict() for r in self.results],
        }


def default_steps(settings: Settings, skip: Iterable[str] = ()) -> List[Step]:
    skip = set(skip)
    steps: List[Step] = [
        DependencyEnsurer(),
        WorkspaceEnsurer(),
        ConfigurationWriter(),
        ManifestPatcher(),
        HostTuning(),
        Launcher(),
    ]
    if settings.with_portainer:
        steps.append(PortainerInstaller())
    return [s for s in steps if s.name not in skip]


class Provisioner:
    """Brings the host to "stack running and healthy"; safe to rerun."""

    def __init__(
        self,
        settings: Settings,
        host: Optional[Host] = None,
        steps: Optional[List[Step]] = None,
        events: Optional[EventLog] = None,
        sleep: Callable[[float], None] = time.sleep,
        skip: Iterable[str] = (),
    ):
        self.settings = settings
        self.host = host or Host()
        self.steps = steps if steps is not None else default_steps(settings, skip)
        self.events = events or EventLog(settings.state_home)
        self.sleep = sleep

    def run(self) -> ProvisionReport:
        with provision_lock(self.settings.state_home):
            report = self._run_steps()
        write_run_record(self.settings.state_home, report.to_dict())
        return report

    def _run_steps(self) -> ProvisionReport:
        ctx = ProvisionContext(settings=self.settings, host=self.host, events=self.events, sleep=self.sleep)
        report = ProvisionReport(ok=True)
        started = time.time()

        self.events.emit(EventTypes.RUN_START, {
            "install_dir": str(self.settings.install_dir),
            "steps": [s.name for s in self.steps],
        })

        for step in self.steps:
            logger.info("==> %s", step.name)
            self.events.emit(EventTypes.STEP_START, {"step": step.name})
            try:
                result = self._run_step(step, ctx)
            except ProvisionError as e:
                logger.error("Step '%s' failed: %s", step.name, e.message)
                if e.hint:
                    logger.error("Hint: %s", e.hint)
                self.events.emit(EventTypes.ERROR, {
                    "step": step.name,
                    "kind": e.kind,
                    "message": e.message,
                    "hint": e.hint,
                })
                report.ok = False
                report.failed_step = step.name
                report.error = e
                report.results.append(StepResult(name=step.name, ok=False, message=e.message))
                break

            report.results.append(result)
            logger.info("<== %s: %s", step.name, result.message)
            self.events.emit(EventTypes.STEP_DONE, {
                "step": step.name,
                "changed": result.changed,
                "message": result.message,
            })

        report.duration = time.time() - started
        if report.ok:
            self.events.emit(EventTypes.DONE, {"duration_s": round(report.duration, 2)})
        return report

    def _run_step(self, step: Step, ctx: ProvisionContext) -> StepResult:
        """Run one step; host filesystem failures become a reportable ProvisionError."""
        try:
            return step.run(ctx)
        except OSError as e:
            raise HostFilesystemError(
                f"{type(e).__name__}: {e}",
                hint="Check ownership and permissions of the paths involved, then rerun",
            ) from e
