"""
Base step interface and the context shared by every step.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
import logging
import time

from ..config import Settings
from ..events import EventLog, NullEventLog
from ..shell import Host

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    """Outcome of one provisioning step."""
    name: str
    ok: bool = True
    changed: bool = False
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "changed": self.changed,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class ProvisionContext:
    """Everything a step may read or mutate."""
    settings: Settings
    host: Host
    events: EventLog = field(default_factory=NullEventLog)
    sleep: Callable[[float], None] = time.sleep

    def compose(self, *args: str) -> list:
        """Build a stack-CLI command line, e.g. compose("up", "-d")."""
        return list(self.settings.compose_cmd) + list(args)


class Step(ABC):
    """Abstract base class for provisioning steps."""

    name: str = "step"

    @abstractmethod
    def run(self, ctx: ProvisionContext) -> StepResult:
        """
        Bring one aspect of the host to its desired state.

        Args:
            ctx: Shared provisioning context

        Returns:
            StepResult describing what changed

        Raises:
            ProvisionError: On any fatal, anticipated condition
        """
        pass

    def result(self, changed: bool = False, message: str = "", details: Optional[Dict[str, Any]] = None) -> StepResult:
        return StepResult(name=self.name, ok=True, changed=changed, message=message, details=details or {})
