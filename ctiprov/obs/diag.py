"""
Diagnostics collected when the stack does not come up.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any
import logging
import time

logger = logging.getLogger(__name__)


@dataclass
class DiagnosticReport:
    """Log tail and container listing captured after a failed launch."""
    summary: str
    log_tail: List[str]
    containers: List[str]
    next_steps: List[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "log_tail": self.log_tail,
            "containers": self.containers,
            "next_steps": self.next_steps,
            "timestamp": self.timestamp,
        }


class DiagnosticReporter:
    """Gathers stack logs and container state through the host."""

    def __init__(self, ctx):
        self.ctx = ctx

    def collect(self, not_healthy: List[str]) -> DiagnosticReport:
        settings = self.ctx.settings
        host = self.ctx.host

        logs = host.run(
            self.ctx.compose("logs", "--tail", str(settings.log_tail_lines)),
            check=False,
            cwd=settings.checkout_dir,
        )
        log_tail = (logs.stdout + logs.stderr).splitlines()[-settings.log_tail_lines:]

        ps = host.run(["docker", "ps", "-a", "--format", "{{.Names}}\t{{.Status}}"], check=False)
        containers = ps.stdout.splitlines()

        for line in log_tail:
            logger.info("[stack] %s", line)
        for line in containers:
            logger.info("[container] %s", line)

        summary = (
            f"Services not healthy: {', '.join(not_healthy)}" if not_healthy
            else "Stack did not satisfy the health policy"
        )
        compose = " ".join(settings.compose_cmd)
        next_steps = [
            f"cd {settings.checkout_dir} && {compose} logs -f",
            f"cd {settings.checkout_dir} && {compose} ps",
            f"sysctl {settings.sysctl_key}",
        ]
        return DiagnosticReport(summary=summary, log_tail=log_tail, containers=containers, next_steps=next_steps)
