"""
Container health polling for the launched stack.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..events import EventLog, EventTypes, NullEventLog
from ..shell import Host

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class HealthPolicy(Enum):
    """
    PERMISSIVE: at least one monitored service healthy and none unhealthy.
    STRICT: every expected service present and healthy.
    """
    PERMISSIVE = "permissive"
    STRICT = "strict"


Snapshot = Dict[str, HealthStatus]


def parse_status(text: str) -> HealthStatus:
    """Map a ``docker ps`` status column to a HealthStatus."""
    lowered = text.lower()
    if "(unhealthy)" in lowered:
        return HealthStatus.UNHEALTHY
    if "(healthy)" in lowered:
        return HealthStatus.HEALTHY
    return HealthStatus.UNKNOWN


def service_name(container: str, project: str, expected: List[str]) -> Optional[str]:
    """
    Resolve a container name to its compose service.

    Handles ``<project>_<service>_<n>`` (compose v1),
    ``<project>-<service>-<n>`` (compose v2) and explicit container names
    such as ``opencti_redis``.
    """
    m = re.match(rf"^{re.escape(project)}[-_](.+?)[-_]\d+$", container)
    if m:
        return m.group(1)
    if container in expected:
        return container
    for svc in expected:
        if container.endswith(f"_{svc}") or container.endswith(f"-{svc}"):
            return svc
    return None


def merge_status(a: HealthStatus, b: HealthStatus) -> HealthStatus:
    """Combine replicas of one service: any unhealthy wins, then any unknown."""
    if HealthStatus.UNHEALTHY in (a, b):
        return HealthStatus.UNHEALTHY
    if HealthStatus.UNKNOWN in (a, b):
        return HealthStatus.UNKNOWN
    return HealthStatus.HEALTHY


def parse_ps_output(output: str, project: str, expected: List[str]) -> Snapshot:
    snapshot: Snapshot = {}
    for line in output.splitlines():
        if "\t" not in line:
            continue
        name, status = line.split("\t", 1)
        svc = service_name(name.strip(), project, expected)
        if svc is None:
            continue
        state = parse_status(status)
        snapshot[svc] = merge_status(snapshot[svc], state) if svc in snapshot else state
    return snapshot


def docker_ps_probe(host: Host, project: str, expected: List[str]) -> Callable[[], Snapshot]:
    """Build a probe that reads health from ``docker ps``."""
    def probe() -> Snapshot:
        result = host.run(["docker", "ps", "--format", "{{.Names}}\t{{.Status}}"], check=False)
        if not result.ok:
            logger.warning("docker ps failed: %s", result.stderr.strip())
            return {}
        return parse_ps_output(result.stdout, project, expected)
    return probe


def evaluate(snapshot: Snapshot, policy: HealthPolicy, expected: List[str]) -> bool:
    statuses = list(snapshot.values())
    if HealthStatus.UNHEALTHY in statuses:
        return False
    if policy is HealthPolicy.STRICT:
        return bool(expected) and all(snapshot.get(svc) is HealthStatus.HEALTHY for svc in expected)
    return HealthStatus.HEALTHY in statuses


@dataclass
class PollOutcome:
    healthy: bool
    attempts: int
    snapshot: Snapshot = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)

    def not_healthy(self, services: List[str]) -> List[str]:
        return [s for s in services if self.snapshot.get(s) is not HealthStatus.HEALTHY]

    def to_dict(self) -> Dict[str, object]:
        return {
            "healthy": self.healthy,
            "attempts": self.attempts,
            "services": {k: v.value for k, v in self.snapshot.items()},
            "missing": self.missing,
        }


class HealthPoller:
    """Polls a probe until the policy is satisfied or the retry budget is spent."""

    def __init__(
        self,
        probe: Callable[[], Snapshot],
        expected: List[str],
        policy: HealthPolicy = HealthPolicy.PERMISSIVE,
        retries: int = 10,
        interval: float = 15.0,
        sleep: Callable[[float], None] = time.sleep,
        events: Optional[EventLog] = None,
    ):
        self.probe = probe
        self.expected = list(expected)
        self.policy = policy
        self.retries = retries
        self.interval = interval
        self.sleep = sleep
        self.events = events or NullEventLog()

    def poll(self) -> PollOutcome:
        snapshot: Snapshot = {}
        for attempt in range(1, self.retries + 1):
            snapshot = self.probe()
            missing = [s for s in self.expected if s not in snapshot]
            self.events.emit(EventTypes.HEALTH_ATTEMPT, {
                "attempt": attempt,
                "of": self.retries,
                "services": {k: v.value for k, v in snapshot.items()},
            })

            if evaluate(snapshot, self.policy, self.expected):
                if missing and self.policy is HealthPolicy.PERMISSIVE:
                    logger.warning(
                        "Stack reported healthy, but expected services are not running: %s",
                        ", ".join(missing),
                    )
                logger.info("All monitored containers are healthy (attempt %d/%d)", attempt, self.retries)
                outcome = PollOutcome(True, attempt, snapshot, missing)
                self.events.emit(EventTypes.HEALTH_OK, outcome.to_dict())
                return outcome

            waiting = sorted(k for k, v in snapshot.items() if v is not HealthStatus.HEALTHY) + missing
            logger.info(
                "Waiting for containers to become healthy (attempt %d/%d): %s",
                attempt, self.retries, ", ".join(waiting) or "no containers yet",
            )
            if attempt < self.retries:
                self.sleep(self.interval)

        outcome = PollOutcome(False, self.retries, snapshot, [s for s in self.expected if s not in snapshot])
        self.events.emit(EventTypes.HEALTH_TIMEOUT, outcome.to_dict())
        return outcome
