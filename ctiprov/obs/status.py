"""
Status derivation from the provisioning event stream.
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass
from enum import Enum


class ProvisionStatus(Enum):
    """Provisioning status states."""
    UNKNOWN = "unknown"
    PROVISIONING = "provisioning"
    POLLING = "polling"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"
    REMOVING = "removing"
    REMOVED = "removed"


@dataclass
class StatusInfo:
    status: ProvisionStatus
    message: str
    last_event: Optional[Dict[str, Any]] = None
    failed_step: Optional[str] = None
    hint: Optional[str] = None
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "failed_step": self.failed_step,
            "hint": self.hint,
            "timestamp": self.timestamp,
            "last_event": self.last_event,
        }


class StatusDeriver:
    """Derives the current provisioning status from events."""

    EVENT_TO_STATUS = {
        "RUN_START": ProvisionStatus.PROVISIONING,
        "STEP_START": ProvisionStatus.PROVISIONING,
        "STEP_DONE": ProvisionStatus.PROVISIONING,
        "HEALTH_ATTEMPT": ProvisionStatus.POLLING,
        "HEALTH_TIMEOUT": ProvisionStatus.DEGRADED,
        "FALLBACK_START": ProvisionStatus.DEGRADED,
        "DIAGNOSTICS": ProvisionStatus.DEGRADED,
        "HEALTH_OK": ProvisionStatus.POLLING,
        "DONE": ProvisionStatus.HEALTHY,
        "ERROR": ProvisionStatus.FAILED,
        "TEARDOWN_START": ProvisionStatus.REMOVING,
        "TEARDOWN_DONE": ProvisionStatus.REMOVED,
    }

    MESSAGES = {
        ProvisionStatus.UNKNOWN: "No provisioning runs recorded",
        ProvisionStatus.PROVISIONING: "Provisioning in progress",
        ProvisionStatus.POLLING: "Waiting for containers to become healthy",
        ProvisionStatus.HEALTHY: "Stack is running and healthy",
        ProvisionStatus.DEGRADED: "Stack did not become healthy",
        ProvisionStatus.FAILED: "Provisioning failed",
        ProvisionStatus.REMOVING: "Teardown in progress",
        ProvisionStatus.REMOVED: "Stack removed",
    }

    def derive_status(self, events: List[Dict[str, Any]]) -> StatusInfo:
        if not events:
            return StatusInfo(status=ProvisionStatus.UNKNOWN, message=self.MESSAGES[ProvisionStatus.UNKNOWN])

        status = ProvisionStatus.UNKNOWN
        significant = None
        for event in reversed(events):
            if event.get("type") in self.EVENT_TO_STATUS:
                status = self.EVENT_TO_STATUS[event["type"]]
                significant = event
                break

        last_event = events[-1]
        message = self.MESSAGES[status]
        failed_step = None
        hint = None
        if significant and significant.get("type") == "ERROR":
            data = significant.get("data", {})
            failed_step = data.get("step")
            hint = data.get("hint")
            if data.get("message"):
                message = f"{message}: {data['message']}"

        return StatusInfo(
            status=status,
            message=message,
            last_event=last_event,
            failed_step=failed_step,
            hint=hint,
            timestamp=last_event.get("ts"),
        )

    def is_terminal_status(self, status: ProvisionStatus) -> bool:
        return status in (
            ProvisionStatus.HEALTHY, ProvisionStatus.FAILED,
            ProvisionStatus.DEGRADED, ProvisionStatus.REMOVED,
        )
