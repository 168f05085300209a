"""
Observability for ctiprov runs.

Provides container health polling, failure diagnostics, the HTTP smoke
check and status derivation from the event stream.
"""

from .health import HealthPoller, HealthPolicy, HealthStatus, PollOutcome, docker_ps_probe
from .diag import DiagnosticReporter, DiagnosticReport
from .smoke import run_smoke_check, SmokeTestResult
from .status import StatusDeriver, ProvisionStatus

__all__ = [
    "HealthPoller",
    "HealthPolicy",
    "HealthStatus",
    "PollOutcome",
    "docker_ps_probe",
    "DiagnosticReporter",
    "DiagnosticReport",
    "run_smoke_check",
    "SmokeTestResult",
    "StatusDeriver",
    "ProvisionStatus",
]
