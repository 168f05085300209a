"""
Launcher: start the stack, poll health, fall back and report diagnostics.
"""

import logging
from typing import Dict, List

from ..config import FallbackService
from ..errors import CommandError, HealthCheckTimeoutError
from ..events import EventTypes
from ..obs.diag import DiagnosticReporter
from ..obs.health import HealthPoller, HealthPolicy, HealthStatus, PollOutcome, docker_ps_probe
from ..obs.smoke import run_smoke_check
from .base import ProvisionContext, Step, StepResult

logger = logging.getLogger(__name__)


def container_exists(ctx: ProvisionContext, name: str) -> bool:
    result = ctx.host.run(
        ["docker", "ps", "-a", "--filter", f"name=^/{name}$", "--format", "{{.Names}}"],
        check=False,
    )
    return name in result.stdout.split()


def remove_stack_container(ctx: ProvisionContext, service: str) -> None:
    """Stop and remove the stack's own container for ``service`` so it no longer reports health."""
    result = ctx.host.run(ctx.compose("rm", "-s", "-f", service), check=False, cwd=ctx.settings.checkout_dir)
    if not result.ok:
        logger.warning("Could not remove stack container for %s: %s", service, result.stderr.strip())


def start_fallback_service(ctx: ProvisionContext, service: str, spec: FallbackService) -> None:
    """Start one critical service outside the stack with a bare container command."""
    if container_exists(ctx, spec.container_name):
        logger.info("Starting existing container %s for %s", spec.container_name, service)
        ctx.host.run(["docker", "start", spec.container_name])
        return
    logger.info("Running %s directly as %s", spec.image, spec.container_name)
    ctx.host.run(["docker", "run", "-d", "--name", spec.container_name] + list(spec.args) + [spec.image])


class Launcher(Step):
    name = "launch"

    def run(self, ctx: ProvisionContext) -> StepResult:
        settings = ctx.settings
        details: Dict[str, object] = {}

        poller = HealthPoller(
            probe=docker_ps_probe(ctx.host, settings.compose_project, settings.expected_services),
            expected=settings.expected_services,
            policy=HealthPolicy(settings.health_policy),
            retries=settings.health_retries,
            interval=settings.health_interval,
            sleep=ctx.sleep,
            events=ctx.events,
        )

        logger.info("Starting OpenCTI containers...")
        try:
            ctx.host.run(ctx.compose("up", "-d"), cwd=settings.checkout_dir)
        except CommandError as e:
            if not settings.fallback:
                raise
            logger.warning("Stack launch failed, starting critical services directly: %s", e.message)
            details["launch_error"] = e.message
            started = self._fallback(ctx, poller.probe())
            details["fallback_started"] = started

        outcome = poller.poll()
        details["health"] = outcome.to_dict()

        if not outcome.healthy:
            self._diagnose(ctx, outcome)
            if settings.fallback and "fallback_started" not in details:
                started = self._fallback(ctx, outcome.snapshot)
                details["fallback_started"] = started
                if started:
                    outcome = poller.poll()
                    details["health"] = outcome.to_dict()

        if not outcome.healthy:
            raise HealthCheckTimeoutError(
                f"Containers did not become healthy after {settings.health_retries} attempts",
                hint=f"Inspect logs with: cd {settings.checkout_dir} && {' '.join(settings.compose_cmd)} logs",
            )

        if settings.smoke_check:
            smoke = run_smoke_check(settings.base_url, sleep=ctx.sleep)
            ctx.events.emit(EventTypes.SMOKE_OK if smoke.success else EventTypes.SMOKE_FAIL, {
                "url": settings.base_url,
                "message": smoke.message,
            })
            details["smoke"] = {"success": smoke.success, "message": smoke.message}

        return self.result(
            changed=True,
            message=f"healthy after {outcome.attempts} attempt(s)",
            details=details,
        )

    def _diagnose(self, ctx: ProvisionContext, outcome: PollOutcome) -> None:
        report = DiagnosticReporter(ctx).collect(outcome.not_healthy(ctx.settings.expected_services))
        ctx.events.emit(EventTypes.DIAGNOSTICS, {
            "summary": report.summary,
            "log_tail": report.log_tail[-20:],
            "next_steps": report.next_steps,
        })

    def _fallback(self, ctx: ProvisionContext, snapshot: Dict[str, HealthStatus]) -> List[str]:
        targets = [
            name for name in ctx.settings.fallback_services
            if snapshot.get(name) is not HealthStatus.HEALTHY
        ]
        if not targets:
            return []

        ctx.events.emit(EventTypes.FALLBACK_START, {"services": targets})
        for name in targets:
            remove_stack_container(ctx, name)
            start_fallback_service(ctx, name, ctx.settings.fallback_services[name])
        return targets
