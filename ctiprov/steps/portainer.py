"""
Portainer container-management UI.
"""

import logging

from .base import ProvisionContext, Step, StepResult
from .launcher import container_exists

logger = logging.getLogger(__name__)

PORTAINER_PORTS = ["8000:8000", "9443:9443"]
DOCKER_SOCKET = "/var/run/docker.sock"


def portainer_run_command(image: str, name: str, volume: str) -> list:
    cmd = ["docker", "run", "-d"]
    for mapping in PORTAINER_PORTS:
        cmd += ["-p", mapping]
    cmd += [
        "--name", name,
        "--restart=always",
        "-v", f"{DOCKER_SOCKET}:{DOCKER_SOCKET}",
        "-v", f"{volume}:/data",
        image,
    ]
    return cmd


class PortainerInstaller(Step):
    name = "portainer"

    def run(self, ctx: ProvisionContext) -> StepResult:
        settings = ctx.settings
        host = ctx.host

        volumes = host.run(["docker", "volume", "ls", "--format", "{{.Name}}"], check=False).stdout.split()
        if settings.portainer_volume not in volumes:
            host.run(["docker", "volume", "create", settings.portainer_volume])

        if container_exists(ctx, settings.portainer_name):
            running = host.run(
                ["docker", "ps", "--filter", f"name=^/{settings.portainer_name}$", "--format", "{{.Names}}"],
                check=False,
            ).stdout.split()
            if settings.portainer_name in running:
                return self.result(message="already running")
            logger.info("Starting existing Portainer container")
            host.run(["docker", "start", settings.portainer_name])
            return self.result(changed=True, message="started")

        logger.info("Installing Portainer (%s)", settings.portainer_image)
        host.run(portainer_run_command(settings.portainer_image, settings.portainer_name, settings.portainer_volume))
        return self.result(changed=True, message="installed", details={"url": "https://localhost:9443"})
