"""
Shared fixtures: a scripted command runner and isolated settings.
"""

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import pytest

from ctiprov.config import Settings
from ctiprov.errors import CommandError
from ctiprov.events import NullEventLog
from ctiprov.shell import CommandResult, CommandRunner, Host
from ctiprov.steps import ProvisionContext

COMPOSE_FIXTURE = """\
version: '3'
services:
  elasticsearch:
    image: docker.elastic.co/elasticsearch/elasticsearch:8.13.4
    restart: always
  minio:
    image: minio/minio:latest
    restart: always
  rabbitmq:
    image: rabbitmq:3.13-management
    restart: always
  opencti:
    image: opencti/platform:6.0.0
    environment:
      - NODE_OPTIONS=--max-old-space-size=8096
    depends_on:
      - minio
    restart: always
  worker:
    image: opencti/worker:6.0.0
    depends_on:
      - opencti
"""

Response = Union[CommandResult, Callable[[List[str]], CommandResult], List[CommandResult]]


class FakeRunner(CommandRunner):
    """Records commands and answers them from a prefix table; unmatched commands succeed."""

    def __init__(self, root: bool = False, available: Sequence[str] = ("docker", "docker-compose", "git")):
        super().__init__()
        self.root = root
        self.available = set(available)
        self.calls: List[List[str]] = []
        self.privileged: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self._responses = []

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "",
           handler: Optional[Callable[[List[str]], CommandResult]] = None,
           sequence: Optional[List[str]] = None) -> "FakeRunner":
        if handler is not None:
            response = handler
        elif sequence is not None:
            response = [CommandResult(list(prefix), returncode, out, stderr) for out in sequence]
        else:
            response = CommandResult(list(prefix), returncode, stdout, stderr)
        self._responses.append((list(prefix), response))
        return self

    def is_root(self) -> bool:
        return self.root

    def which(self, name: str) -> Optional[str]:
        return f"/usr/bin/{name}" if name in self.available else None

    def run(self, argv, check=True, privileged=False, cwd=None, input=None) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        self.inputs.append(input)
        if privileged:
            self.privileged.append(argv)

        result = CommandResult(argv, 0, "", "")
        for prefix, response in reversed(self._responses):
            if argv[:len(prefix)] != prefix:
                continue
            if callable(response):
                result = response(argv)
            elif isinstance(response, list):
                result = response.pop(0) if len(response) > 1 else response[0]
            else:
                result = response
            break

        if check and result.returncode != 0:
            raise CommandError(argv, result.returncode, result.stderr)
        return result

    def ran(self, *prefix: str) -> int:
        return sum(1 for c in self.calls if c[:len(prefix)] == list(prefix))


def clone_handler(manifest: str = COMPOSE_FIXTURE) -> Callable[[List[str]], CommandResult]:
    """Simulate ``git clone <url> <dest>`` by creating a checkout with a manifest."""
    def handler(argv: List[str]) -> CommandResult:
        dest = Path(argv[-1])
        (dest / ".git").mkdir(parents=True)
        (dest / "docker-compose.yml").write_text(manifest)
        return CommandResult(argv, 0, "Cloning into 'docker'...", "")
    return handler


def ps_line(*pairs) -> str:
    return "".join(f"{name}\t{status}\n" for name, status in pairs)


HEALTHY_PS = ps_line(
    ("opencti_redis", "Up 2 minutes (healthy)"),
    ("docker-elasticsearch-1", "Up 2 minutes (healthy)"),
    ("docker-minio-1", "Up 2 minutes (healthy)"),
    ("docker-rabbitmq-1", "Up 2 minutes (healthy)"),
    ("docker-opencti-1", "Up 1 minute (healthy)"),
    ("docker-worker-1", "Up 1 minute"),
)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def host(runner):
    return Host(runner=runner, user="analyst")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        install_dir=tmp_path / "opencti",
        state_home=tmp_path / "state",
        sysctl_file=tmp_path / "sysctl.conf",
        environment_file=tmp_path / "environment",
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def ctx(settings, host, sleeps):
    return ProvisionContext(settings=settings, host=host, events=NullEventLog(), sleep=sleeps.append)


@pytest.fixture
def checkout(settings):
    """A checkout that already exists, with the fixture manifest."""
    settings.checkout_dir.mkdir(parents=True)
    (settings.checkout_dir / ".git").mkdir()
    settings.manifest_path.write_text(COMPOSE_FIXTURE)
    return settings.checkout_dir
