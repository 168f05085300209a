"""
Tests for teardown.
"""

import pytest

from ctiprov.errors import TeardownError
from ctiprov.events import NullEventLog
from ctiprov.teardown import Teardown, strip_env_prefixes

ENVIRONMENT = """\
PATH="/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin"
OPENCTI_ADMIN_EMAIL=admin@opencti.io
MINIO_ROOT_USER=abc
RABBITMQ_DEFAULT_USER=guest
ELASTIC_MEMORY_SIZE=4G
CONNECTOR_HISTORY_ID=def
LANG=en_US.UTF-8
"""


def test_strip_env_prefixes():
    text, removed = strip_env_prefixes(ENVIRONMENT, ["OPENCTI_", "MINIO_", "RABBITMQ_", "ELASTIC_", "CONNECTOR_"])

    assert removed == 5
    assert text.splitlines() == ['PATH="/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin"', "LANG=en_US.UTF-8"]


class TestTeardown:
    """Test stack removal."""

    def test_teardown_is_complete(self, settings, host, runner, checkout):
        """Installation directory and reserved environment entries are gone."""
        settings.environment_file.write_text(ENVIRONMENT)
        runner.on("docker", "network", "rm", returncode=1, stderr="network docker_default not found")

        report = Teardown(settings, host, events=NullEventLog()).run()

        assert not settings.install_dir.exists()
        lines = settings.environment_file.read_text().splitlines()
        for prefix in settings.reserved_env_prefixes:
            assert not any(line.startswith(prefix) for line in lines)
        assert "LANG=en_US.UTF-8" in lines
        assert ["docker-compose", "down", "-v"] in runner.calls
        assert ["docker", "network", "rm", "docker_default"] in runner.calls
        assert report.removed_env_lines == 5
        assert runner.ran("docker", "system", "prune") == 0

    def test_missing_install_dir(self, settings, host, runner):
        with pytest.raises(TeardownError) as exc:
            Teardown(settings, host, events=NullEventLog()).run()

        assert exc.value.exit_code == 1
        assert runner.calls == []

    def test_prune_and_portainer(self, settings, host, runner, checkout):
        report = Teardown(settings, host, events=NullEventLog()).run(prune=True, remove_portainer=True)

        assert ["docker", "system", "prune", "-a", "--volumes", "-f"] in runner.calls
        assert ["docker", "rm", "-f", "portainer"] in runner.calls
        assert "docker system pruned" in report.actions

    def test_without_manifest(self, settings, host, runner):
        """A workspace without a manifest is still deleted."""
        settings.install_dir.mkdir(parents=True)

        report = Teardown(settings, host, events=NullEventLog()).run()

        assert not settings.install_dir.exists()
        assert runner.ran("docker-compose") == 0
        assert report.warnings
