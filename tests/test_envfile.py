"""
Tests for the configuration writer.
"""

import itertools
import stat

import pytest

from ctiprov.errors import ConfigError
from ctiprov.steps.envfile import (
    ENV_KEYS, GENERATED_KEYS, ConfigurationWriter, build_env_values, parse_env_file, render_env,
)


def counter_ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


class TestBuildValues:
    """Test schema completeness and secrets modes."""

    def test_every_key_present_and_non_empty(self, settings):
        """The generated file covers the whole fixed schema."""
        values = build_env_values(settings, {})

        assert list(values.keys()) == ENV_KEYS
        assert all(v.strip() for v in values.values())
        assert values["OPENCTI_ADMIN_EMAIL"] == "admin@opencti.io"
        assert values["OPENCTI_BASE_URL"] == "http://localhost:8080"
        assert values["ELASTIC_MEMORY_SIZE"] == "4G"
        assert values["SMTP_HOSTNAME"] == "localhost"

    def test_generated_values_are_unique(self, settings):
        """Each generated identifier is a distinct UUID."""
        values = build_env_values(settings, {})
        generated = [values[k] for k in GENERATED_KEYS]

        assert len(set(generated)) == len(GENERATED_KEYS)
        assert all(len(v) == 36 for v in generated)

    def test_empty_required_value(self, settings):
        """An empty static value is refused."""
        settings.admin_password = ""

        with pytest.raises(ConfigError, match="OPENCTI_ADMIN_PASSWORD"):
            build_env_values(settings, {})

    def test_preserve_reuses_existing(self, settings):
        """Preserve mode keeps generated values found in the old file."""
        settings.secrets_mode = "preserve"
        existing = {"OPENCTI_ADMIN_TOKEN": "old-token", "MINIO_ROOT_USER": ""}

        values = build_env_values(settings, existing, counter_ids())

        assert values["OPENCTI_ADMIN_TOKEN"] == "old-token"
        assert values["MINIO_ROOT_USER"].startswith("id-")


class TestConfigurationWriter:
    """Test the written file."""

    def test_writes_private_file(self, ctx, settings, checkout):
        """The file is complete and readable by the owner only."""
        result = ConfigurationWriter().run(ctx)

        values = parse_env_file(settings.env_file)
        assert set(values) == set(ENV_KEYS)
        assert all(values.values())
        assert stat.S_IMODE(settings.env_file.stat().st_mode) == 0o600
        assert result.changed

    def test_regenerate_changes_secrets(self, ctx, settings, checkout):
        """Regenerate mode issues fresh identifiers on every run."""
        ConfigurationWriter().run(ctx)
        first = parse_env_file(settings.env_file)
        ConfigurationWriter().run(ctx)
        second = parse_env_file(settings.env_file)

        for key in GENERATED_KEYS:
            assert first[key] != second[key]
        assert first["OPENCTI_ADMIN_EMAIL"] == second["OPENCTI_ADMIN_EMAIL"]

    def test_preserve_is_stable(self, ctx, settings, checkout):
        """Preserve mode makes reruns a no-op."""
        settings.secrets_mode = "preserve"
        ConfigurationWriter().run(ctx)
        first = settings.env_file.read_text()

        result = ConfigurationWriter().run(ctx)

        assert settings.env_file.read_text() == first
        assert not result.changed
        assert sorted(result.details["reused"]) == sorted(GENERATED_KEYS)

    def test_manual_edits_are_overwritten(self, ctx, settings, checkout):
        """The file is fully regenerated; unknown lines do not survive."""
        settings.env_file.write_text("CUSTOM=1\nOPENCTI_ADMIN_EMAIL=me@example.com\n")

        ConfigurationWriter().run(ctx)

        values = parse_env_file(settings.env_file)
        assert "CUSTOM" not in values
        assert values["OPENCTI_ADMIN_EMAIL"] == "admin@opencti.io"


def test_render_order():
    """Lines are rendered in schema order."""
    values = {k: "v" for k in ENV_KEYS}
    lines = render_env(values).splitlines()
    assert [line.split("=")[0] for line in lines] == ENV_KEYS


def test_parse_env_file_skips_comments(tmp_path):
    path = tmp_path / ".env"
    path.write_text("# comment\n\nA=1\nB = two=2\n")
    assert parse_env_file(path) == {"A": "1", "B": "two=2"}
