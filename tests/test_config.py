"""
Tests for settings loading and validation.
"""

from pathlib import Path

import pytest

from ctiprov.config import RESERVED_ENV_PREFIXES, Settings, load_settings
from ctiprov.errors import ConfigError


class TestDefaults:
    """Test built-in defaults."""

    def test_observed_defaults(self):
        """Defaults match the observed install script."""
        settings = Settings()

        assert settings.install_dir == Path.home() / "opencti"
        assert settings.checkout_dir == Path.home() / "opencti" / "docker"
        assert settings.health_retries == 10
        assert settings.health_interval == 15.0
        assert settings.health_policy == "permissive"
        assert settings.secrets_mode == "regenerate"
        assert settings.sysctl_key == "vm.max_map_count"
        assert settings.sysctl_value == 1048575
        assert settings.fallback is False

    def test_reserved_prefixes(self):
        """Five environment prefixes are reserved for teardown."""
        assert len(RESERVED_ENV_PREFIXES) == 5
        assert Settings().reserved_env_prefixes == RESERVED_ENV_PREFIXES

    def test_stack_network_follows_project(self):
        """The default network is the compose project's, unless named explicitly."""
        assert Settings().stack_network == "docker_default"
        assert Settings(checkout_name="opencti-docker").stack_network == "opencti-docker_default"
        assert Settings(network_name="custom").stack_network == "custom"


class TestLoadSettings:
    """Test precedence: file < environment < overrides."""

    def test_yaml_file(self, tmp_path):
        """Values from the YAML file override defaults."""
        cfg = tmp_path / "ctiprov.yml"
        cfg.write_text("install_dir: /srv/opencti\nhealth_retries: 3\nexpected_services: [opencti]\n")

        settings = load_settings(cfg, environ={})

        assert settings.install_dir == Path("/srv/opencti")
        assert settings.health_retries == 3
        assert settings.expected_services == ["opencti"]

    def test_environment_overrides_file(self, tmp_path):
        """CTIPROV_* variables beat the file."""
        cfg = tmp_path / "ctiprov.yml"
        cfg.write_text("health_retries: 3\n")
        environ = {
            "CTIPROV_HEALTH_RETRIES": "7",
            "CTIPROV_FALLBACK": "yes",
            "CTIPROV_EXPECTED_SERVICES": "redis, opencti",
            "CTIPROV_COMPOSE_CMD": "docker compose",
        }

        settings = load_settings(cfg, environ=environ)

        assert settings.health_retries == 7
        assert settings.fallback is True
        assert settings.expected_services == ["redis", "opencti"]
        assert settings.compose_cmd == ["docker", "compose"]

    def test_overrides_win_and_none_is_ignored(self):
        """CLI overrides beat the environment; None means not given."""
        settings = load_settings(
            overrides={"health_retries": 2, "health_policy": None},
            environ={"CTIPROV_HEALTH_RETRIES": "7", "CTIPROV_HEALTH_POLICY": "strict"},
        )

        assert settings.health_retries == 2
        assert settings.health_policy == "strict"

    def test_invalid_values(self):
        """Invalid values raise ConfigError."""
        with pytest.raises(ConfigError):
            load_settings(overrides={"health_retries": 0}, environ={})

        with pytest.raises(ConfigError):
            load_settings(overrides={"secrets_mode": "sometimes"}, environ={})

    def test_unknown_key_in_file(self, tmp_path):
        """Typos in the settings file are rejected."""
        cfg = tmp_path / "ctiprov.yml"
        cfg.write_text("helth_retries: 3\n")

        with pytest.raises(ConfigError):
            load_settings(cfg, environ={})

    def test_missing_file(self, tmp_path):
        """A missing settings file is an error."""
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "absent.yml", environ={})

    def test_non_mapping_file(self, tmp_path):
        """The settings file must be a mapping."""
        cfg = tmp_path / "ctiprov.yml"
        cfg.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_settings(cfg, environ={})
