"""Tests for integration configuration."""

import logging
import os
from pathlib import Path
from unittest import mock

import pytest

from libs.sentry_fastapi.config import (
    ConfigurationError,
    IntegrationConfig,
    SentryConfig,
    SentryIntegrationConfig,
    _dict_to_config,
    _process_config_values,
    _substitute_env_vars,
    load_config,
)

TEST_DSN = "https://public@sentry.example.com/1"


class TestEnvVarSubstitution:
    """Tests for environment variable substitution."""

    def test_simple_substitution(self) -> None:
        """Test simple ${VAR} substitution."""
        with mock.patch.dict(os.environ, {"TEST_VAR": "test_value"}):
            assert _substitute_env_vars("prefix-${TEST_VAR}-suffix") == "prefix-test_value-suffix"

    def test_missing_var_returns_empty(self) -> None:
        """Test missing variable returns empty string."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert _substitute_env_vars("${MISSING_VAR}") == ""

    def test_default_value_when_missing(self) -> None:
        """Test ${VAR:default} returns default when var not set."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert _substitute_env_vars("${MISSING_VAR:default_value}") == "default_value"

    def test_default_value_with_colon(self) -> None:
        """Test defaults may themselves contain colons (e.g. URLs)."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert _substitute_env_vars("${SENTRY_DSN:https://x@host/1}") == "https://x@host/1"

    def test_nested_dicts_are_processed(self) -> None:
        """Test substitution reaches nested sections and skips non-strings."""
        with mock.patch.dict(os.environ, {"SENTRY_DSN": TEST_DSN}):
            result = _process_config_values(
                {"sentry": {"dsn": "${SENTRY_DSN}", "traces_sample_rate": 0.5}}
            )

        assert result == {"sentry": {"dsn": TEST_DSN, "traces_sample_rate": 0.5}}


class TestDictToConfig:
    """Tests for converting raw dictionaries."""

    def test_empty_dict_gives_defaults(self) -> None:
        """Test missing sections fall back to dataclass defaults."""
        config = _dict_to_config({})

        assert config == SentryIntegrationConfig()

    def test_string_values_are_coerced(self) -> None:
        """Test substituted strings become bools and floats."""
        config = _dict_to_config(
            {
                "sentry": {
                    "enabled": "false",
                    "dsn": "",
                    "traces_sample_rate": "0.25",
                    "send_default_pii": "true",
                },
                "integration": {"capture_unhandled_exceptions": "no"},
            }
        )

        assert config.sentry.enabled is False
        assert config.sentry.dsn is None
        assert config.sentry.traces_sample_rate == pytest.approx(0.25)
        assert config.sentry.send_default_pii is True
        assert config.integration.capture_unhandled_exceptions is False
        assert config.integration.update_active_transaction is True


class TestValidation:
    """Tests for SentryIntegrationConfig.validate()."""

    def test_valid_config(self) -> None:
        """Test a complete config passes."""
        SentryIntegrationConfig(sentry=SentryConfig(dsn=TEST_DSN)).validate()

    def test_disabled_without_dsn_is_valid(self) -> None:
        """Test the DSN is only required when enabled."""
        SentryIntegrationConfig(sentry=SentryConfig(enabled=False)).validate()

    def test_missing_dsn(self) -> None:
        """Test enabled Sentry requires a DSN."""
        with pytest.raises(ConfigurationError, match="Sentry DSN is required"):
            SentryIntegrationConfig(sentry=SentryConfig(enabled=True)).validate()

    def test_errors_are_aggregated(self) -> None:
        """Test all problems are reported at once."""
        config = SentryIntegrationConfig(
            sentry=SentryConfig(dsn=None, traces_sample_rate=1.5, profiles_sample_rate=-0.1)
        )

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        message = str(exc_info.value)
        assert "Sentry DSN is required" in message
        assert "sentry.traces_sample_rate: 1.5" in message
        assert "sentry.profiles_sample_rate: -0.1" in message

    def test_pii_in_production_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test sending PII from production logs a warning."""
        config = SentryIntegrationConfig(
            sentry=SentryConfig(dsn=TEST_DSN, environment="production", send_default_pii=True)
        )

        with caplog.at_level(logging.WARNING, logger="libs.sentry_fastapi.config"):
            config.validate()

        assert "send_default_pii is enabled in production" in caplog.text


class TestLoadConfig:
    """Tests for load_config()."""

    def test_packaged_defaults(self) -> None:
        """Test the default YAML leaves Sentry disabled."""
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config()

        assert config.sentry.enabled is False
        assert config.sentry.environment == "development"
        assert config.integration == IntegrationConfig()

    def test_env_vars_enable_sentry(self) -> None:
        """Test environment variables flow through the default YAML."""
        env = {
            "SENTRY_ENABLED": "true",
            "SENTRY_DSN": TEST_DSN,
            "SENTRY_ENVIRONMENT": "staging",
            "SENTRY_TRACES_SAMPLE_RATE": "0.2",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()

        assert config.sentry.enabled is True
        assert config.sentry.dsn == TEST_DSN
        assert config.sentry.environment == "staging"
        assert config.sentry.traces_sample_rate == pytest.approx(0.2)

    def test_config_file_is_merged(self, tmp_path: Path) -> None:
        """Test a config file overrides only the keys it sets."""
        config_file = tmp_path / "sentry.yaml"
        config_file.write_text(
            "sentry:\n"
            "  enabled: true\n"
            f"  dsn: {TEST_DSN}\n"
            "integration:\n"
            "  update_active_transaction: false\n"
        )

        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config(str(config_file))

        assert config.sentry.enabled is True
        assert config.sentry.dsn == TEST_DSN
        assert config.sentry.environment == "development"
        assert config.integration.update_active_transaction is False
        assert config.integration.capture_unhandled_exceptions is True

    def test_missing_config_file_warns(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a missing file falls back to defaults with a warning."""
        with mock.patch.dict(os.environ, {}, clear=True):
            with caplog.at_level(logging.WARNING, logger="libs.sentry_fastapi.config"):
                config = load_config(str(tmp_path / "missing.yaml"))

        assert config.sentry.enabled is False
        assert "not found" in caplog.text

    def test_overrides_take_precedence(self) -> None:
        """Test explicit overrides win over files and environment."""
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config(
                environment="production",
                sentry_enabled=True,
                sentry_dsn=TEST_DSN,
                integration_capture_unhandled_exceptions=False,
            )

        assert config.sentry.environment == "production"
        assert config.sentry.dsn == TEST_DSN
        assert config.integration.capture_unhandled_exceptions is False

    def test_unknown_override_raises(self) -> None:
        """Test typos in overrides are rejected."""
        with pytest.raises(ConfigurationError, match="sentry_dns"):
            load_config(sentry_dns=TEST_DSN)

    def test_unknown_section_override_raises(self) -> None:
        """Test overrides must target a known section."""
        with pytest.raises(ConfigurationError, match="otel_endpoint"):
            load_config(otel_endpoint="http://localhost:4317")

    def test_invalid_result_raises(self) -> None:
        """Test the loaded config is validated."""
        with mock.patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError):
                load_config(sentry_enabled=True)
