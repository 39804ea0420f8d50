"""Configuration management for the Sentry FastAPI integration.

Supports YAML configuration files with environment variable substitution.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "default.yaml"


class ConfigurationError(Exception):
    """Raised when the integration configuration is invalid."""

    pass


@dataclass
class SentryConfig:
    """Options passed to the Sentry client."""

    enabled: bool = True
    dsn: str | None = None
    environment: str = "development"
    release: str | None = None
    traces_sample_rate: float = 0.0
    profiles_sample_rate: float = 0.0
    send_default_pii: bool = False
    # The SDK's own FastAPI/Starlette integrations would report the same
    # unhandled exceptions a second time.
    auto_enabling_integrations: bool = False


@dataclass
class IntegrationConfig:
    """Behaviour of the route transaction integration."""

    capture_unhandled_exceptions: bool = True
    update_active_transaction: bool = True


@dataclass
class SentryIntegrationConfig:
    """Root configuration."""

    sentry: SentryConfig = field(default_factory=SentryConfig)
    integration: IntegrationConfig = field(default_factory=IntegrationConfig)

    def validate(self) -> None:
        """Validate the configuration.

        Validates that:
        - When sentry.enabled=True, sentry.dsn is set (non-empty)
        - traces_sample_rate is between 0.0 and 1.0
        - profiles_sample_rate is between 0.0 and 1.0

        Raises:
            ConfigurationError: If any validation errors are found.
        """
        errors: list[str] = []

        if self.sentry.enabled and not self.sentry.dsn:
            errors.append(
                "Sentry DSN is required when sentry.enabled=True. "
                "Set SENTRY_DSN environment variable or configure sentry.dsn in your config."
            )

        if not (0.0 <= self.sentry.traces_sample_rate <= 1.0):
            errors.append(
                f"Invalid sentry.traces_sample_rate: {self.sentry.traces_sample_rate}. "
                "Value must be between 0.0 and 1.0."
            )

        if not (0.0 <= self.sentry.profiles_sample_rate <= 1.0):
            errors.append(
                f"Invalid sentry.profiles_sample_rate: {self.sentry.profiles_sample_rate}. "
                "Value must be between 0.0 and 1.0."
            )

        if self.sentry.send_default_pii and self.sentry.environment == "production":
            logger.warning(
                "sentry.send_default_pii is enabled in production. "
                "Request data and user details will be sent to Sentry."
            )

        if errors:
            error_message = "Configuration validation failed:\n" + "\n".join(
                f"  - {error}" for error in errors
            )
            raise ConfigurationError(error_message)


def _substitute_env_vars(value: str) -> str:
    """Substitute ${VAR} or ${VAR:default} patterns with environment variable values.

    If no default is provided and the variable is not set, returns empty string.
    """
    pattern = r"\$\{([^}]+)\}"

    def replace(match: re.Match[str]) -> str:
        var_expr = match.group(1)
        if ":" in var_expr:
            var_name, default = var_expr.split(":", 1)
            return os.environ.get(var_name, default)
        return os.environ.get(var_expr, "")

    return re.sub(pattern, replace, value)


def _process_config_values(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively process config values, substituting environment variables."""
    result: dict[str, Any] = {}
    for key, value in config.items():
        if isinstance(value, str):
            result[key] = _substitute_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _process_config_values(value)
        else:
            result[key] = value
    return result


def _to_bool(value: Any, default: bool) -> bool:
    # Substituted env vars arrive as strings.
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file."""
    import yaml

    with open(path) as f:
        return yaml.safe_load(f) or {}


def _dict_to_config(data: dict[str, Any]) -> SentryIntegrationConfig:
    """Convert a dictionary to SentryIntegrationConfig."""
    sentry_data = data.get("sentry") or {}
    integration_data = data.get("integration") or {}

    return SentryIntegrationConfig(
        sentry=SentryConfig(
            enabled=_to_bool(sentry_data.get("enabled"), True),
            dsn=sentry_data.get("dsn") or None,
            environment=sentry_data.get("environment") or "development",
            release=sentry_data.get("release") or None,
            traces_sample_rate=float(sentry_data.get("traces_sample_rate") or 0.0),
            profiles_sample_rate=float(sentry_data.get("profiles_sample_rate") or 0.0),
            send_default_pii=_to_bool(sentry_data.get("send_default_pii"), False),
            auto_enabling_integrations=_to_bool(
                sentry_data.get("auto_enabling_integrations"), False
            ),
        ),
        integration=IntegrationConfig(
            capture_unhandled_exceptions=_to_bool(
                integration_data.get("capture_unhandled_exceptions"), True
            ),
            update_active_transaction=_to_bool(
                integration_data.get("update_active_transaction"), True
            ),
        ),
    )


def load_config(
    config_path: str | None = None,
    environment: str | None = None,
    **overrides: Any,
) -> SentryIntegrationConfig:
    """Load integration configuration.

    Configuration is loaded from (in order of precedence):
    1. Explicit overrides passed to this function
    2. Environment variables (via ${VAR} substitution in YAML)
    3. Specified YAML config file
    4. Default YAML config file (libs/sentry_fastapi/config/default.yaml)
    5. Default values in config dataclasses

    Args:
        config_path: Path to YAML configuration file.
        environment: Override environment.
        **overrides: Additional config overrides, prefixed with ``sentry_``
            or ``integration_``.

    Returns:
        SentryIntegrationConfig instance.

    Raises:
        ConfigurationError: If the resulting configuration is invalid or an
            override names an unknown option.
    """
    config_data: dict[str, Any] = {}

    if DEFAULT_CONFIG_PATH.exists():
        config_data = _load_yaml(DEFAULT_CONFIG_PATH)

    if config_path:
        specified_path = Path(config_path)
        if specified_path.exists():
            specified_data = _load_yaml(specified_path)
            # Deep merge specified into default
            for key, value in specified_data.items():
                if isinstance(value, dict) and isinstance(config_data.get(key), dict):
                    config_data[key] = {**config_data[key], **value}
                else:
                    config_data[key] = value
        else:
            logger.warning(f"Config file '{config_path}' not found, using defaults")

    config_data = _process_config_values(config_data)

    config = _dict_to_config(config_data)

    if environment:
        config.sentry.environment = environment

    for key, value in overrides.items():
        if key.startswith("sentry_"):
            target: Any = config.sentry
            attr = key[len("sentry_"):]
        elif key.startswith("integration_"):
            target = config.integration
            attr = key[len("integration_"):]
        else:
            raise ConfigurationError(f"Unknown configuration override: '{key}'")

        if not hasattr(target, attr):
            raise ConfigurationError(f"Unknown configuration override: '{key}'")
        setattr(target, attr, value)

    config.validate()

    return config
