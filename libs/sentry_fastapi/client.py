"""Sentry client construction.

``ClientBuilder`` turns a ``SentryConfig`` into the keyword arguments of
``sentry_sdk.init``. Decorators registered with ``extend`` run before the
SDK is initialized and may change any option, the same way a service
container lets applications decorate a service before it is resolved.

Example:
    builder = ClientBuilder(config.sentry)

    def tag_environment(builder: ClientBuilder) -> ClientBuilder:
        builder.options["environment"] = "from_service_container"
        return builder

    builder.extend(tag_environment)
    builder.init()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from libs.sentry_fastapi.integration import RouteTransactionIntegration

if TYPE_CHECKING:
    from libs.sentry_fastapi.config import (
        IntegrationConfig,
        SentryConfig,
        SentryIntegrationConfig,
    )

logger = logging.getLogger(__name__)

ClientBuilderDecorator = Callable[["ClientBuilder"], Optional["ClientBuilder"]]


class ClientBuilder:
    """Builds and initializes the Sentry client."""

    def __init__(
        self,
        config: SentryConfig,
        integration_config: IntegrationConfig | None = None,
    ) -> None:
        self._config = config
        self._integration_config = integration_config
        self._decorators: list[ClientBuilderDecorator] = []
        self.options: dict[str, Any] = self._default_options()

    def _default_options(self) -> dict[str, Any]:
        from sentry_sdk.integrations.logging import LoggingIntegration

        update_active_transaction = (
            self._integration_config.update_active_transaction
            if self._integration_config is not None
            else True
        )

        return {
            "dsn": self._config.dsn,
            "environment": self._config.environment,
            "release": self._config.release,
            "traces_sample_rate": self._config.traces_sample_rate,
            "profiles_sample_rate": self._config.profiles_sample_rate,
            "send_default_pii": self._config.send_default_pii,
            "auto_enabling_integrations": self._config.auto_enabling_integrations,
            "integrations": [
                LoggingIntegration(
                    level=None,  # Don't capture breadcrumbs from logs
                    event_level=None,  # Don't send log events
                ),
                RouteTransactionIntegration(
                    update_active_transaction=update_active_transaction
                ),
            ],
        }

    def extend(self, decorator: ClientBuilderDecorator) -> None:
        """Register a decorator applied to this builder before init.

        Decorators run in registration order. A decorator may return a
        replacement builder; returning None keeps the current one.
        """
        self._decorators.append(decorator)

    def build_options(self) -> dict[str, Any]:
        """Apply the registered decorators and return the final options."""
        builder: ClientBuilder = self
        for decorator in self._decorators:
            result = decorator(builder)
            if result is not None:
                builder = result
        return dict(builder.options)

    def init(self) -> bool:
        """Initialize the Sentry SDK.

        Returns:
            True if Sentry was initialized successfully.
            False if initialization was skipped (disabled/no DSN) or failed.

        Note:
            Does not raise exceptions - failures are logged and return False.
        """
        if not self._config.enabled or not self._config.dsn:
            logger.debug("Sentry initialization skipped (disabled or DSN not configured)")
            return False

        try:
            import sentry_sdk

            options = self.build_options()
            sentry_sdk.init(**options)

            logger.info(
                f"Sentry initialized for environment '{options.get('environment')}' "
                f"with {len(options.get('integrations') or [])} explicit integrations"
            )
            return True

        except Exception as e:
            logger.error(f"Failed to initialize Sentry: {e}", exc_info=True)
            return False


def init_sentry(
    config: SentryIntegrationConfig | None = None,
    *,
    config_path: str | None = None,
    decorators: Iterable[ClientBuilderDecorator] = (),
    environment: str | None = None,
    **overrides: Any,
) -> bool:
    """Load configuration and initialize Sentry in one call.

    Pass an already loaded ``config`` to share it with ``install``.
    Otherwise the configuration is loaded from ``config_path``.

    Args:
        config: Loaded configuration. Skips loading when given.
        config_path: Path to YAML configuration file.
        decorators: Client builder decorators, applied in order.
        environment: Override environment from config.
        **overrides: Config overrides prefixed with ``sentry_`` or ``integration_``.

    Returns:
        True if Sentry was initialized.

    Raises:
        ConfigurationError: If the configuration is invalid.
        TypeError: If ``config`` is combined with loading options.
    """
    if config is None:
        from libs.sentry_fastapi.config import load_config

        config = load_config(config_path, environment=environment, **overrides)
    elif config_path is not None or environment is not None or overrides:
        raise TypeError("config cannot be combined with config_path, environment or overrides")

    builder = ClientBuilder(config.sentry, config.integration)
    for decorator in decorators:
        builder.extend(decorator)
    return builder.init()
