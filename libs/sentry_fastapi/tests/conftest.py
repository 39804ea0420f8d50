"""Shared fixtures for the Sentry FastAPI integration tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

import pytest
import sentry_sdk

from libs.sentry_fastapi.integration import RouteTransactionIntegration

TEST_DSN = "https://public@sentry.example.com/1"


@dataclass
class CapturedEvents:
    """Events recorded by ``before_send`` instead of being sent."""

    items: list[tuple[dict[str, Any], dict[str, Any]]] = field(default_factory=list)

    def before_send(self, event: dict[str, Any], hint: dict[str, Any]) -> None:
        self.items.append((event, hint))
        return None

    @property
    def events(self) -> list[dict[str, Any]]:
        return [event for event, _ in self.items]

    @property
    def last_event(self) -> dict[str, Any]:
        return self.items[-1][0]

    @property
    def last_hint(self) -> dict[str, Any]:
        return self.items[-1][1]


def reset_sentry_client() -> None:
    """Replace the global client with a non-recording one."""
    sentry_sdk.get_client().close()
    sentry_sdk.get_global_scope().set_client(None)


@pytest.fixture
def sentry_events() -> Iterator[CapturedEvents]:
    """Initialize a real Sentry client that records events locally."""
    captured = CapturedEvents()
    sentry_sdk.init(
        dsn=TEST_DSN,
        default_integrations=False,
        auto_enabling_integrations=False,
        integrations=[RouteTransactionIntegration()],
        before_send=captured.before_send,
    )
    yield captured
    reset_sentry_client()


@pytest.fixture
def reset_sentry() -> Iterator[None]:
    """Reset the global Sentry client after tests that call sentry_sdk.init."""
    yield
    reset_sentry_client()
