"""Sentry integration for FastAPI route transactions.

This module owns everything that talks to the Sentry SDK at request time:

- ``RouteTransactionIntegration`` registers an event processor that names
  error events after the route that was matched for the current request.
- ``RouteMatchedHandler`` is the contract the framework wiring calls once
  routing completes. ``TransactionNameHandler`` is the default.
- ``report`` and ``capture_unhandled_exception`` send exceptions with the
  mechanism marked handled or unhandled respectively.
"""

from __future__ import annotations

import html
import logging
from typing import Any, MutableMapping, Protocol

import sentry_sdk
from sentry_sdk.integrations import Integration
from sentry_sdk.scope import add_global_event_processor
from sentry_sdk.utils import event_from_exception

from libs.sentry_fastapi.routes import (
    RouteDescriptor,
    TransactionSource,
    resolve,
    route_from_scope,
)
from libs.sentry_fastapi.transaction import current_state, set_transaction

logger = logging.getLogger(__name__)

MECHANISM_TYPE = "fastapi"


class RouteTransactionIntegration(Integration):
    """Names error events after the matched route of the current request."""

    identifier = "fastapi_route_transaction"

    def __init__(self, update_active_transaction: bool = True) -> None:
        """Initialize the integration.

        Args:
            update_active_transaction: Also rename the running performance
                transaction when a route matches.
        """
        self.update_active_transaction = update_active_transaction

    @staticmethod
    def setup_once() -> None:
        @add_global_event_processor
        def _apply_route_transaction(
            event: MutableMapping[str, Any], hint: dict[str, Any]
        ) -> MutableMapping[str, Any]:
            if sentry_sdk.get_client().get_integration(RouteTransactionIntegration) is None:
                return event

            state = current_state()
            if state is not None:
                state.apply_to_event(event)
            return event


class RouteMatchedHandler(Protocol):
    """Receives the matched route of each request."""

    def on_route_matched(self, route: RouteDescriptor) -> None: ...


def _update_active_transaction(name: str, source: TransactionSource) -> None:
    transaction = sentry_sdk.get_current_scope().transaction
    if transaction is None:
        return
    transaction.name = name
    transaction.source = source.value


class TransactionNameHandler:
    """Stores the resolved route name as the request's transaction name."""

    def on_route_matched(self, route: RouteDescriptor) -> None:
        name, source = resolve(route)
        set_transaction(name)
        logger.debug(f"Route matched, transaction set to '{name}' (source={source.value})")

        integration = sentry_sdk.get_client().get_integration(RouteTransactionIntegration)
        if integration is not None and integration.update_active_transaction:
            _update_active_transaction(name, source)


def notify_route_matched(
    handler: RouteMatchedHandler, scope: MutableMapping[str, Any]
) -> None:
    """Pass the route matched for ``scope`` to ``handler``.

    Does nothing when the request did not match any route.
    """
    route = route_from_scope(scope)
    if route is None:
        return
    handler.on_route_matched(route)


def capture_exception(exception: BaseException, *, handled: bool = True) -> str | None:
    """Send an exception to Sentry with an explicit handled flag.

    Produces exactly one event. The exception mechanism on the event and the
    ``mechanism`` entry of the hint both carry ``handled``.

    Args:
        exception: The exception to capture.
        handled: Whether application code caught and reported the exception.

    Returns:
        Event ID if captured, None if Sentry is not initialized or the event
        was dropped.
    """
    client = sentry_sdk.get_client()
    if not client.is_active():
        return None

    mechanism = {"type": MECHANISM_TYPE, "handled": handled}
    event, hint = event_from_exception(
        exception,
        client_options=client.options,
        mechanism=mechanism,
    )
    hint["mechanism"] = mechanism

    return sentry_sdk.capture_event(event, hint=hint)


def report(exception: BaseException) -> str | None:
    """Report an exception that application code handled."""
    return capture_exception(exception, handled=True)


def capture_unhandled_exception(exception: BaseException) -> str | None:
    """Report an exception that escaped application code."""
    return capture_exception(exception, handled=False)


def flush_events(timeout: float = 2.0) -> None:
    """Flush pending events."""
    if not sentry_sdk.get_client().is_active():
        return

    sentry_sdk.flush(timeout=timeout)


def trace_meta_tags() -> str:
    """Render ``<meta>`` tags that continue the current trace in the browser.

    Returns:
        The ``sentry-trace`` and ``baggage`` tags separated by a newline, or
        an empty string when there is nothing to propagate.
    """
    tags: list[str] = []

    traceparent = sentry_sdk.get_traceparent()
    if traceparent:
        tags.append(f'<meta name="sentry-trace" content="{html.escape(traceparent)}"/>')

    baggage = sentry_sdk.get_baggage()
    if baggage:
        tags.append(f'<meta name="baggage" content="{html.escape(baggage)}"/>')

    return "\n".join(tags)
