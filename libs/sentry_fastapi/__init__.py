"""Sentry integration for FastAPI route transactions.

This package names Sentry error events after the FastAPI route that handled
the request, and reports exceptions with an explicit handled/unhandled
classification.

Usage:
    from fastapi import FastAPI

    from libs.sentry_fastapi import init_sentry, install, load_config, report

    # Initialize at application startup
    config = load_config("config/sentry.yaml", environment="production")
    init_sentry(config)

    app = FastAPI()
    install(app, config=config)  # before declaring routes

    @app.get("/items/{item_id}", name="items.read")
    async def read_item(item_id: int):
        try:
            return lookup(item_id)
        except LookupError as e:
            report(e)  # handled=True, transaction="items.read"
            return {"item": None}

    # Exceptions escaping the app are captured as handled=False.

Concurrency:
    The transaction name lives in a context variable bound per request by
    ``RouteTransactionMiddleware``. Concurrent requests never share it.
"""

from libs.sentry_fastapi.client import ClientBuilder, init_sentry
from libs.sentry_fastapi.config import ConfigurationError, load_config
from libs.sentry_fastapi.integration import (
    RouteMatchedHandler,
    RouteTransactionIntegration,
    TransactionNameHandler,
    capture_exception,
    capture_unhandled_exception,
    flush_events,
    report,
    trace_meta_tags,
)
from libs.sentry_fastapi.middleware import RouteTransactionMiddleware, install, route_matched
from libs.sentry_fastapi.routes import (
    LegacyRoute,
    Route,
    TransactionSource,
    extract_name_and_source_for_legacy_route,
    extract_name_and_source_for_route,
    resolve,
)
from libs.sentry_fastapi.transaction import (
    TransactionState,
    get_transaction,
    set_transaction,
    transaction_scope,
)

__all__ = [
    "ClientBuilder",
    "ConfigurationError",
    "LegacyRoute",
    "Route",
    "RouteMatchedHandler",
    "RouteTransactionIntegration",
    "RouteTransactionMiddleware",
    "TransactionNameHandler",
    "TransactionSource",
    "TransactionState",
    "capture_exception",
    "capture_unhandled_exception",
    "extract_name_and_source_for_legacy_route",
    "extract_name_and_source_for_route",
    "flush_events",
    "get_transaction",
    "init_sentry",
    "install",
    "load_config",
    "report",
    "resolve",
    "route_matched",
    "set_transaction",
    "trace_meta_tags",
    "transaction_scope",
]
