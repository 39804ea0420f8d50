"""FastAPI/Starlette wiring for route transactions and unhandled exceptions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from fastapi import Depends, FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from libs.sentry_fastapi.integration import (
    RouteMatchedHandler,
    TransactionNameHandler,
    capture_unhandled_exception,
    notify_route_matched,
)
from libs.sentry_fastapi.transaction import transaction_scope

if TYPE_CHECKING:
    from libs.sentry_fastapi.config import SentryIntegrationConfig

logger = logging.getLogger(__name__)

# Attributes on request.state: the handler chosen by the middleware, and
# whether it was already notified for this request.
HANDLER_STATE_KEY = "sentry_route_handler"
NOTIFIED_STATE_KEY = "sentry_route_notified"

_default_handler = TransactionNameHandler()


class RouteTransactionMiddleware(BaseHTTPMiddleware):
    """
    Middleware giving every request its own transaction state.

    - Binds a fresh transaction holder for the request
    - Exposes the route handler to the ``route_matched`` dependency
    - Captures exceptions escaping the app as unhandled, then re-raises them
    """

    def __init__(
        self,
        app: ASGIApp,
        handler: RouteMatchedHandler | None = None,
        capture_unhandled: bool = True,
    ):
        """
        Initialize route transaction middleware.

        Args:
            app: ASGI application
            handler: Receives the matched route (default: TransactionNameHandler)
            capture_unhandled: Report exceptions escaping the app (default: True)
        """
        super().__init__(app)
        self.handler = handler or _default_handler
        self.capture_unhandled = capture_unhandled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with transaction_scope() as state:
            setattr(request.state, HANDLER_STATE_KEY, self.handler)
            try:
                response = await call_next(request)
            except Exception as exc:
                # Routing already ran, the scope holds the matched route even
                # when the dependency never got to execute.
                _notify_once(request, self.handler)

                if self.capture_unhandled:
                    logger.debug(
                        f"Capturing unhandled {exc.__class__.__name__} "
                        f"for transaction '{state.get()}'"
                    )
                    capture_unhandled_exception(exc)
                raise

            # Plain Starlette routes never run the route dependency.
            _notify_once(request, self.handler)
            return response


def _notify_once(request: Request, handler: RouteMatchedHandler) -> None:
    if getattr(request.state, NOTIFIED_STATE_KEY, False):
        return
    setattr(request.state, NOTIFIED_STATE_KEY, True)
    notify_route_matched(handler, request.scope)


async def route_matched(request: Request) -> None:
    """Dependency notifying the route handler once the route is matched."""
    handler = getattr(request.state, HANDLER_STATE_KEY, None) or _default_handler
    _notify_once(request, handler)


def install(
    app: FastAPI,
    *,
    handler: RouteMatchedHandler | None = None,
    capture_unhandled: bool | None = None,
    config: SentryIntegrationConfig | None = None,
) -> None:
    """Wire route transactions into a FastAPI application.

    Adds ``RouteTransactionMiddleware`` and the ``route_matched`` dependency
    to the application router. Only routes declared after this call get the
    dependency, so call it right after creating the app.

    Plain Starlette routes (``starlette.routing.Route`` added to the router)
    bypass the dependency. Their handler is notified once the endpoint has
    returned, or when it raises. Events reported from inside such an
    endpoint carry no transaction name.

    Args:
        app: The FastAPI application.
        handler: Receives the matched route of each request.
        capture_unhandled: Report exceptions escaping the app as unhandled.
            Defaults to ``config.integration.capture_unhandled_exceptions``,
            or True without a config.
        config: Loaded integration configuration.
    """
    if capture_unhandled is None:
        capture_unhandled = (
            config.integration.capture_unhandled_exceptions if config is not None else True
        )

    app.add_middleware(
        RouteTransactionMiddleware,
        handler=handler,
        capture_unhandled=capture_unhandled,
    )
    app.router.dependencies.append(Depends(route_matched))
    logger.info(
        f"Sentry route transaction tracking installed "
        f"(capture_unhandled={capture_unhandled})"
    )
