"""Transaction name resolution for matched routes.

Two route shapes are supported:

- ``Route``: a route with a declared path template and an optional name,
  as FastAPI exposes it on ``scope["route"]`` once routing completes.
- ``LegacyRoute``: only the concrete request path and the matched path
  parameters are known (plain Starlette routes, mounted ASGI apps). The
  name has to be rebuilt from the path by putting placeholders back in.

Both shapes produce a ``(name, source)`` pair. The source tells Sentry how
the name was derived so it can group transactions correctly.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping, Sequence, Union

logger = logging.getLogger(__name__)

# Names starting with this prefix are generated for anonymous routes and
# carry no meaning for grouping.
GENERATED_ROUTE_NAME_PREFIX = "generated::"

# Route groups add this separator between the group prefix and the route name.
ROUTE_NAME_SEPARATOR = "."

# Status code of a legacy route tuple for a successful match.
ROUTE_FOUND = 1


class TransactionSource(str, enum.Enum):
    """How a transaction name was derived."""

    ROUTE = "route"
    CUSTOM = "custom"
    URL = "url"


@dataclass(frozen=True)
class Route:
    """A matched route with a path template and an optional declared name."""

    path: str
    name: str | None = None


@dataclass(frozen=True)
class LegacyRoute:
    """A matched route known only by its concrete path and parameters."""

    path: str
    params: Mapping[str, Any] = field(default_factory=dict, hash=False)
    status: int = ROUTE_FOUND
    metadata: Sequence[Any] = field(default=(), hash=False)

    @classmethod
    def from_route_info(cls, route_info: Sequence[Any], path: str) -> LegacyRoute:
        """Build from a ``(status, metadata, params)`` tuple and the request path."""
        status, metadata, params = route_info
        return cls(path=path, params=params, status=status, metadata=metadata)


RouteDescriptor = Union[Route, LegacyRoute]


def _is_usable_route_name(name: str) -> bool:
    if not name:
        return False
    if name.endswith(ROUTE_NAME_SEPARATOR):
        # Group prefix without a route name, e.g. "admin."
        return False
    return not name.startswith(GENERATED_ROUTE_NAME_PREFIX)


def extract_name_and_source_for_route(route: Route) -> tuple[str, TransactionSource]:
    """Resolve the transaction name for a route with a path template.

    The declared route name wins when it is meaningful. Incomplete group
    names (ending with ``"."``) and generated names fall back to the path.

    Args:
        route: The matched route.

    Returns:
        Tuple of transaction name and source.
    """
    name = route.name
    if name is not None and _is_usable_route_name(name):
        return name, TransactionSource.ROUTE

    return route.path, TransactionSource.ROUTE


def _substitute_params(path: str, params: Mapping[str, Any]) -> str:
    for param, value in params.items():
        value = str(value)
        if not value:
            continue
        # Only the first remaining occurrence, so repeated values map to
        # successive parameters left to right.
        path = path.replace(value, "{" + param + "}", 1)
    return path


def extract_name_and_source_for_legacy_route(
    route_info: Sequence[Any] | LegacyRoute, path: str | None = None
) -> tuple[str, TransactionSource]:
    """Resolve the transaction name for a route known only by its path.

    Each parameter value is swapped back for a ``{param}`` placeholder,
    in parameter order. Values that do not occur in the path are skipped.

    Args:
        route_info: A ``LegacyRoute`` or a ``(status, metadata, params)`` tuple.
        path: The request path. Required when ``route_info`` is a tuple.

    Returns:
        Tuple of transaction name and source.

    Example:
        >>> extract_name_and_source_for_legacy_route(
        ...     (1, [], {"param1": "foo"}), "/foo/bar/baz"
        ... )
        ('/{param1}/bar/baz', <TransactionSource.ROUTE: 'route'>)
    """
    if isinstance(route_info, LegacyRoute):
        route = route_info
    else:
        if path is None:
            raise TypeError("path is required when route_info is a tuple")
        route = LegacyRoute.from_route_info(route_info, path)

    if not route.params:
        return route.path, TransactionSource.ROUTE

    return _substitute_params(route.path, route.params), TransactionSource.ROUTE


def resolve(route: RouteDescriptor) -> tuple[str, TransactionSource]:
    """Resolve the transaction name and source for either route shape."""
    if isinstance(route, Route):
        return extract_name_and_source_for_route(route)
    if isinstance(route, LegacyRoute):
        return extract_name_and_source_for_legacy_route(route)
    raise TypeError(f"Unsupported route descriptor: {type(route).__name__}")


def _endpoint_name(endpoint: Any) -> str | None:
    # Same rule Starlette uses to name routes after their endpoint.
    if endpoint is None:
        return None
    return getattr(endpoint, "__name__", endpoint.__class__.__name__)


def route_from_scope(scope: MutableMapping[str, Any]) -> RouteDescriptor | None:
    """Build a route descriptor from an ASGI scope after routing.

    FastAPI stores the matched ``APIRoute`` on ``scope["route"]``. Plain
    Starlette routes only leave the endpoint and the path parameters behind.

    Routes declared without a name get the endpoint's name from FastAPI.
    That name was never declared, so it is dropped and the path template
    is used instead.

    Returns:
        The descriptor, or None if no route matched the request.
    """
    matched = scope.get("route")
    if matched is not None and isinstance(getattr(matched, "path", None), str):
        name = getattr(matched, "name", None)
        if name is not None and name == _endpoint_name(getattr(matched, "endpoint", None)):
            name = None
        return Route(path=matched.path, name=name)

    if "endpoint" in scope:
        return LegacyRoute(
            path=scope.get("path", ""),
            params=scope.get("path_params") or {},
        )

    return None
