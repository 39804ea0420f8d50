"""Per-request transaction name state.

The transaction name resolved when a route matches is kept in a
``TransactionState`` bound to the current request through a context
variable. Each request task gets its own holder, so concurrent requests
never see each other's names.

Usage:
    with transaction_scope() as state:
        state.set("items.read")
        ...
        state.apply_to_event(event)
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, MutableMapping


class TransactionState:
    """Holds the transaction name of one in-flight request."""

    __slots__ = ("_name",)

    def __init__(self, name: str | None = None) -> None:
        self._name = name

    def set(self, name: str | None) -> None:
        """Overwrite the held name. Passing None clears it."""
        self._name = name

    def get(self) -> str | None:
        return self._name

    def reset(self) -> None:
        self._name = None

    @property
    def is_set(self) -> bool:
        return self._name is not None

    def apply_to_event(self, event: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        """Write the held name into an event that has no transaction yet.

        An event whose transaction is an empty string already has one and is
        left untouched, as is any event when nothing is held.

        Args:
            event: Sentry event payload.

        Returns:
            The same event, possibly with ``transaction`` filled in.
        """
        if self._name is not None and event.get("transaction") is None:
            event["transaction"] = self._name
        return event

    def __repr__(self) -> str:
        return f"TransactionState(name={self._name!r})"


_current_state: ContextVar[TransactionState | None] = ContextVar(
    "sentry_fastapi_transaction_state", default=None
)


def current_state() -> TransactionState | None:
    """Return the holder bound to the current request, if any."""
    return _current_state.get()


def get_transaction() -> str | None:
    state = _current_state.get()
    return state.get() if state is not None else None


def set_transaction(name: str | None) -> None:
    """Set the transaction name of the current request.

    Binds a new holder to the current context when none is bound yet.
    """
    state = _current_state.get()
    if state is None:
        state = TransactionState()
        _current_state.set(state)
    state.set(name)


@contextmanager
def transaction_scope() -> Iterator[TransactionState]:
    """Bind a fresh holder for the duration of one request."""
    state = TransactionState()
    token = _current_state.set(state)
    try:
        yield state
    finally:
        state.reset()
        _current_state.reset(token)
