"""Authenticated principal propagation via Python contextvars.

The principal is resolved by the ``get_principal`` dependency and is then
reachable anywhere in the call stack (log context, Sentry tagging) through
``get_current_principal()``.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """Immutable identity of the requesting user."""

    user_id: str
    name: str | None = None
    auth_method: str = "jwt"  # "jwt" or "apikey"


_principal_context: contextvars.ContextVar[Principal] = contextvars.ContextVar("principal_context")


def get_current_principal() -> Principal:
    """Get the principal for the current request.

    Raises RuntimeError if no principal has been set (the call is not
    within an authenticated request).
    """
    try:
        return _principal_context.get()
    except LookupError:
        raise RuntimeError("No principal set -- request is not authenticated")


def set_principal(principal: Principal) -> contextvars.Token[Principal]:
    """Set the principal for the current request."""
    return _principal_context.set(principal)
