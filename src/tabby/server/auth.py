"""Authorization predicate for the admin endpoints.

An authorizer is any ``Callable[[Request], bool]``.  The default one accepts
``Authorization: Bearer <admin_token>`` and, with no token configured,
rejects every request.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chirp import Request

    from tabby._types import Authorizer


def bearer_token(header: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer ...`` header."""
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def token_authorizer(admin_token: str | None) -> Authorizer:
    """Authorizer comparing the bearer token in constant time."""

    def authorize(request: Request) -> bool:
        if not admin_token:
            return False
        supplied = bearer_token(request.headers.get("authorization"))
        if supplied is None:
            return False
        return hmac.compare_digest(supplied.encode("utf-8"), admin_token.encode("utf-8"))

    return authorize


def deny_all(request: Request) -> bool:
    return False
