"""HttpResult to Chirp response conversion."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chirp.http.response import Response

    from tabby.cache.http import HttpResult


def to_response(result: HttpResult) -> Response:
    """Build a Chirp ``Response`` carrying the result's status, body and headers.

    A 304 goes out with an empty body; its validators travel in the headers.
    """
    from chirp.http.response import Response

    body = b"" if result.status == 304 else result.body
    return Response(
        body=body,
        status=result.status,
        content_type=result.content_type,
        headers=result.headers,
    )


def json_response(payload: dict, *, status: int = 200) -> Response:
    """Compact JSON for the admin and stats endpoints; never cached."""
    from chirp.http.response import JSONResponse

    return JSONResponse.from_value(
        payload,
        status=status,
        headers={"Cache-Control": "no-store"},
    )
