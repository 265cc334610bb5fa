"""HTTP caching helpers — ETags, Cache-Control, encoding negotiation.

Framework-agnostic: everything here works on bytes and header strings and
returns ``HttpResult`` values that the Chirp handlers turn into responses.
"""

from __future__ import annotations

import gzip
import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import brotli

if TYPE_CHECKING:
    from tabby._types import Encoding

type Tier = Literal["precompressed", "rendered", "render", "dynamic", "static", "none"]

IMMUTABLE = "public, max-age=31536000, immutable"
HTML_MAX_AGE = "public, max-age=3600"
SHORT_MAX_AGE = "public, max-age=300"

ENCODINGS: tuple[Encoding, ...] = ("br", "gzip")

_IMMUTABLE_TYPES = ("text/css", "text/javascript", "application/javascript")
_COMPRESSIBLE_SUFFIXES = ("json", "xml", "javascript")


@dataclass(frozen=True, slots=True)
class HttpResult:
    """A fully-decided response: status, body and headers.

    Attributes:
        status: HTTP status code.
        body: Response body (already encoded when ``encoding`` is set).
        content_type: Media type of the (decoded) body.
        headers: Extra headers (ETag, Cache-Control, Vary, Content-Encoding).
        tier: Cache tier that produced the body.
        encoding: ``"br"``, ``"gzip"`` or ``""`` for identity.

    """

    status: int
    body: bytes
    content_type: str
    headers: tuple[tuple[str, str], ...] = ()
    tier: Tier = "none"
    encoding: str = ""

    def header(self, name: str) -> str | None:
        """Case-insensitive lookup of an extra header."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def with_status(self, status: int) -> HttpResult:
        return HttpResult(
            status=status,
            body=self.body,
            content_type=self.content_type,
            headers=self.headers,
            tier=self.tier,
            encoding=self.encoding,
        )


def etag_for(body: bytes) -> str:
    """Strong ETag: quoted MD5 hex of the identity body."""
    return f'"{hashlib.md5(body, usedforsecurity=False).hexdigest()}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """True when an ``If-None-Match`` header matches *etag* (weak comparison)."""
    if not if_none_match:
        return False
    if if_none_match.strip() == "*":
        return True
    bare = etag.removeprefix("W/")
    return any(
        candidate.strip().removeprefix("W/") == bare
        for candidate in if_none_match.split(",")
    )


def cache_control_for(content_type: str) -> str:
    """Long-lived for images/fonts/css/js, one hour for HTML, five minutes otherwise."""
    media = content_type.split(";", 1)[0].strip().lower()
    if media.startswith(("image/", "font/")) or "font" in media or media in _IMMUTABLE_TYPES:
        return IMMUTABLE
    if media == "text/html":
        return HTML_MAX_AGE
    return SHORT_MAX_AGE


def is_compressible(content_type: str) -> bool:
    """Text-like media types benefit from compression; images and fonts do not."""
    media = content_type.split(";", 1)[0].strip().lower()
    return media.startswith("text/") or media.endswith(_COMPRESSIBLE_SUFFIXES)


def negotiate_encoding(accept_encoding: str | None) -> Encoding | None:
    """Pick ``br``, then ``gzip``, from an ``Accept-Encoding`` header.

    Codings listed with ``q=0`` are refused; ``*`` accepts both.
    """
    if not accept_encoding:
        return None
    accepted: dict[str, float] = {}
    for part in accept_encoding.split(","):
        token, _, params = part.strip().partition(";")
        token = token.strip().lower()
        if not token:
            continue
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        accepted[token] = quality
    for encoding in ENCODINGS:
        quality = accepted.get(encoding, accepted.get("*", 0.0))
        if quality > 0:
            return encoding
    return None


def compress(body: bytes, encoding: Encoding) -> bytes:
    """Encode *body*; gzip output is deterministic (mtime 0)."""
    if encoding == "br":
        return brotli.compress(body)
    return gzip.compress(body, mtime=0)


def decompress(body: bytes, encoding: str) -> bytes:
    """Inverse of :func:`compress`; identity for ``""``."""
    if encoding == "br":
        return brotli.decompress(body)
    if encoding == "gzip":
        return gzip.decompress(body)
    return body


def not_modified(etag: str, content_type: str, *, tier: Tier, vary: bool = True) -> HttpResult:
    """304 with no body, carrying the validators."""
    headers = [("ETag", etag), ("Cache-Control", cache_control_for(content_type))]
    if vary:
        headers.append(("Vary", "Accept-Encoding"))
    return HttpResult(
        status=304,
        body=b"",
        content_type=content_type,
        headers=tuple(headers),
        tier=tier,
    )


def cached_response(
    body: bytes,
    content_type: str,
    *,
    accept_encoding: str | None,
    if_none_match: str | None,
    etag: str | None = None,
    compress_min_bytes: int = 1024,
    status: int = 200,
    tier: Tier = "rendered",
) -> HttpResult:
    """The standard HTTP-cache path for an identity body.

    Compares the ETag, then compresses on the fly when the client accepts
    an encoding and the body is larger than *compress_min_bytes*.
    """
    etag = etag or etag_for(body)
    if status == 200 and etag_matches(if_none_match, etag):
        return not_modified(etag, content_type, tier=tier)

    encoding = ""
    payload = body
    if len(body) > compress_min_bytes and is_compressible(content_type):
        negotiated = negotiate_encoding(accept_encoding)
        if negotiated is not None:
            payload = compress(body, negotiated)
            encoding = negotiated

    headers = [
        ("ETag", etag),
        ("Cache-Control", cache_control_for(content_type)),
        ("Vary", "Accept-Encoding"),
    ]
    if encoding:
        headers.append(("Content-Encoding", encoding))
    return HttpResult(
        status=status,
        body=payload,
        content_type=content_type,
        headers=tuple(headers),
        tier=tier,
        encoding=encoding,
    )
