"""Tests for tabby.cache.http — ETags, negotiation and the HTTP-cache path."""

from __future__ import annotations

import pytest

from tabby.cache.http import (
    HTML_MAX_AGE,
    IMMUTABLE,
    SHORT_MAX_AGE,
    cache_control_for,
    cached_response,
    compress,
    decompress,
    etag_for,
    etag_matches,
    is_compressible,
    negotiate_encoding,
)

HTML = "text/html; charset=utf-8"
BIG = b"<p>" + b"hello world " * 200 + b"</p>"


class TestEtag:
    def test_strong_quoted_md5(self) -> None:
        etag = etag_for(b"abc")
        assert etag == '"900150983cd24fb0d6963f7d28e17f72"'

    def test_matches_exact_list_and_star(self) -> None:
        etag = etag_for(b"abc")
        assert etag_matches(etag, etag)
        assert etag_matches(f'"other", {etag}', etag)
        assert etag_matches("*", etag)
        assert etag_matches(f"W/{etag}", etag)

    def test_no_match(self) -> None:
        assert not etag_matches(None, '"x"')
        assert not etag_matches('"y"', '"x"')


class TestNegotiation:
    """negotiate_encoding — br preferred over gzip, q=0 refused."""

    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("gzip, deflate, br", "br"),
            ("gzip", "gzip"),
            ("br;q=0, gzip", "gzip"),
            ("*", "br"),
            ("identity", None),
            ("", None),
            (None, None),
            ("gzip;q=0", None),
        ],
    )
    def test_negotiate(self, header: str | None, expected: str | None) -> None:
        assert negotiate_encoding(header) == expected


class TestCacheControl:
    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            ("image/png", IMMUTABLE),
            ("font/woff2", IMMUTABLE),
            ("text/css; charset=utf-8", IMMUTABLE),
            ("application/javascript", IMMUTABLE),
            (HTML, HTML_MAX_AGE),
            ("application/json; charset=utf-8", SHORT_MAX_AGE),
            ("application/rss+xml", SHORT_MAX_AGE),
        ],
    )
    def test_policy(self, content_type: str, expected: str) -> None:
        assert cache_control_for(content_type) == expected

    def test_compressible(self) -> None:
        assert is_compressible(HTML)
        assert is_compressible("application/rss+xml; charset=utf-8")
        assert is_compressible("application/json")
        assert not is_compressible("image/png")


class TestCompress:
    def test_gzip_deterministic(self) -> None:
        assert compress(BIG, "gzip") == compress(BIG, "gzip")

    @pytest.mark.parametrize("encoding", ["br", "gzip"])
    def test_roundtrip(self, encoding: str) -> None:
        assert decompress(compress(BIG, encoding), encoding) == BIG  # type: ignore[arg-type]


class TestCachedResponse:
    """cached_response — the standard conditional/compressing path."""

    def test_identity_headers(self) -> None:
        result = cached_response(BIG, HTML, accept_encoding=None, if_none_match=None)
        assert result.status == 200
        assert result.body == BIG
        assert result.header("ETag") == etag_for(BIG)
        assert result.header("Cache-Control") == HTML_MAX_AGE
        assert result.header("Vary") == "Accept-Encoding"
        assert result.header("Content-Encoding") is None

    def test_compresses_large_bodies(self) -> None:
        result = cached_response(BIG, HTML, accept_encoding="br, gzip", if_none_match=None)
        assert result.encoding == "br"
        assert result.header("Content-Encoding") == "br"
        assert decompress(result.body, "br") == BIG
        # The ETag always identifies the identity body
        assert result.header("ETag") == etag_for(BIG)

    def test_small_bodies_not_compressed(self) -> None:
        result = cached_response(b"tiny", HTML, accept_encoding="gzip", if_none_match=None)
        assert result.encoding == ""
        assert result.body == b"tiny"

    def test_threshold_is_exclusive(self) -> None:
        body = b"x" * 1024
        result = cached_response(body, HTML, accept_encoding="gzip", if_none_match=None)
        assert result.encoding == ""

    def test_images_not_compressed(self) -> None:
        result = cached_response(BIG, "image/png", accept_encoding="gzip", if_none_match=None)
        assert result.encoding == ""

    def test_not_modified(self) -> None:
        result = cached_response(BIG, HTML, accept_encoding="br", if_none_match=etag_for(BIG))
        assert result.status == 304
        assert result.body == b""
        assert result.header("ETag") == etag_for(BIG)
        assert result.header("Cache-Control") == HTML_MAX_AGE

    def test_404_never_304(self) -> None:
        result = cached_response(
            BIG, HTML, accept_encoding=None, if_none_match=etag_for(BIG), status=404
        )
        assert result.status == 404
