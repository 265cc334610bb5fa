"""Tests for the admin authorizer and port search."""

from __future__ import annotations

import socket
from types import SimpleNamespace

import pytest

from tabby._errors import ConfigError
from tabby.server.auth import bearer_token, deny_all, token_authorizer
from tabby.server.ports import find_port, port_available


def _request(authorization: str | None = None) -> SimpleNamespace:
    headers = {} if authorization is None else {"authorization": authorization}
    return SimpleNamespace(headers=headers)


class TestBearerToken:
    def test_extracts_token(self) -> None:
        assert bearer_token("Bearer abc") == "abc"
        assert bearer_token("bearer   abc  ") == "abc"

    def test_rejects_other_schemes(self) -> None:
        assert bearer_token("Basic dXNlcjpwYXNz") is None
        assert bearer_token("Bearer") is None
        assert bearer_token("") is None
        assert bearer_token(None) is None


class TestTokenAuthorizer:
    """token_authorizer — constant-time bearer check."""

    def test_accepts_matching_token(self) -> None:
        authorize = token_authorizer("s3cret")
        assert authorize(_request("Bearer s3cret"))

    def test_rejects_wrong_or_missing_token(self) -> None:
        authorize = token_authorizer("s3cret")
        assert not authorize(_request("Bearer nope"))
        assert not authorize(_request())

    @pytest.mark.parametrize("token", [None, ""])
    def test_no_token_configured_rejects_all(self, token: str | None) -> None:
        authorize = token_authorizer(token)
        assert not authorize(_request("Bearer "))
        assert not authorize(_request("Bearer anything"))

    def test_deny_all(self) -> None:
        assert not deny_all(_request("Bearer s3cret"))  # type: ignore[arg-type]


class TestPorts:
    def test_free_port_found(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            start = sock.getsockname()[1]
        port = find_port("127.0.0.1", start, attempts=20)
        assert start <= port < start + 20

    def test_busy_port_skipped(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as held:
            held.bind(("127.0.0.1", 0))
            held.listen()
            busy = held.getsockname()[1]
            assert not port_available("127.0.0.1", busy)
            if busy < 65535:
                assert find_port("127.0.0.1", busy, attempts=50) > busy

    def test_exhausted_range(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as held:
            held.bind(("127.0.0.1", 0))
            held.listen()
            busy = held.getsockname()[1]
            with pytest.raises(ConfigError, match="No free port"):
                find_port("127.0.0.1", busy, attempts=1)
