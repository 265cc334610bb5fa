"""Port search — first bindable port at or after the configured one."""

from __future__ import annotations

import socket

from tabby._errors import ConfigError


def port_available(host: str, port: int) -> bool:
    """Whether *port* can be bound on *host* right now."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_port(host: str, start: int, attempts: int = 100) -> int:
    """Return the first free port in ``start .. start + attempts - 1``.

    Raises:
        ConfigError: Every port in the range is taken.

    """
    for port in range(start, min(start + max(attempts, 1), 65536)):
        if port_available(host, port):
            return port
    msg = f"No free port on {host} in {start}-{start + attempts - 1}"
    raise ConfigError(msg)
