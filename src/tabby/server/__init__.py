"""HTTP surface — Chirp routes over the multi-tier cache.

Provides:
    - SiteRouter / create_app: route table and app factory
    - token_authorizer: default admin authorization predicate
    - find_port: first free port at or after the configured one
"""

from tabby.server.auth import token_authorizer
from tabby.server.ports import find_port
from tabby.server.router import SiteRouter, create_app

__all__ = ["SiteRouter", "create_app", "find_port", "token_authorizer"]
