# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import os
from collections.abc import Callable, Generator
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from mcp_authentik.config import AuthentikConfig
from mcp_authentik.provider import AuthentikAuth

BASE_URL = "https://auth.example.com"
CLIENT_ID = "mcp-client"
DISCOVERY_PATH = f"/application/o/{CLIENT_ID}/.well-known/openid-configuration"
TOKEN_PATH = "/application/o/token/"
USERINFO_PATH = "/application/o/userinfo/"
REVOKE_PATH = "/application/o/revoke/"


class FakeAuthentik:
    """
    In-memory Authentik served through httpx.MockTransport.
    Each endpoint's status/body can be overridden per test; every request is recorded.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.discovery: tuple[int, Any] = (
            200,
            {
                "issuer": f"{BASE_URL}/application/o/{CLIENT_ID}/",
                "authorization_endpoint": f"{BASE_URL}/application/o/authorize/",
                "token_endpoint": f"{BASE_URL}{TOKEN_PATH}",
                "userinfo_endpoint": f"{BASE_URL}{USERINFO_PATH}",
                "jwks_uri": f"{BASE_URL}/application/o/{CLIENT_ID}/jwks/",
                "revocation_endpoint": f"{BASE_URL}{REVOKE_PATH}",
            },
        )
        self.token: tuple[int, Any] = (
            200,
            {
                "access_token": "access-123",
                "refresh_token": "refresh-456",
                "token_type": "Bearer",
                "expires_in": 3600,
                "scope": "openid profile email",
            },
        )
        self.userinfo: tuple[int, Any] = (
            200,
            {
                "sub": "a1b2c3",
                "email": "alice@example.com",
                "email_verified": True,
                "name": "Alice Example",
                "given_name": "Alice",
                "family_name": "Example",
                "preferred_username": "alice",
                "nickname": "ali",
                "groups": ["mcp-users", "staff"],
            },
        )
        self.revocation: tuple[int, Any] = (200, None)
        self.network_error_paths: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.network_error_paths:
            raise httpx.ConnectError("connection refused", request=request)

        routes = {
            DISCOVERY_PATH: self.discovery,
            TOKEN_PATH: self.token,
            USERINFO_PATH: self.userinfo,
            REVOKE_PATH: self.revocation,
        }
        if path not in routes:
            return httpx.Response(404, json={"detail": "not found"})

        status, body = routes[path]
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @staticmethod
    def form(request: httpx.Request) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.fixture(autouse=True)
def clean_environment() -> Generator[None, None, None]:
    """Keeps AUTHENTIK_* variables of the host out of config tests."""
    saved = {k: v for k, v in os.environ.items() if k.upper().startswith("AUTHENTIK_")}
    for key in saved:
        del os.environ[key]
    yield
    os.environ.update(saved)


@pytest.fixture
def make_config() -> Callable[..., AuthentikConfig]:
    def _make(**overrides: Any) -> AuthentikConfig:
        values: dict[str, Any] = {
            "url": BASE_URL,
            "client_id": CLIENT_ID,
            "redirect_uri": "https://mcp.example.com/auth/callback",
        }
        values.update(overrides)
        return AuthentikConfig(**values)

    return _make


@pytest.fixture
def config(make_config: Callable[..., AuthentikConfig]) -> AuthentikConfig:
    return make_config()


@pytest.fixture
def fake_idp() -> FakeAuthentik:
    return FakeAuthentik()


@pytest.fixture
def http_client(fake_idp: FakeAuthentik) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_idp.handler))


@pytest.fixture
def auth(config: AuthentikConfig, http_client: httpx.AsyncClient) -> AuthentikAuth:
    return AuthentikAuth(config, client=http_client)
