# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from conftest import DISCOVERY_PATH, USERINFO_PATH, FakeAuthentik
from starlette.requests import Request

from mcp_authentik.async_context import clear_current_identity, get_current_identity
from mcp_authentik.config import AuthentikConfig
from mcp_authentik.exceptions import AccessDeniedError, DiscoveryError, TokenExchangeError, VerificationError
from mcp_authentik.provider import SESSION_USER_KEY, AuthentikAuth, create_authentik_auth


def _request(headers: dict[str, str] | None = None, session: dict[str, Any] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "method": "GET",
        "path": "/mcp",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    if session is not None:
        scope["session"] = session
    return Request(scope)


@pytest.mark.asyncio
async def test_discovery_fetched_once(auth: AuthentikAuth, fake_idp: FakeAuthentik) -> None:
    await auth.get_auth_url(state="s")
    await auth.handle_callback("code-1")
    await auth.verify_token("access-123")
    await auth.refresh_token("refresh-456")
    await auth.revoke_token("access-123")

    assert len(fake_idp.calls(DISCOVERY_PATH)) == 1


@pytest.mark.asyncio
async def test_initialize(auth: AuthentikAuth, fake_idp: FakeAuthentik) -> None:
    assert auth.initialized is False

    await auth.initialize()
    await auth.initialize()

    assert auth.initialized is True
    assert len(fake_idp.calls(DISCOVERY_PATH)) == 1


@pytest.mark.asyncio
async def test_initialize_failure_keeps_routes_disabled(auth: AuthentikAuth, fake_idp: FakeAuthentik) -> None:
    fake_idp.discovery = (503, None)

    with pytest.raises(DiscoveryError):
        await auth.initialize()
    assert auth.initialized is False


@pytest.mark.asyncio
async def test_login_with_code(auth: AuthentikAuth) -> None:
    tokens, identity = await auth.login_with_code("code-1", state="s")

    assert tokens.access_token == "access-123"
    assert identity.id == "a1b2c3"
    assert identity.username == "alice"


@pytest.mark.asyncio
async def test_login_with_code_group_denied(
    make_config: Callable[..., AuthentikConfig], http_client: httpx.AsyncClient
) -> None:
    auth = AuthentikAuth(make_config(allowed_groups=["admins"]), client=http_client)

    with pytest.raises(AccessDeniedError):
        await auth.login_with_code("code-1")


@pytest.mark.asyncio
async def test_login_with_code_rejected_token(auth: AuthentikAuth, fake_idp: FakeAuthentik) -> None:
    fake_idp.userinfo = (401, None)
    with pytest.raises(VerificationError):
        await auth.login_with_code("code-1")


@pytest.mark.asyncio
async def test_login_with_code_rejected_code(auth: AuthentikAuth, fake_idp: FakeAuthentik) -> None:
    fake_idp.token = (400, {"error": "invalid_grant"})
    with pytest.raises(TokenExchangeError):
        await auth.login_with_code("stale")
    assert fake_idp.calls(USERINFO_PATH) == []


@pytest.mark.asyncio
async def test_authenticate_with_bearer(auth: AuthentikAuth, fake_idp: FakeAuthentik) -> None:
    clear_current_identity()

    identity = await auth.authenticate(_request(headers={"Authorization": "Bearer access-123"}))

    assert identity is not None
    assert identity.username == "alice"
    assert get_current_identity() == identity
    assert fake_idp.calls(USERINFO_PATH)[0].headers["Authorization"] == "Bearer access-123"


@pytest.mark.asyncio
@pytest.mark.parametrize("scheme", ["bearer", "BEARER", "BeArEr"])
async def test_authenticate_bearer_scheme_is_case_insensitive(auth: AuthentikAuth, scheme: str) -> None:
    identity = await auth.authenticate(_request(headers={"Authorization": f"{scheme} access-123"}))

    assert identity is not None
    assert identity.username == "alice"


@pytest.mark.asyncio
async def test_authenticate_with_session(auth: AuthentikAuth, fake_idp: FakeAuthentik) -> None:
    session = {SESSION_USER_KEY: {"id": "42", "username": "carol", "groups": ["staff"]}}

    identity = await auth.authenticate(_request(session=session))

    assert identity is not None
    assert identity.id == "42"
    assert fake_idp.requests == []


@pytest.mark.asyncio
async def test_authenticate_anonymous(auth: AuthentikAuth) -> None:
    assert await auth.authenticate(_request(headers={"Authorization": "Basic dXNlcg=="})) is None
    assert await auth.authenticate(_request(session={})) is None
    assert get_current_identity() is None


def test_get_user_discards_malformed_session(auth: AuthentikAuth) -> None:
    session: dict[str, Any] = {SESSION_USER_KEY: {"username": "no-id"}}

    assert auth.get_user(_request(session=session)) is None
    assert SESSION_USER_KEY not in session


def test_get_user_without_session_middleware(auth: AuthentikAuth) -> None:
    assert auth.get_user(_request()) is None


def test_custom_session_accessor(config: AuthentikConfig, http_client: httpx.AsyncClient) -> None:
    store = {SESSION_USER_KEY: {"id": "7", "username": "dave"}}
    auth = AuthentikAuth(config, client=http_client, session_accessor=lambda _: store)

    user = auth.get_user(_request())
    assert user is not None
    assert user.username == "dave"


def test_discovery_metadata(auth: AuthentikAuth) -> None:
    metadata = auth.get_discovery_metadata("https://mcp.example.com/")

    assert metadata.issuer == "https://auth.example.com/application/o/mcp-client/"
    assert metadata.authorization_endpoint == "https://auth.example.com/application/o/authorize/"
    assert metadata.token_endpoint == "https://auth.example.com/application/o/token/"
    assert metadata.userinfo_endpoint == "https://auth.example.com/application/o/userinfo/"
    assert metadata.jwks_uri == "https://auth.example.com/application/o/mcp-client/jwks/"
    assert metadata.registration_endpoint == "https://mcp.example.com/application/o/register/"
    assert metadata.code_challenge_methods_supported == ["S256", "plain"]
    assert "none" in metadata.token_endpoint_auth_methods_supported


def test_protected_resource_metadata(auth: AuthentikAuth) -> None:
    metadata = auth.get_protected_resource_metadata("https://mcp.example.com")
    assert metadata.resource == "https://mcp.example.com"
    assert metadata.authorization_servers == ["https://auth.example.com/application/o/mcp-client/"]


def test_supports_dynamic_registration(auth: AuthentikAuth) -> None:
    assert auth.supports_dynamic_registration() is True


@pytest.mark.asyncio
async def test_internal_client_is_closed(config: AuthentikConfig) -> None:
    auth = create_authentik_auth(config)

    with patch.object(auth._client, "aclose", new_callable=AsyncMock) as mock_close:
        async with auth:
            pass
    mock_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_internal_client_uses_configured_timeout(make_config: Callable[..., AuthentikConfig]) -> None:
    async with AuthentikAuth(make_config(http_timeout=2.5)) as auth:
        assert auth._client.timeout == httpx.Timeout(2.5)


@pytest.mark.asyncio
async def test_external_client_is_left_open(config: AuthentikConfig, http_client: httpx.AsyncClient) -> None:
    async with AuthentikAuth(config, client=http_client):
        pass
    assert http_client.is_closed is False
