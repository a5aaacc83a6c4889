# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import httpx
import pytest

from mcp_authentik.exceptions import OversizedResponseError, TransportError
from mcp_authentik.transport import ProviderResponse, fetch_json


def _client(handler) -> httpx.AsyncClient:  # type: ignore[no-untyped-def]
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_json_success() -> None:
    async with _client(lambda request: httpx.Response(200, json={"ok": True})) as client:
        response = await fetch_json(client, "GET", "https://idp/x")

    assert response == ProviderResponse(status_code=200, body={"ok": True})
    assert response.is_success


@pytest.mark.asyncio
async def test_non_2xx_is_returned_not_raised() -> None:
    async with _client(lambda request: httpx.Response(400, json={"error": "invalid_grant"})) as client:
        response = await fetch_json(client, "POST", "https://idp/token", data={"a": "b"})

    assert response.status_code == 400
    assert not response.is_success
    assert response.oauth_error == "invalid_grant"


@pytest.mark.asyncio
async def test_non_json_body_is_none() -> None:
    async with _client(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>")) as client:
        response = await fetch_json(client, "GET", "https://idp/x")

    assert response.status_code == 502
    assert response.body is None
    assert response.oauth_error is None


@pytest.mark.asyncio
async def test_request_failure_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(TransportError, match="failed"):
            await fetch_json(client, "GET", "https://idp/x")


@pytest.mark.asyncio
async def test_oversized_response_rejected() -> None:
    payload = b"[" + b"1," * 100 + b"1]"

    async with _client(lambda request: httpx.Response(200, content=payload)) as client:
        with pytest.raises(OversizedResponseError):
            await fetch_json(client, "GET", "https://idp/x", max_bytes=50)


@pytest.mark.asyncio
async def test_headers_and_form_are_sent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    async with _client(handler) as client:
        response = await fetch_json(
            client, "POST", "https://idp/revoke", headers={"Authorization": "Bearer t"}, data={"token": "t"}
        )

    assert response.body is None
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer t"
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert request.content == b"token=t"
