# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Bounded JSON fetching over httpx for calls to the identity provider.
"""

import json
from dataclasses import dataclass
from typing import Any

import httpx

from mcp_authentik.exceptions import OversizedResponseError, TransportError
from mcp_authentik.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000


@dataclass(frozen=True)
class ProviderResponse:
    """
    Status code and decoded JSON body of a provider response.

    Attributes:
        status_code (int): The HTTP status code.
        body (Any): The decoded JSON body, or None if the body is empty or not JSON.
    """

    status_code: int
    body: Any = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def oauth_error(self) -> str | None:
        """The OAuth `error` code of an error response, if the body carries one."""
        if isinstance(self.body, dict) and isinstance(self.body.get("error"), str):
            return self.body["error"]
        return None


async def fetch_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    data: dict[str, str] | None = None,
    max_bytes: int = MAX_RESPONSE_BYTES,
) -> ProviderResponse:
    """
    Sends a request and reads at most `max_bytes` of the response.

    Non-2xx responses are returned, not raised, so callers can tell a rejected
    request from one that never got an answer.

    Args:
        client: The async HTTP client.
        method: HTTP method.
        url: Target URL.
        headers: Extra request headers.
        data: Form fields, sent as application/x-www-form-urlencoded.
        max_bytes: Response size limit.

    Returns:
        ProviderResponse: The status code and decoded body.

    Raises:
        TransportError: If the request fails before a response is received.
        OversizedResponseError: If the response exceeds `max_bytes`.
    """
    request_headers = {"Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    try:
        async with client.stream(method, url, headers=request_headers, data=data) as response:
            content_length = response.headers.get("Content-Length")
            if content_length and content_length.isdigit() and int(content_length) > max_bytes:
                raise OversizedResponseError(f"Response from {url} too large")

            content = bytearray()
            async for chunk in response.aiter_bytes():
                content.extend(chunk)
                if len(content) > max_bytes:
                    raise OversizedResponseError(f"Response from {url} too large")
            status_code = response.status_code
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error(f"{method} {url} failed: {e.__class__.__name__}")
        raise TransportError(f"{method} {url} failed: {e}") from e

    body: Any = None
    if content:
        try:
            body = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug(f"Non-JSON response from {url} (status {status_code})")

    return ProviderResponse(status_code=status_code, body=body)
