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
TokenExchanger component for the token and revocation endpoints.
"""

from typing import Literal

import httpx
from pydantic import ValidationError

from mcp_authentik.config import AuthentikConfig
from mcp_authentik.discovery import DiscoveryResolver
from mcp_authentik.exceptions import DiscoveryError, TokenExchangeError, TransportError
from mcp_authentik.models import TokenResult
from mcp_authentik.transport import fetch_json
from mcp_authentik.utils.logger import logger

TokenTypeHint = Literal["access_token", "refresh_token"]


class TokenExchanger:
    """
    Exchanges authorization codes and refresh tokens, and revokes tokens.

    Nothing is cached: every call goes to the provider and ownership of the
    returned tokens passes to the caller.
    """

    def __init__(self, config: AuthentikConfig, discovery: DiscoveryResolver, client: httpx.AsyncClient) -> None:
        self.config = config
        self.discovery = discovery
        self.client = client

    def _client_credentials(self) -> dict[str, str]:
        """client_id always; client_secret only for confidential clients."""
        credentials = {"client_id": self.config.client_id}
        if self.config.client_secret is not None and self.config.client_secret.get_secret_value():
            credentials["client_secret"] = self.config.client_secret.get_secret_value()
        return credentials

    async def _request_tokens(self, form: dict[str, str], action: str) -> TokenResult:
        document = await self.discovery.resolve()
        data = {**form, **self._client_credentials()}

        try:
            response = await fetch_json(self.client, "POST", document.token_endpoint, data=data)
        except TransportError as e:
            logger.error(f"Failed to {action}: {e}")
            raise TokenExchangeError(f"Failed to {action}") from e

        if not response.is_success:
            error_code = response.oauth_error or "unknown_error"
            logger.warning(f"Token endpoint rejected request to {action}: status {response.status_code} ({error_code})")
            raise TokenExchangeError(f"Failed to {action}: {error_code}")

        if not isinstance(response.body, dict) or not response.body.get("access_token"):
            raise TokenExchangeError(f"Failed to {action}: response did not contain an access_token")

        try:
            return TokenResult(**response.body)
        except ValidationError as e:
            raise TokenExchangeError(f"Failed to {action}: malformed token response") from e

    async def exchange_code(
        self, code: str, state: str | None = None, redirect_uri: str | None = None
    ) -> TokenResult:
        """
        Exchanges an authorization code for tokens.

        Args:
            code: The authorization code from the callback.
            state: The callback state. State verification is the session layer's job;
                it is accepted here only for logging correlation.
            redirect_uri: Must match the redirect URI used to start the flow.
                Defaults to the configured redirect URI.

        Returns:
            TokenResult: The issued tokens.

        Raises:
            DiscoveryError: If the discovery document cannot be resolved.
            TokenExchangeError: If the exchange is rejected or the response is malformed.
        """
        if state:
            logger.debug("Exchanging authorization code for callback with state")
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.config.redirect_uri or "",
        }
        return await self._request_tokens(form, "exchange authorization code")

    async def refresh(self, refresh_token: str) -> TokenResult:
        """
        Exchanges a refresh token for a new access token.

        Raises:
            DiscoveryError: If the discovery document cannot be resolved.
            TokenExchangeError: If the refresh is rejected or the response is malformed.
        """
        form = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        return await self._request_tokens(form, "refresh access token")

    async def revoke(self, token: str, token_type_hint: TokenTypeHint = "access_token") -> None:
        """
        Revokes a token, best effort. Never raises: the caller cannot act on a failed revocation.
        """
        try:
            document = await self.discovery.resolve()
        except DiscoveryError as e:
            logger.error(f"Failed to revoke token: {e}")
            return

        if not document.revocation_endpoint:
            logger.warning("Authentik does not support token revocation")
            return

        data = {"token": token, "token_type_hint": token_type_hint, **self._client_credentials()}

        try:
            response = await fetch_json(self.client, "POST", document.revocation_endpoint, data=data)
        except TransportError as e:
            logger.error(f"Failed to revoke token: {e}")
            return

        if not response.is_success:
            logger.error(f"Failed to revoke token: status {response.status_code}")
