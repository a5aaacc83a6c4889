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
Authorization URL builder for the authorization-code flow.
"""

from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from mcp_authentik.config import AuthentikConfig
from mcp_authentik.discovery import DiscoveryResolver
from mcp_authentik.models_internal import DiscoveryDocument


def build_authorization_url(
    document: DiscoveryDocument,
    config: AuthentikConfig,
    state: str | None = None,
    redirect_uri: str | None = None,
) -> str:
    """
    Builds the login redirect URL. Pure: equal inputs give byte-identical output.

    No PKCE challenge is generated here. Callers wanting PKCE pass
    `code_challenge`/`code_challenge_method` through `extra_authorize_params`.
    """
    return prepare_grant_uri(
        document.authorization_endpoint,
        client_id=config.client_id,
        response_type="code",
        redirect_uri=redirect_uri or config.redirect_uri,
        scope=" ".join(config.scopes),
        state=state,
        **config.extra_authorize_params,
    )


class AuthorizationUrlBuilder:
    """Builds authorization URLs against the resolved authorization endpoint."""

    def __init__(self, config: AuthentikConfig, discovery: DiscoveryResolver) -> None:
        self.config = config
        self.discovery = discovery

    async def build(self, state: str | None = None, redirect_uri: str | None = None) -> str:
        """
        Args:
            state: Opaque value echoed back on the callback.
            redirect_uri: Overrides the configured redirect URI.

        Returns:
            str: The authorization URL.

        Raises:
            DiscoveryError: If the discovery document cannot be resolved.
        """
        document = await self.discovery.resolve()
        return build_authorization_url(document, self.config, state=state, redirect_uri=redirect_uri)
