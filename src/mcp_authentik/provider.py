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
AuthentikAuth component for orchestrating authentication and authorization against Authentik.
"""

import re
from collections.abc import Callable, MutableMapping
from typing import Any

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from pydantic import ValidationError
from starlette.requests import HTTPConnection

from mcp_authentik.async_context import set_current_identity
from mcp_authentik.authorization import AuthorizationUrlBuilder
from mcp_authentik.config import AuthentikConfig
from mcp_authentik.discovery import DiscoveryResolver
from mcp_authentik.exceptions import VerificationError
from mcp_authentik.identity_mapper import IdentityVerifier
from mcp_authentik.models import (
    AuthProfile,
    ClientRegistrationRequest,
    ClientRegistrationResponse,
    Identity,
    OAuthDiscovery,
    ProtectedResourceMetadata,
    TokenResult,
)
from mcp_authentik.registration import RegistrationHandler
from mcp_authentik.token_exchange import TokenExchanger, TokenTypeHint
from mcp_authentik.utils.logger import logger

SESSION_USER_KEY = "authentik_user"
SESSION_STATE_KEY = "authentik_state"

SessionAccessor = Callable[[HTTPConnection], MutableMapping[str, Any] | None]

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)$", re.IGNORECASE)


def default_session_accessor(connection: HTTPConnection) -> MutableMapping[str, Any] | None:
    """
    Returns the Starlette session of the request, or None when no SessionMiddleware is installed.
    """
    if "session" not in connection.scope:
        return None
    return connection.session


class AuthentikAuth:
    """
    OAuth provider adapter for Authentik (The Core).
    Handles resources via async context manager.
    """

    def __init__(
        self,
        config: AuthentikConfig,
        client: httpx.AsyncClient | None = None,
        session_accessor: SessionAccessor = default_session_accessor,
    ) -> None:
        """
        Initialize the AuthentikAuth adapter.

        Args:
            config: The configuration object.
            client: External async client (optional). If not provided, one is created
                with the configured timeout and closed by `aclose()`.
            session_accessor: Returns the session mapping of a request.
        """
        self.config = config
        self.session_accessor = session_accessor
        self._internal_client = client is None

        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout)
            # Instrument the client for distributed tracing
            HTTPXClientInstrumentor().instrument_client(self._client)

        self.discovery = DiscoveryResolver(self.config.discovery_url, self._client)
        self.url_builder = AuthorizationUrlBuilder(self.config, self.discovery)
        self.token_exchanger = TokenExchanger(self.config, self.discovery, self._client)
        self.verifier = IdentityVerifier(self.config, self.discovery, self._client)
        self.registration = RegistrationHandler(self.config)
        self._initialized = False

    async def __aenter__(self) -> "AuthentikAuth":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Resolves the discovery document so the login routes can serve requests.
        Until this succeeds the routes answer 503.

        Raises:
            DiscoveryError: If the discovery document cannot be resolved.
        """
        if self._initialized:
            return
        await self.discovery.resolve()
        self._initialized = True
        logger.info(f"Authentik auth initialized for application '{self.config.application_slug}'")

    async def get_auth_url(self, state: str | None = None, redirect_uri: str | None = None) -> str:
        """Returns the URL that starts the Authentik login flow."""
        return await self.url_builder.build(state=state, redirect_uri=redirect_uri)

    async def handle_callback(
        self, code: str, state: str | None = None, redirect_uri: str | None = None
    ) -> TokenResult:
        """Exchanges the authorization code of a callback for tokens."""
        return await self.token_exchanger.exchange_code(code, state=state, redirect_uri=redirect_uri)

    async def verify_token(self, token: str) -> Identity | None:
        """
        Verifies an access token against the userinfo endpoint.

        Returns:
            Identity | None: None for invalid tokens and for users outside the allowed groups.
        """
        return await self.verifier.verify_token(token)

    async def refresh_token(self, refresh_token: str) -> TokenResult:
        return await self.token_exchanger.refresh(refresh_token)

    async def revoke_token(self, token: str, token_type_hint: TokenTypeHint = "access_token") -> None:
        """Revokes a token if Authentik supports it. Never raises."""
        await self.token_exchanger.revoke(token, token_type_hint)

    async def login_with_code(
        self, code: str, state: str | None = None, redirect_uri: str | None = None
    ) -> tuple[TokenResult, Identity]:
        """
        Completes the interactive login: code exchange, userinfo lookup and group policy.

        Returns:
            The issued tokens and the resolved identity.

        Raises:
            DiscoveryError: If the discovery document cannot be resolved.
            TokenExchangeError: If the code is rejected.
            VerificationError: If the freshly issued token cannot be resolved to a profile.
            InvalidProfileError: If the profile lacks an id or username.
            AccessDeniedError: If the user is not in an allowed group.
        """
        tokens = await self.handle_callback(code, state=state, redirect_uri=redirect_uri)
        userinfo = await self.verifier.fetch_userinfo(tokens.access_token)
        if userinfo is None:
            raise VerificationError("Authentik rejected the access token it just issued")

        identity = self.verifier.from_auth_callback(AuthProfile(**userinfo))
        return tokens, identity

    def get_user(self, connection: HTTPConnection) -> Identity | None:
        """Returns the identity stored in the request's session, if any."""
        session = self.session_accessor(connection)
        if not session:
            return None

        stored = session.get(SESSION_USER_KEY)
        if not stored:
            return None

        try:
            return Identity.model_validate(stored)
        except ValidationError:
            logger.warning("Discarding malformed session identity")
            session.pop(SESSION_USER_KEY, None)
            return None

    async def authenticate(self, connection: HTTPConnection) -> Identity | None:
        """
        Authenticates a request by bearer token, then by session.

        The resolved identity is also published to the async context.

        Raises:
            DiscoveryError: If a bearer token is present and discovery fails.
            VerificationError: If a bearer token is present and userinfo fails.
        """
        identity: Identity | None = None

        auth_header = connection.headers.get("Authorization")
        match = _BEARER_RE.match(auth_header) if auth_header else None
        if match:
            identity = await self.verify_token(match.group(1))
        else:
            identity = self.get_user(connection)

        set_current_identity(identity)
        return identity

    def get_discovery_metadata(self, base_url: str) -> OAuthDiscovery:
        """OAuth 2.0 Authorization Server Metadata (RFC 8414) for this provider."""
        base_url = base_url.rstrip("/")
        return OAuthDiscovery(
            issuer=self.config.issuer,
            authorization_endpoint=self.config.authorize_url,
            token_endpoint=self.config.token_url,
            userinfo_endpoint=self.config.userinfo_url,
            jwks_uri=self.config.jwks_url,
            registration_endpoint=(
                f"{base_url}/application/o/register/" if self.supports_dynamic_registration() else None
            ),
            scopes_supported=["openid", "profile", "email"],
            response_types_supported=["code"],
            grant_types_supported=["authorization_code", "refresh_token"],
            subject_types_supported=["public"],
            id_token_signing_alg_values_supported=["RS256"],
            token_endpoint_auth_methods_supported=["client_secret_basic", "client_secret_post", "none"],
            code_challenge_methods_supported=["S256", "plain"],
        )

    def get_protected_resource_metadata(self, base_url: str) -> ProtectedResourceMetadata:
        """OAuth 2.0 Protected Resource Metadata (RFC 9728) for the server at `base_url`."""
        return ProtectedResourceMetadata(resource=base_url, authorization_servers=[self.config.issuer])

    def supports_dynamic_registration(self) -> bool:
        # Claude.ai always gets the pre-configured client; other clients need the API token
        return True

    async def register_client(self, request: ClientRegistrationRequest) -> ClientRegistrationResponse:
        """
        Raises:
            RegistrationNotConfiguredError: If no registration API token is configured.
            RegistrationNotImplementedError: For any client other than the pre-provisioned one.
        """
        return self.registration.register(request)


def create_authentik_auth(config: AuthentikConfig, client: httpx.AsyncClient | None = None) -> AuthentikAuth:
    """Utility function to create Authentik auth quickly."""
    return AuthentikAuth(config, client=client)
