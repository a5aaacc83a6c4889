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
Data models for the mcp-authentik package.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """
    Normalized user identity resolved from Authentik.

    This model is frozen (immutable) to ensure integrity as it passes through the system.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "id": "3f1c0e2a9b",
                "username": "alice",
                "email": "alice@example.com",
                "email_verified": True,
                "groups": ["mcp-users"],
            }
        },
    )

    id: str = Field(..., min_length=1, description="Stable external identifier (the 'sub' claim).")
    username: str = Field(..., min_length=1, description="Display/login name.")
    email: str = Field(default="", description="The user's email address. May be empty.")
    email_verified: bool = False
    groups: list[str] = Field(default_factory=list, description="Authentik group memberships.")
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    claims: dict[str, Any] = Field(
        default_factory=dict, description="Remaining provider claims not mapped to a field above."
    )

    def __repr__(self) -> str:
        # PII fields MUST be redacted in __repr__
        return (
            f"Identity(id='<REDACTED>', "
            f"username='<REDACTED>', "
            f"email='<REDACTED>', "
            f"groups={self.groups!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class UserInfoClaims(BaseModel):
    """
    Userinfo endpoint JSON, as returned for a bearer token.
    The subject claim is authoritative.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    identifier_fields: ClassVar[tuple[str, ...]] = ("sub", "id")


class AuthProfile(BaseModel):
    """
    Profile captured during the interactive login flow.

    Profiles may carry an explicit `id`, a `displayName` and an `emails` list
    in addition to (or instead of) the raw OIDC claims.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    identifier_fields: ClassVar[tuple[str, ...]] = ("id", "sub")


class TokenResult(BaseModel):
    """
    Tokens issued by the token endpoint. Never persisted by this package.

    Attributes:
        access_token (str): The access token issued by the authorization server.
        refresh_token (str | None): The refresh token, if issued.
        token_type (str): The type of the token (e.g. "Bearer").
        expires_in (int | None): The lifetime in seconds of the access token.
        scope (str | None): The granted scopes, space-delimited.
        id_token (str | None): The ID token, if issued.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    id_token: str | None = None


class ClientRegistrationRequest(BaseModel):
    """RFC 7591 client registration request."""

    model_config = ConfigDict(extra="allow")

    client_name: str | None = None
    redirect_uris: list[str] = Field(default_factory=list)
    grant_types: list[str] | None = None
    response_types: list[str] | None = None
    token_endpoint_auth_method: str | None = None
    scope: str | None = None


class ClientRegistrationResponse(BaseModel):
    """RFC 7591 client information response."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str = ""
    client_name: str | None = None
    registration_access_token: str | None = None
    registration_client_uri: str | None = None
    client_id_issued_at: int
    client_secret_expires_at: int = 0
    redirect_uris: list[str] = Field(default_factory=list)
    token_endpoint_auth_method: str
    grant_types: list[str]
    response_types: list[str]
    scope: str


class OAuthDiscovery(BaseModel):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""

    model_config = ConfigDict(frozen=True)

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    jwks_uri: str
    registration_endpoint: str | None = None
    scopes_supported: list[str]
    response_types_supported: list[str]
    grant_types_supported: list[str]
    subject_types_supported: list[str]
    id_token_signing_alg_values_supported: list[str]
    token_endpoint_auth_methods_supported: list[str]
    code_challenge_methods_supported: list[str]


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""

    model_config = ConfigDict(frozen=True)

    resource: str
    authorization_servers: list[str]
