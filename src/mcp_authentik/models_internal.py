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
Internal data models for the mcp-authentik package.
These are not exposed in the public API.
"""

from pydantic import BaseModel, ConfigDict, Field


class DiscoveryDocument(BaseModel):
    """
    OIDC Configuration from .well-known/openid-configuration.
    Endpoint URLs are kept as opaque strings.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    authorization_endpoint: str = Field(..., description="The authorization endpoint URL.")
    token_endpoint: str = Field(..., description="The token endpoint URL.")
    userinfo_endpoint: str = Field(..., description="The userinfo endpoint URL.")
    issuer: str | None = Field(default=None, description="The OIDC issuer URL.")
    jwks_uri: str | None = Field(default=None, description="The URL to the JWKS.")
    revocation_endpoint: str | None = Field(default=None, description="The token revocation endpoint URL.")
    end_session_endpoint: str | None = Field(default=None, description="The RP-initiated logout endpoint URL.")
