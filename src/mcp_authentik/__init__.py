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
Authentik OAuth/OIDC provider adapter and a thin MCP server wrapper.
"""

__version__ = "0.1.0"

from .async_context import get_current_identity
from .config import AuthentikConfig
from .exceptions import (
    AccessDeniedError,
    DiscoveryError,
    InvalidProfileError,
    MCPAuthentikError,
    RegistrationNotConfiguredError,
    RegistrationNotImplementedError,
    TokenExchangeError,
    VerificationError,
)
from .models import (
    AuthProfile,
    ClientRegistrationRequest,
    ClientRegistrationResponse,
    Identity,
    OAuthDiscovery,
    ProtectedResourceMetadata,
    TokenResult,
    UserInfoClaims,
)
from .provider import AuthentikAuth, create_authentik_auth
from .server import MCPServer, Transport

__all__ = [
    "AccessDeniedError",
    "AuthProfile",
    "AuthentikAuth",
    "AuthentikConfig",
    "ClientRegistrationRequest",
    "ClientRegistrationResponse",
    "DiscoveryError",
    "Identity",
    "InvalidProfileError",
    "MCPAuthentikError",
    "MCPServer",
    "OAuthDiscovery",
    "ProtectedResourceMetadata",
    "RegistrationNotConfiguredError",
    "RegistrationNotImplementedError",
    "TokenExchangeError",
    "TokenResult",
    "Transport",
    "UserInfoClaims",
    "VerificationError",
    "create_authentik_auth",
    "get_current_identity",
]
