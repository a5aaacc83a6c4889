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
Custom exceptions for the mcp-authentik package.
"""


class MCPAuthentikError(Exception):
    """Base exception for all mcp-authentik errors."""


class TransportError(MCPAuthentikError):
    """Raised when an HTTP request fails before a response is received."""


class OversizedResponseError(TransportError):
    """Raised when an HTTP response is too large."""


class DiscoveryError(MCPAuthentikError):
    """Raised when the provider's OpenID configuration cannot be retrieved."""


class TokenExchangeError(MCPAuthentikError):
    """Raised when an authorization code or refresh token exchange is rejected."""


class VerificationError(MCPAuthentikError):
    """
    Raised when the userinfo call fails for a reason other than an invalid token.
    An invalid token is not an error: `verify_token` returns None instead.
    """


class InvalidProfileError(MCPAuthentikError):
    """Raised when a user id or login name cannot be resolved from a profile."""


class AccessDeniedError(MCPAuthentikError):
    """Raised when the user is not a member of any allowed group."""


class RegistrationNotConfiguredError(MCPAuthentikError):
    """Raised when dynamic registration is requested without a registration API token."""


class RegistrationNotImplementedError(MCPAuthentikError, NotImplementedError):
    """Raised for dynamic registration of clients other than the pre-provisioned one."""


class ServerLifecycleError(MCPAuthentikError):
    """Raised when the MCP server is used in the wrong lifecycle state."""
