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
IdentityMapper and IdentityVerifier components for mapping Authentik payloads to Identity.
"""

from collections.abc import Iterable, Mapping
from typing import Any

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from mcp_authentik.config import AuthentikConfig
from mcp_authentik.discovery import DiscoveryResolver
from mcp_authentik.exceptions import (
    AccessDeniedError,
    InvalidProfileError,
    TransportError,
    VerificationError,
)
from mcp_authentik.models import AuthProfile, Identity, UserInfoClaims
from mcp_authentik.transport import fetch_json
from mcp_authentik.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

# Aliases consulted after a variant's primary identifier fields
IDENTIFIER_ALIASES = ("user_id", "pk")
# Login name falls back to the email address after these
USERNAME_FIELDS = ("username", "preferred_username", "nickname", "name")
GROUP_FIELDS = ("groups", "roles")

# Keys consumed by the mapping; everything else is kept in Identity.claims
_MAPPED_KEYS = frozenset(
    {
        "sub",
        "id",
        *IDENTIFIER_ALIASES,
        *USERNAME_FIELDS,
        *GROUP_FIELDS,
        "email",
        "emails",
        "displayName",
        "email_verified",
        "given_name",
        "family_name",
    }
)


def _scalar(value: Any) -> str | None:
    """Coerces a scalar claim to a non-empty string; None for missing, empty or structured values."""
    if value is None or isinstance(value, (Mapping, list, tuple, set, bool)):
        return None
    text = str(value)
    return text if text.strip() else None


def _first(fields: Mapping[str, Any], keys: Iterable[str]) -> str | None:
    for key in keys:
        value = _scalar(fields.get(key))
        if value is not None:
            return value
    return None


def _resolve_email(fields: Mapping[str, Any]) -> str:
    email = _scalar(fields.get("email"))
    if email:
        return email

    emails = fields.get("emails")
    if isinstance(emails, list) and emails:
        first = emails[0]
        if isinstance(first, Mapping):
            return _scalar(first.get("value")) or ""
        return _scalar(first) or ""
    return ""


def _resolve_groups(fields: Mapping[str, Any]) -> list[str]:
    for key in GROUP_FIELDS:
        raw = fields.get(key)
        if not raw:
            continue
        items = [raw] if isinstance(raw, str) else raw
        if not isinstance(items, (list, tuple, set)):
            continue
        # Ordered de-duplication
        return list(dict.fromkeys(str(item) for item in items if item is not None))
    return []


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def normalize_identity(payload: UserInfoClaims | AuthProfile) -> Identity:
    """
    Maps either input variant to an Identity through the fixed fallback chains.

    Args:
        payload: Userinfo claims or a login-flow profile.

    Returns:
        Identity: The normalized identity. Group policy is NOT applied here.

    Raises:
        InvalidProfileError: If the identifier or login name cannot be resolved.
    """
    fields: dict[str, Any] = payload.model_dump()
    email = _resolve_email(fields)

    user_id = _first(fields, (*type(payload).identifier_fields, *IDENTIFIER_ALIASES))
    username = _first(fields, USERNAME_FIELDS) or (email or None)

    if not user_id or not username:
        raise InvalidProfileError("Invalid profile data: user id or username missing")

    display_name = _scalar(fields.get("name")) or _scalar(fields.get("displayName"))

    return Identity(
        id=user_id,
        username=username,
        email=email,
        email_verified=_as_bool(fields.get("email_verified", False)),
        groups=_resolve_groups(fields),
        name=display_name,
        given_name=_scalar(fields.get("given_name")),
        family_name=_scalar(fields.get("family_name")),
        claims={k: v for k, v in fields.items() if k not in _MAPPED_KEYS},
    )


def has_allowed_group(groups: Iterable[str], allowed_groups: Iterable[str]) -> bool:
    """True when no allow-list is configured or the user shares at least one group with it."""
    allowed = set(allowed_groups)
    if not allowed:
        return True
    return not allowed.isdisjoint(groups)


class IdentityVerifier:
    """
    Resolves identities from access tokens (stateless API calls) and from
    login-flow profiles (interactive sessions), enforcing the group allow-list.
    """

    def __init__(self, config: AuthentikConfig, discovery: DiscoveryResolver, client: httpx.AsyncClient) -> None:
        self.config = config
        self.discovery = discovery
        self.client = client

    async def fetch_userinfo(self, access_token: str) -> dict[str, Any] | None:
        """
        Calls the userinfo endpoint with a bearer token.

        Returns:
            The userinfo JSON object, or None if the provider rejects the token (401).

        Raises:
            DiscoveryError: If the discovery document cannot be resolved.
            VerificationError: For any other failure.
        """
        document = await self.discovery.resolve()

        try:
            response = await fetch_json(
                self.client,
                "GET",
                document.userinfo_endpoint,
                headers={"Authorization": f"Bearer {access_token.strip()}"},
            )
        except TransportError as e:
            raise VerificationError("Failed to verify access token") from e

        if response.status_code == 401:
            return None

        if not response.is_success:
            logger.error(f"Userinfo endpoint returned status {response.status_code}")
            raise VerificationError(f"Failed to verify access token (status {response.status_code})")

        if not isinstance(response.body, dict):
            raise VerificationError("Failed to verify access token: userinfo response is not a JSON object")

        return response.body

    async def verify_token(self, access_token: str) -> Identity | None:
        """
        Resolves the identity behind an access token.

        Emits an OpenTelemetry span `verify_token`.

        Returns:
            Identity | None: None if the token is invalid or the user is not in an allowed group.

        Raises:
            DiscoveryError: If the discovery document cannot be resolved.
            VerificationError: If the userinfo call fails or its payload is unusable.
        """
        with tracer.start_as_current_span("verify_token") as span:
            userinfo = await self.fetch_userinfo(access_token)
            if userinfo is None:
                span.set_attribute("auth.outcome", "invalid_token")
                return None

            try:
                identity = normalize_identity(UserInfoClaims(**userinfo))
            except InvalidProfileError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise VerificationError("Failed to verify access token: userinfo lacks identity claims") from e

            user_hash = anonymize(identity.id, self.config.pii_salt)
            span.set_attribute("enduser.id", user_hash)

            if not has_allowed_group(identity.groups, self.config.allowed_groups):
                logger.warning(f"User {user_hash} not in allowed groups")
                span.set_attribute("auth.outcome", "group_denied")
                return None

            logger.info(f"Token verified for user {user_hash}")
            span.set_attribute("auth.outcome", "authenticated")
            span.set_status(Status(StatusCode.OK))
            return identity

    def from_auth_callback(self, profile: AuthProfile) -> Identity:
        """
        Resolves the identity of a user completing the interactive login.

        Raises:
            InvalidProfileError: If the identifier or login name cannot be resolved.
            AccessDeniedError: If the user is not in an allowed group.
        """
        identity = normalize_identity(profile)

        if not has_allowed_group(identity.groups, self.config.allowed_groups):
            logger.warning(f"User {anonymize(identity.id, self.config.pii_salt)} not in allowed groups")
            raise AccessDeniedError("User not in allowed groups")

        return identity
