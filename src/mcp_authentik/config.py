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
Configuration for the mcp-authentik package.
"""

from typing import Any

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCOPES = ["openid", "profile", "email"]

# Set by the authorization URL builder itself
RESERVED_AUTHORIZE_PARAMS = frozenset({"response_type", "client_id", "redirect_uri", "scope", "state"})


class AuthentikConfig(BaseSettings):
    """
    Configuration settings for the Authentik provider adapter.

    Attributes:
        url (str): Base URL of the Authentik instance (e.g. https://auth.example.com).
        client_id (str): The OAuth2 client ID of the Authentik application.
        client_secret (SecretStr | None): Client secret. Omit for public clients.
        scopes (list[str]): Requested scopes, in order.
        redirect_uri (str | None): Default redirect URI registered with Authentik.
        application_slug (str): Authentik application slug. Defaults to the client ID.
        allowed_groups (list[str]): If non-empty, users must belong to one of these groups.
        registration_api_token (SecretStr | None): API token enabling dynamic registration.
        session_secret (SecretStr): Secret used to sign session cookies.
        pii_salt (SecretStr): Salt for anonymizing user ids in logs/traces.
        http_timeout (float): Timeout in seconds for all provider network operations.
        secure_cookies (bool): Mark session cookies as HTTPS-only.
        extra_authorize_params (dict[str, str]): Extra query parameters for the authorization URL.
        unsafe_local_dev (bool): Allow plain HTTP provider URLs.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHENTIK_",
        case_sensitive=False,
        frozen=True,
    )

    url: str
    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr | None = None
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    redirect_uri: str | None = None
    application_slug: str
    allowed_groups: list[str] = Field(default_factory=list)
    registration_api_token: SecretStr | None = None
    session_secret: SecretStr = SecretStr("authentik-secret-change-me")
    pii_salt: SecretStr = SecretStr("mcp-authentik-unsafe-default-salt")
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for all IdP network operations.")
    secure_cookies: bool = False
    extra_authorize_params: dict[str, str] = Field(default_factory=dict)
    unsafe_local_dev: bool = False

    @model_validator(mode="before")
    @classmethod
    def default_application_slug(cls, data: Any) -> Any:
        """
        Authentik derives the application slug from the client ID unless told otherwise.
        """
        if isinstance(data, dict) and not data.get("application_slug") and data.get("client_id"):
            data = {**data, "application_slug": data["client_id"]}
        return data

    @field_validator("client_id")
    @classmethod
    def strip_client_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("client_id must not be blank")
        return v

    @field_validator("extra_authorize_params")
    @classmethod
    def reject_reserved_params(cls, v: dict[str, str]) -> dict[str, str]:
        reserved = sorted(RESERVED_AUTHORIZE_PARAMS.intersection(v))
        if reserved:
            raise ValueError(f"extra_authorize_params must not override {', '.join(reserved)}")
        return v

    @field_validator("url", mode="after")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        """
        Strips trailing slashes and defaults the scheme to HTTPS.

        Args:
            v: The base URL.

        Returns:
            The normalized base URL.
        """
        v = v.strip().rstrip("/")
        if "://" not in v:
            v = f"https://{v}"
        return v

    @model_validator(mode="after")
    def require_https(self) -> "AuthentikConfig":
        """
        Rejects plain HTTP provider URLs unless `unsafe_local_dev` is set.
        """
        if self.url.startswith("http://") and not self.unsafe_local_dev:
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return self

    @property
    def application_base(self) -> str:
        """Authentik's OAuth2 provider root."""
        return f"{self.url}/application/o"

    @property
    def issuer(self) -> str:
        return f"{self.application_base}/{self.application_slug}/"

    @property
    def discovery_url(self) -> str:
        return f"{self.application_base}/{self.application_slug}/.well-known/openid-configuration"

    @property
    def authorize_url(self) -> str:
        return f"{self.application_base}/authorize/"

    @property
    def token_url(self) -> str:
        return f"{self.application_base}/token/"

    @property
    def userinfo_url(self) -> str:
        return f"{self.application_base}/userinfo/"

    @property
    def jwks_url(self) -> str:
        return f"{self.application_base}/{self.application_slug}/jwks/"
