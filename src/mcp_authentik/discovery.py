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
Discovery resolver for fetching and memoizing the provider's OpenID configuration.
"""

import anyio
import httpx
from pydantic import ValidationError

from mcp_authentik.exceptions import DiscoveryError, TransportError
from mcp_authentik.models_internal import DiscoveryDocument
from mcp_authentik.transport import fetch_json
from mcp_authentik.utils.logger import logger


class DiscoveryResolver:
    """
    Fetches the OpenID configuration once and serves it from memory afterwards.

    Each instance owns its own cache slot, so several provider configurations
    can coexist in one process.

    Attributes:
        discovery_url (str): The OIDC discovery URL.
    """

    def __init__(self, discovery_url: str, client: httpx.AsyncClient) -> None:
        """
        Initialize the DiscoveryResolver.

        Args:
            discovery_url: The OIDC discovery URL
                (e.g., https://auth.example.com/application/o/my-app/.well-known/openid-configuration).
            client: The async HTTP client to use for requests.
        """
        self.discovery_url = discovery_url
        self.client = client
        self._document: DiscoveryDocument | None = None
        self._lock: anyio.Lock | None = None

    @property
    def cached(self) -> DiscoveryDocument | None:
        return self._document

    async def _fetch(self) -> DiscoveryDocument:
        """
        Fetches the discovery document. Failures are surfaced immediately, without retries.

        Raises:
            DiscoveryError: If the request fails, is rejected, or returns an unusable document.
        """
        try:
            response = await fetch_json(self.client, "GET", self.discovery_url)
        except TransportError as e:
            logger.error(f"Failed to fetch Authentik discovery document: {e}")
            raise DiscoveryError("Failed to fetch OAuth configuration from Authentik") from e

        if not response.is_success:
            logger.error(f"Authentik discovery returned status {response.status_code}")
            raise DiscoveryError(f"Failed to fetch OAuth configuration from Authentik (status {response.status_code})")

        if not isinstance(response.body, dict):
            raise DiscoveryError("Invalid OAuth configuration from Authentik: expected a JSON object")

        try:
            return DiscoveryDocument(**response.body)
        except ValidationError as e:
            raise DiscoveryError(f"Invalid OAuth configuration from Authentik: {e}") from e

    async def resolve(self) -> DiscoveryDocument:
        """
        Returns the discovery document, fetching it on first use.

        Returns:
            DiscoveryDocument: The provider's endpoints.

        Raises:
            DiscoveryError: If fetching fails. The cache stays empty in that case.
        """
        if self._document is not None:
            return self._document

        if self._lock is None:
            self._lock = anyio.Lock()

        async with self._lock:
            # Another task may have filled the slot while we waited
            if self._document is not None:
                return self._document

            document = await self._fetch()
            self._document = document
            logger.debug(f"Resolved discovery document from {self.discovery_url}")
            return document

    def invalidate(self) -> None:
        """Drops the cached document; the next `resolve()` fetches it again."""
        self._document = None
