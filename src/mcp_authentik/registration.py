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
RegistrationHandler component for OAuth 2.0 Dynamic Client Registration (RFC 7591).
"""

import time
from collections.abc import Callable

from mcp_authentik.config import AuthentikConfig
from mcp_authentik.exceptions import RegistrationNotConfiguredError, RegistrationNotImplementedError
from mcp_authentik.models import ClientRegistrationRequest, ClientRegistrationResponse
from mcp_authentik.utils.logger import logger

# Claude.ai registers under this name and shares the pre-provisioned Authentik client
PREPROVISIONED_CLIENT_NAME = "claudeai"


class RegistrationHandler:
    """
    Serves dynamic client registration requests.

    The pre-provisioned client is answered locally with the adapter's own client
    ID. Registering any other client requires Authentik's management API, which
    is not implemented.
    """

    def __init__(self, config: AuthentikConfig, clock: Callable[[], float] = time.time) -> None:
        self.config = config
        self._clock = clock

    def register(self, request: ClientRegistrationRequest) -> ClientRegistrationResponse:
        """
        Args:
            request: The registration request.

        Returns:
            ClientRegistrationResponse: The issued client information.

        Raises:
            RegistrationNotConfiguredError: If no registration API token is configured.
            RegistrationNotImplementedError: For any client other than the pre-provisioned one.
        """
        if request.client_name == PREPROVISIONED_CLIENT_NAME:
            logger.info("Returning pre-configured client for Claude.ai")
            registration_uri = (
                f"{request.redirect_uris[0]}/register/{self.config.client_id}" if request.redirect_uris else None
            )
            return ClientRegistrationResponse(
                client_id=self.config.client_id,
                client_secret="",
                client_name=request.client_name,
                registration_access_token="not-used",
                registration_client_uri=registration_uri,
                client_id_issued_at=int(self._clock()),
                client_secret_expires_at=0,
                redirect_uris=list(request.redirect_uris),
                token_endpoint_auth_method="client_secret_post",
                grant_types=["authorization_code", "refresh_token"],
                response_types=["code"],
                scope=" ".join(self.config.scopes),
            )

        if self.config.registration_api_token is None:
            raise RegistrationNotConfiguredError("Dynamic registration requires API token configuration")

        # TODO: register the client through Authentik's /api/v3/providers/oauth2/ endpoint
        raise RegistrationNotImplementedError(
            f"Dynamic registration not yet implemented for client '{request.client_name or 'unnamed'}'"
        )
