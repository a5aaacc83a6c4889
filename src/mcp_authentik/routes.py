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
HTTP routes for the interactive Authentik login flow and OAuth metadata.

The routes attach to any FastAPI `APIRouter`. Session state is read through the
adapter's `session_accessor`, so the application must install a session
middleware (see `install_session_middleware`).
"""

import json
import secrets
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import ValidationError
from starlette.middleware.sessions import SessionMiddleware

from mcp_authentik.config import AuthentikConfig
from mcp_authentik.exceptions import (
    AccessDeniedError,
    DiscoveryError,
    InvalidProfileError,
    MCPAuthentikError,
    RegistrationNotConfiguredError,
    RegistrationNotImplementedError,
    TokenExchangeError,
    VerificationError,
)
from mcp_authentik.models import ClientRegistrationRequest, Identity
from mcp_authentik.provider import SESSION_STATE_KEY, SESSION_USER_KEY, AuthentikAuth
from mcp_authentik.utils.logger import logger

SESSION_MAX_AGE = 24 * 60 * 60
ERROR_PATH = "/auth/error"
# Keeps the signed session cookie well under the 4 KB browser limit
SESSION_IDENTITY_MAX_BYTES = 2048


def _not_ready() -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": "Auth system initializing"})


def _session_unavailable() -> JSONResponse:
    logger.error("Login routes require a session middleware")
    return JSONResponse(status_code=500, content={"error": "Session unavailable"})


def session_identity(identity: Identity) -> dict[str, Any]:
    """
    Returns the part of an identity kept in the session cookie.

    The cookie is signed, not encrypted, so only the id, username and groups are
    stored. Groups are dropped from the end while the serialized payload exceeds
    `SESSION_IDENTITY_MAX_BYTES`; group policy has already been applied at login.
    """
    data = identity.model_dump(mode="json", include={"id", "username", "groups"})
    groups: list[str] = data["groups"]

    while groups and len(json.dumps(data)) > SESSION_IDENTITY_MAX_BYTES:
        groups.pop()

    if len(groups) < len(identity.groups):
        logger.warning(f"Session keeps {len(groups)} of {len(identity.groups)} groups")
    return data


def install_session_middleware(app: FastAPI, config: AuthentikConfig) -> None:
    """
    Installs Starlette's signed-cookie session middleware with the configured secret.
    Cookies are http-only, expire after 24 hours, and are HTTPS-only when `secure_cookies` is set.
    """
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.session_secret.get_secret_value(),
        max_age=SESSION_MAX_AGE,
        same_site="lax",
        https_only=config.secure_cookies,
    )


def setup_routes(router: APIRouter, auth: AuthentikAuth) -> None:
    """
    Attaches the login, callback, logout, current-user and error routes.

    Args:
        router: The router to extend.
        auth: The Authentik adapter.
    """

    def _redirect_uri(request: Request) -> str:
        return auth.config.redirect_uri or str(request.url_for("authentik_callback"))

    @router.get("/auth/login", name="authentik_login")
    async def login(request: Request) -> Response:
        if not auth.initialized:
            return _not_ready()

        session = auth.session_accessor(request)
        if session is None:
            return _session_unavailable()

        state = secrets.token_urlsafe(32)
        session[SESSION_STATE_KEY] = state

        try:
            url = await auth.get_auth_url(state=state, redirect_uri=_redirect_uri(request))
        except DiscoveryError:
            return JSONResponse(status_code=500, content={"error": "Authentication provider unavailable"})

        return RedirectResponse(url=url, status_code=302)

    @router.get("/auth/callback", name="authentik_callback")
    async def callback(request: Request) -> Response:
        if not auth.initialized:
            return _not_ready()

        session = auth.session_accessor(request)
        if session is None:
            return _session_unavailable()

        expected_state = session.pop(SESSION_STATE_KEY, None)
        code = request.query_params.get("code")
        state = request.query_params.get("state")

        if request.query_params.get("error"):
            logger.warning(f"Authentik returned error '{request.query_params['error']}' on callback")
            return RedirectResponse(url=ERROR_PATH, status_code=302)

        if not code or not expected_state or not secrets.compare_digest(expected_state.encode(), (state or "").encode()):
            logger.warning("Rejected callback with missing code or mismatched state")
            return RedirectResponse(url=ERROR_PATH, status_code=302)

        try:
            _, identity = await auth.login_with_code(code, state=state, redirect_uri=_redirect_uri(request))
        except (DiscoveryError, TokenExchangeError, VerificationError, InvalidProfileError, AccessDeniedError) as e:
            logger.warning(f"Login failed: {e.__class__.__name__}")
            return RedirectResponse(url=ERROR_PATH, status_code=302)

        session[SESSION_USER_KEY] = session_identity(identity)
        return RedirectResponse(url="/", status_code=302)

    @router.post("/auth/logout", name="authentik_logout")
    async def logout(request: Request) -> JSONResponse:
        session = auth.session_accessor(request)
        if session is not None:
            session.pop(SESSION_USER_KEY, None)
            session.pop(SESSION_STATE_KEY, None)
        return JSONResponse(content={"success": True})

    @router.get("/auth/user", name="authentik_user")
    async def current_user(request: Request) -> JSONResponse:
        user = auth.get_user(request)
        if user is None:
            return JSONResponse(status_code=401, content={"error": "Not authenticated"})
        return JSONResponse(content={"user": user.model_dump(mode="json")})

    @router.get(ERROR_PATH, name="authentik_error")
    async def auth_error() -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={
                "error": "Authentication failed",
                "message": "Please check your credentials and try again",
            },
        )


def setup_metadata_routes(router: APIRouter, auth: AuthentikAuth, base_url: str) -> None:
    """
    Attaches the OAuth discovery endpoints (RFC 8414, RFC 9728) and dynamic
    client registration (RFC 7591) for the server published at `base_url`.
    """

    @router.get("/.well-known/oauth-authorization-server")
    async def authorization_server_metadata() -> JSONResponse:
        metadata = auth.get_discovery_metadata(base_url)
        return JSONResponse(content=metadata.model_dump(exclude_none=True))

    @router.get("/.well-known/oauth-protected-resource")
    async def protected_resource_metadata() -> JSONResponse:
        return JSONResponse(content=auth.get_protected_resource_metadata(base_url).model_dump())

    @router.post("/application/o/register/")
    async def register(request: Request) -> JSONResponse:
        headers = {"Cache-Control": "no-store"}
        try:
            registration = ClientRegistrationRequest.model_validate(await request.json())
        except (ValueError, ValidationError):
            return JSONResponse(
                status_code=400,
                content={"error": "invalid_client_metadata", "error_description": "Malformed registration request"},
                headers=headers,
            )

        try:
            response = await auth.register_client(registration)
        except RegistrationNotConfiguredError:
            return JSONResponse(
                status_code=503,
                content={"error": "registration_unavailable", "error_description": "Dynamic registration disabled"},
                headers=headers,
            )
        except RegistrationNotImplementedError:
            return JSONResponse(
                status_code=501,
                content={"error": "registration_unavailable", "error_description": "Client not supported"},
                headers=headers,
            )
        except MCPAuthentikError:
            logger.exception("Client registration failed")
            return JSONResponse(status_code=500, content={"error": "server_error"}, headers=headers)

        return JSONResponse(status_code=201, content=response.model_dump(), headers=headers)
