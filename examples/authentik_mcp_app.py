import os
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

import uvicorn
from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from mcp_authentik import AuthentikAuth, AuthentikConfig, MCPServer, get_current_identity
from mcp_authentik.routes import install_session_middleware, setup_metadata_routes, setup_routes

PUBLIC_URL = os.getenv("MCP_PUBLIC_URL", "http://localhost:8000")


def whoami() -> str:
    """Returns the login name of the authenticated user."""
    identity = get_current_identity()
    return identity.username if identity else "anonymous"


def build_app() -> FastAPI:
    """
    Serves an MCP server behind Authentik login.
    Reads AUTHENTIK_URL, AUTHENTIK_CLIENT_ID, etc. from the environment.
    """
    config = AuthentikConfig()  # type: ignore[call-arg]
    auth = AuthentikAuth(config)

    server = MCPServer("authentik-demo", "0.1.0", instructions="Tools run as the logged-in Authentik user.")
    server.register_tool("whoami", whoami, description="Login name of the current user")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await auth.initialize()
        try:
            async with server.sdk.session_manager.run():
                yield
        finally:
            await auth.aclose()

    app = FastAPI(lifespan=lifespan)

    @app.middleware("http")
    async def require_identity(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path.startswith("/mcp") and await auth.authenticate(request) is None:
            return JSONResponse(status_code=401, content={"error": "Not authenticated"})
        return await call_next(request)

    # Added last so the session is populated before require_identity runs
    install_session_middleware(app, config)

    router = APIRouter()
    setup_routes(router, auth)
    setup_metadata_routes(router, auth, PUBLIC_URL)
    app.include_router(router)
    app.mount("/", server.sdk.streamable_http_app())
    return app


if __name__ == "__main__":
    uvicorn.run(build_app(), host="0.0.0.0", port=8000)
