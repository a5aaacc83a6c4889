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
Thin wrapper around the MCP SDK's FastMCP server: registration, request context and transports.
"""

from collections.abc import Callable, Mapping
from typing import Any, Protocol

from mcp.server.fastmcp import FastMCP

from mcp_authentik.exceptions import ServerLifecycleError
from mcp_authentik.utils.logger import logger


class Transport(Protocol):
    """A transport serving an MCPServer (stdio, streamable HTTP, ...)."""

    async def start(self, server: "MCPServer") -> None: ...

    async def stop(self) -> None: ...


class MCPServer:
    """
    MCP server facade.

    Attributes:
        name (str): Server name advertised to clients.
        version (str): Server version.
    """

    def __init__(self, name: str, version: str, instructions: str | None = None) -> None:
        self.name = name
        self.version = version
        self._sdk = FastMCP(name, instructions=instructions)
        self._context: dict[str, Any] = {}
        self._transports: list[Transport] = []
        self._started = False

    @property
    def sdk(self) -> FastMCP:
        """The underlying SDK server, for transports."""
        return self._sdk

    def register_tool(
        self,
        name: str,
        handler: Callable[..., Any],
        description: str | None = None,
    ) -> None:
        """
        Registers a tool. The input schema is derived from the handler's signature.
        """
        self._sdk.add_tool(handler, name=name, description=description)
        logger.debug(f"Registered tool '{name}'")

    def register_resource(
        self,
        name: str,
        uri: str,
        handler: Callable[..., Any],
        description: str | None = None,
        mime_type: str | None = None,
    ) -> None:
        self._sdk.resource(uri, name=name, description=description, mime_type=mime_type)(handler)
        logger.debug(f"Registered resource '{name}' at {uri}")

    def register_prompt(self, name: str, handler: Callable[..., Any], description: str | None = None) -> None:
        self._sdk.prompt(name=name, description=description)(handler)
        logger.debug(f"Registered prompt '{name}'")

    def set_context(self, context: Mapping[str, Any]) -> None:
        """Merges `context` into the current context; later keys win."""
        self._context.update(context)

    def get_context(self) -> dict[str, Any]:
        return dict(self._context)

    def use_transport(self, transport: Transport) -> None:
        """
        Raises:
            ServerLifecycleError: If the server has already started.
        """
        if self._started:
            raise ServerLifecycleError("Cannot add transport after server has started")
        self._transports.append(transport)

    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """
        Starts every configured transport, in registration order.

        Raises:
            ServerLifecycleError: If no transport is configured.
        """
        if not self._transports:
            raise ServerLifecycleError("No transports configured. Use use_transport() to add transports.")

        for transport in self._transports:
            await transport.start(self)
        self._started = True
        logger.info(f"MCP server '{self.name}' v{self.version} started with {len(self._transports)} transport(s)")

    async def stop(self) -> None:
        for transport in self._transports:
            await transport.stop()
        self._started = False
        logger.info(f"MCP server '{self.name}' stopped")
