"""Pooled MCP connections keyed by server name.

This module provides the runtime that owns every session: it opens them on
first use, shares one in-flight attempt between concurrent callers, falls
back between transports, and closes them on request.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any, NoReturn, Optional, Union

from pydantic import BaseModel, Field

from .classifier import ClassifiedError, ErrorKind, classify_error
from .config import RuntimeSettings, ServerDefinition
from .errors import AuthenticationRequired, CallTimeout, EstablishmentFailed, UnknownServer
from .oauth import DisabledOAuthHook, OAuthHook
from .transports import (
    RuntimeLogger,
    Session,
    SessionFactory,
    SessionFactoryProtocol,
    TransportStrategy,
    select_strategies,
)


class ServerToolInfo(BaseModel):
    """A tool advertised by a server."""

    name: str = Field(..., description="Tool name")
    description: Optional[str] = Field(default=None, description="Tool description")
    input_schema: Optional[dict[str, Any]] = Field(default=None, description="JSON schema of the arguments")
    output_schema: Optional[dict[str, Any]] = Field(default=None, description="JSON schema of the result")


class MCPRuntime:
    """Pool of MCP sessions, at most one per configured server.

    Example:
        ```python
        runtime = MCPRuntime([
            ServerDefinition(
                name="filesystem",
                command=StdioCommand(
                    command="npx",
                    args=["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
                ),
            ),
        ])

        async with runtime:
            tools = await runtime.list_tools("filesystem")
            result = await runtime.call_tool(
                "filesystem", "read_file", {"path": "/tmp/test.txt"}, timeout=10
            )
        ```
    """

    def __init__(
        self,
        servers: Iterable[Union[ServerDefinition, Mapping[str, Any]]],
        settings: Optional[RuntimeSettings] = None,
        *,
        logger: Optional[RuntimeLogger] = None,
        oauth_hook: Optional[OAuthHook] = None,
        session_factory: Optional[SessionFactoryProtocol] = None,
    ):
        """Initialize the runtime.

        Args:
            servers: Server definitions, or mappings validated into them.
            settings: Timeouts, client identity and the base directory for
                relative stdio working directories.
            logger: Receives fallback, authentication and teardown notices.
                Defaults to this module's logger.
            oauth_hook: Consulted when a server requires authentication.
            session_factory: Opens sessions. Defaults to the MCP SDK backed
                ``SessionFactory``.

        Raises:
            ValueError: If two definitions share a name.
        """
        self._settings = settings or RuntimeSettings()
        self._logger: RuntimeLogger = logger if logger is not None else logging.getLogger(__name__)
        self._oauth_hook: OAuthHook = oauth_hook or DisabledOAuthHook()
        self._factory: SessionFactoryProtocol = session_factory or SessionFactory(self._settings, self._logger)
        self._configs: dict[str, ServerDefinition] = {}
        self._sessions: dict[str, Session] = {}
        self._pending: dict[str, asyncio.Task] = {}

        for server in servers:
            config = server if isinstance(server, ServerDefinition) else ServerDefinition.model_validate(server)
            if config.name in self._configs:
                raise ValueError(f"Server '{config.name}' already configured")
            self._configs[config.name] = config

    @property
    def settings(self) -> RuntimeSettings:
        return self._settings

    @property
    def active_connections(self) -> int:
        """Get count of established, still connected sessions."""
        return sum(1 for session in self._sessions.values() if session.is_connected)

    def list_servers(self) -> list[str]:
        """Return configured server names in lexicographic order."""
        return sorted(self._configs)

    def get_definitions(self) -> list[ServerDefinition]:
        """Return the definitions in configuration order."""
        return list(self._configs.values())

    def get_definition(self, server_name: str) -> ServerDefinition:
        """Look up a definition by name.

        Raises:
            UnknownServer: If no server with that name is configured.
        """
        name = server_name.strip()
        try:
            return self._configs[name]
        except KeyError:
            raise UnknownServer(name) from None

    async def connect(self, server_name: str) -> Session:
        """Return the session for a server, establishing it if needed.

        Concurrent callers for the same server share a single establishment
        attempt and receive the same session or the same error.

        Raises:
            UnknownServer: If the server is not configured.
            AuthenticationRequired: If the server demanded credentials that
                could not be obtained.
            EstablishmentFailed: If every transport strategy failed.
        """
        definition = self.get_definition(server_name)
        name = definition.name

        while True:
            session = self._sessions.get(name)
            if session is None:
                break
            if session.is_connected:
                return session
            # Transport went away underneath us; drop it and start over.
            self._logger.info(f"Connection to {name} was lost, reconnecting")
            if self._sessions.get(name) is session:
                del self._sessions[name]
            await session.close()

        pending = self._pending.get(name)
        if pending is None:
            pending = asyncio.get_running_loop().create_task(
                self._establish(definition), name=f"mcp-connect:{name}"
            )
            self._pending[name] = pending
        return await asyncio.shield(pending)

    async def _establish(self, definition: ServerDefinition) -> Session:
        name = definition.name
        try:
            session = await self._open_with_fallback(definition)
            self._sessions[name] = session
            return session
        finally:
            self._pending.pop(name, None)

    async def _open_with_fallback(self, definition: ServerDefinition) -> Session:
        name = definition.name
        strategies = select_strategies(definition.command)
        attempted: list[TransportStrategy] = []
        current = definition
        failure: Optional[ClassifiedError] = None
        # The OAuth hook is consulted at most once per establishment.
        auth_retried = False

        for index, strategy in enumerate(strategies):
            while True:
                attempted.append(strategy)
                try:
                    session = await self._factory.establish(current, strategy)
                except Exception as e:
                    failure = classify_error(e)
                else:
                    self._logger.info(f"Connected to {name} via {strategy.value}")
                    return session

                if failure.kind is not ErrorKind.AUTHENTICATION:
                    break
                if auth_retried:
                    self._fail(name, attempted, failure)
                self._logger.warning(f"Authentication required for {name}")
                upgraded = await self._oauth_hook.try_upgrade_for_auth(current)
                if upgraded is None:
                    self._fail(name, attempted, failure)
                current = upgraded
                auth_retried = True

            if failure.kind is ErrorKind.TRANSPORT_REJECTED and index + 1 < len(strategies):
                self._logger.info(
                    f"Falling back to {strategies[index + 1].value} transport for {name}: "
                    f"{failure.describe()}"
                )
                continue
            break

        assert failure is not None
        self._fail(name, attempted, failure)

    def _fail(self, name: str, attempted: list[TransportStrategy], failure: ClassifiedError) -> NoReturn:
        error_class = AuthenticationRequired if failure.kind is ErrorKind.AUTHENTICATION else EstablishmentFailed
        error = error_class(name, attempted, failure)
        self._logger.error(str(error))
        raise error from failure.cause

    async def list_tools(self, server_name: str, include_schema: bool = False) -> list[ServerToolInfo]:
        """List the tools a server offers.

        Args:
            server_name: Name of the server.
            include_schema: Include input/output JSON schemas in the result.

        Returns:
            Tools in the order the server reports them.
        """
        session = await self.connect(server_name)
        tools: list[ServerToolInfo] = []
        cursor: Optional[str] = None
        while True:
            result = await session.list_tools(cursor)
            for tool in result.tools or []:
                tools.append(
                    ServerToolInfo(
                        name=tool.name,
                        description=tool.description,
                        input_schema=tool.inputSchema if include_schema else None,
                        output_schema=getattr(tool, "outputSchema", None) if include_schema else None,
                    )
                )
            cursor = getattr(result, "nextCursor", None)
            if not cursor:
                return tools

    async def call_tool(
        self,
        server_name: str,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Call a tool on a specific server.

        Args:
            server_name: Name of the server.
            tool_name: Name of the tool to call.
            arguments: Arguments to pass to the tool.
            timeout: Deadline in seconds for the call itself. Defaults to
                ``settings.call_timeout``.

        Returns:
            The tool result.

        Raises:
            CallTimeout: If the call did not finish in time. The session is
                kept and remains usable.
            TransportClosed: If the session was closed during the call.
        """
        deadline = self._settings.call_timeout if timeout is None else timeout
        if deadline <= 0:
            raise ValueError(f"Timeout must be positive, got {deadline}")

        session = await self.connect(server_name)
        try:
            return await asyncio.wait_for(session.call_tool(tool_name, arguments or {}), deadline)
        except asyncio.TimeoutError:
            raise CallTimeout(session.name, tool_name, deadline) from None

    async def list_resources(self, server_name: str, cursor: Optional[str] = None) -> Any:
        """List one page of resources from a server."""
        session = await self.connect(server_name)
        return await session.list_resources(cursor)

    async def close(self, server_name: Optional[str] = None) -> None:
        """Close one server's session, or every session when no name is given.

        Closing a server that is not connected is a no-op. An establishment
        still in progress is awaited first so its session is not leaked.
        """
        if server_name is not None:
            await self._close_connection(server_name.strip())
            return

        for name in sorted(set(self._pending) | set(self._sessions)):
            await self._close_connection(name)

    async def _close_connection(self, name: str) -> None:
        pending = self._pending.get(name)
        if pending is not None:
            # Its outcome is reported to the callers of connect().
            await asyncio.wait({pending})

        session = self._sessions.pop(name, None)
        if session is None:
            return
        await session.close()
        self._logger.info(f"Closed connection to {name}")

    async def __aenter__(self) -> "MCPRuntime":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


async def call_once(
    servers: Iterable[Union[ServerDefinition, Mapping[str, Any]]],
    server_name: str,
    tool_name: str,
    arguments: Optional[dict[str, Any]] = None,
    **options: Any,
) -> Any:
    """Call a single tool and close the connection afterwards.

    Extra keyword arguments are passed to ``MCPRuntime``.
    """
    runtime = MCPRuntime(servers, **options)
    try:
        return await runtime.call_tool(server_name, tool_name, arguments)
    finally:
        await runtime.close(server_name)


__all__ = ["MCPRuntime", "RuntimeLogger", "ServerToolInfo", "call_once"]
