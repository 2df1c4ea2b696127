"""Transport selection and session establishment.

A ``Session`` wraps one live MCP ``ClientSession`` together with the
transport it runs on. The SDK's transports are anyio context managers that
must be exited by the task that entered them, so every session is driven by
a dedicated owner task: it enters the transport and the client session,
performs the handshake, reports readiness, and then parks until ``close()``
asks it to unwind.
"""

import asyncio
import logging
import os
import re
from contextlib import AsyncExitStack
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional, Protocol, TypeVar

import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError
from mcp.types import Implementation

from .config import CommandSpec, RuntimeSettings, ServerDefinition, StdioCommand
from .errors import TransportClosed

T = TypeVar("T")

TransportFactory = Callable[[], AsyncContextManager[tuple[Any, ...]]]


class RuntimeLogger(Protocol):
    def info(self, msg: str, *args: Any, **kwargs: Any) -> Any: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> Any: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> Any: ...


# Raised by the SDK once the transport under a live session has gone away.
_DISCONNECT_ERRORS = (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream)


def is_disconnect(error: BaseException) -> bool:
    """True if a request failed because the session's transport is gone."""
    if isinstance(error, _DISCONNECT_ERRORS):
        return True
    return isinstance(error, McpError) and "connection closed" in str(error).lower()


class TransportStrategy(str, Enum):
    """Concrete ways of opening a session."""

    STDIO = "stdio"
    STREAMABLE_HTTP = "streamable_http"
    SSE = "sse"


def select_strategies(command: CommandSpec) -> tuple[TransportStrategy, ...]:
    """Return the strategies to try for a command, in order.

    HTTP servers are tried with streamable HTTP first; servers that only
    speak the older SSE protocol on the same endpoint are reached through
    the second entry.
    """
    if isinstance(command, StdioCommand):
        return (TransportStrategy.STDIO,)
    return (TransportStrategy.STREAMABLE_HTTP, TransportStrategy.SSE)


_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def resolve_headers(headers: dict[str, str], env: dict[str, str]) -> dict[str, str]:
    """Expand ``${NAME}`` placeholders in header values.

    Values come from the server's ``env`` overrides first, then the process
    environment. Unknown placeholders are kept verbatim.
    """

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key in env:
            return env[key]
        return os.environ.get(key, match.group(0))

    return {name: _PLACEHOLDER.sub(substitute, value) for name, value in headers.items()}


class Session:
    """One live, handshake-completed connection to a server."""

    def __init__(
        self,
        definition: ServerDefinition,
        strategy: TransportStrategy,
        transport_factory: TransportFactory,
        client_info: Optional[Implementation] = None,
        handshake_timeout: Optional[float] = None,
        logger: Optional[RuntimeLogger] = None,
    ):
        self.definition = definition
        self.strategy = strategy
        self._transport_factory = transport_factory
        self._client_info = client_info
        self._handshake_timeout = handshake_timeout
        self._client: Optional[ClientSession] = None
        self._ready: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._logger: RuntimeLogger = logger or logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def is_connected(self) -> bool:
        """True until the session is closed or its transport goes away."""
        return self._client is not None and not self._stopping.is_set()

    async def open(self) -> "Session":
        """Start the owner task and wait for the handshake.

        Raises:
            Exception: Whatever the transport or handshake raised. Both have
                been torn down by the time the error reaches the caller.
        """
        if self._task is not None:
            raise RuntimeError(f"Session for {self.name} was already opened")
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._task = loop.create_task(self._run(), name=f"mcp-session:{self.name}")
        try:
            await asyncio.shield(self._ready)
        except asyncio.CancelledError:
            await self.close()
            raise
        return self

    async def _run(self) -> None:
        assert self._ready is not None
        try:
            async with AsyncExitStack() as stack:
                streams = await stack.enter_async_context(self._transport_factory())
                read_stream, write_stream = streams[0], streams[1]
                client = await stack.enter_async_context(
                    ClientSession(read_stream, write_stream, client_info=self._client_info)
                )
                if self._handshake_timeout is not None:
                    await asyncio.wait_for(client.initialize(), self._handshake_timeout)
                else:
                    await client.initialize()

                self._client = client
                self._ready.set_result(None)
                await self._stopping.wait()
        except Exception as e:
            if not self._ready.done():
                self._ready.set_exception(e)
            else:
                self._logger.warning(f"Error closing connection to {self.name}: {e}")
        finally:
            self._client = None
            self._stopping.set()
            if not self._ready.done():
                self._ready.set_exception(TransportClosed(self.name))

    async def close(self) -> None:
        """Tear the session down. Safe to call more than once."""
        self._stopping.set()
        if self._task is not None:
            await asyncio.wait({self._task})

    async def _request(self, call: Callable[[ClientSession], Awaitable[T]]) -> T:
        """Run one protocol round-trip, giving up if the session closes first."""
        client = self._client
        if client is None or self._stopping.is_set():
            raise TransportClosed(self.name)

        pending = asyncio.ensure_future(call(client))
        stopped = asyncio.ensure_future(self._stopping.wait())
        try:
            done, _ = await asyncio.wait({pending, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()
            if not pending.done():
                pending.cancel()

        if pending not in done:
            raise TransportClosed(self.name)
        try:
            return pending.result()
        except Exception as e:
            if not is_disconnect(e):
                raise
            # The transport died under us; let the owner task unwind it.
            self._logger.warning(f"Connection to {self.name} was lost: {e}")
            self._stopping.set()
            raise TransportClosed(self.name) from e

    async def list_tools(self, cursor: Optional[str] = None) -> Any:
        return await self._request(lambda client: client.list_tools(cursor=cursor))

    async def call_tool(self, tool_name: str, arguments: Optional[dict[str, Any]] = None) -> Any:
        return await self._request(lambda client: client.call_tool(tool_name, arguments or {}))

    async def list_resources(self, cursor: Optional[str] = None) -> Any:
        return await self._request(lambda client: client.list_resources(cursor=cursor))

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "closed"
        return f"<Session {self.name} via {self.strategy.value} ({state})>"


class SessionFactoryProtocol(Protocol):
    """Anything able to open a session for a definition and strategy."""

    async def establish(self, definition: ServerDefinition, strategy: TransportStrategy) -> Session:
        ...


class SessionFactory:
    """Opens sessions over the MCP SDK transports.

    Errors are raised unclassified; the runtime decides what they mean.
    """

    def __init__(self, settings: Optional[RuntimeSettings] = None, logger: Optional[RuntimeLogger] = None):
        self.settings = settings or RuntimeSettings()
        self.logger: RuntimeLogger = logger or logging.getLogger(__name__)

    async def establish(self, definition: ServerDefinition, strategy: TransportStrategy) -> Session:
        session = Session(
            definition,
            strategy,
            self.transport_for(definition, strategy),
            client_info=Implementation(
                name=definition.client_name or self.settings.client_name,
                version=self.settings.client_version,
            ),
            handshake_timeout=self.settings.handshake_timeout,
            logger=self.logger,
        )
        await session.open()
        return session

    def transport_for(self, definition: ServerDefinition, strategy: TransportStrategy) -> TransportFactory:
        """Build the SDK transport context factory for one attempt."""
        command = definition.command

        if strategy is TransportStrategy.STDIO:
            if command.kind != "stdio":
                raise ValueError(f"Server '{definition.name}' is not a stdio server")
            # The env overlay travels with this spawn only; os.environ is never touched.
            params = StdioServerParameters(
                command=command.command,
                args=list(command.args),
                env=dict(definition.env) or None,
                cwd=self._resolve_cwd(command),
            )
            return partial(stdio_client, params)

        if command.kind != "http":
            raise ValueError(f"Server '{definition.name}' is not an HTTP server")
        headers = resolve_headers(command.headers, definition.env) or None

        if strategy is TransportStrategy.STREAMABLE_HTTP:
            return partial(streamablehttp_client, command.url, headers=headers)
        if strategy is TransportStrategy.SSE:
            return partial(sse_client, command.url, headers=headers)
        raise ValueError(f"Unsupported transport strategy {strategy}")

    def _resolve_cwd(self, command: StdioCommand) -> Optional[str]:
        root = self.settings.root_dir
        if command.cwd is None:
            return str(root) if root is not None else None
        cwd = Path(command.cwd).expanduser()
        if not cwd.is_absolute() and root is not None:
            cwd = root / cwd
        return str(cwd)


__all__ = [
    "RuntimeLogger",
    "Session",
    "SessionFactory",
    "SessionFactoryProtocol",
    "TransportStrategy",
    "is_disconnect",
    "resolve_headers",
    "select_strategies",
]
