"""Client runtime for pooled MCP server connections.

This package keeps one session per configured MCP (Model Context Protocol)
server and exposes a uniform list-tools / call-tool interface over stdio,
streamable HTTP and SSE transports.

Key components:
- MCPRuntime: Pools sessions by server name and owns their lifecycle
- ServerDefinition: Configuration for one MCP server
- SessionFactory: Opens sessions over the MCP SDK transports
- classify_error: Maps connection failures to fallback/retry decisions
- OAuthHook: Supplies credentials when a server requires authentication

Example:
    ```python
    from mcp_runtime import HttpCommand, MCPRuntime, ServerDefinition

    runtime = MCPRuntime([
        ServerDefinition(name="remote", command=HttpCommand(url="https://example.com/mcp")),
    ])

    async with runtime:
        tools = await runtime.list_tools("remote")
        result = await runtime.call_tool("remote", "search", {"query": "mcp"})
    ```
"""

__version__ = "0.1.0"

from .classifier import ClassifiedError, ErrorKind, classify_error
from .config import CommandSpec, HttpCommand, RuntimeSettings, ServerDefinition, StdioCommand
from .connections import MCPRuntime, RuntimeLogger, ServerToolInfo, call_once
from .errors import (
    AuthenticationRequired,
    CallTimeout,
    EstablishmentFailed,
    MCPRuntimeError,
    TransportClosed,
    UnknownServer,
)
from .oauth import BearerTokenOAuthHook, DisabledOAuthHook, OAuthHook
from .transports import (
    Session,
    SessionFactory,
    SessionFactoryProtocol,
    TransportStrategy,
    is_disconnect,
    resolve_headers,
    select_strategies,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "CommandSpec",
    "HttpCommand",
    "RuntimeSettings",
    "ServerDefinition",
    "StdioCommand",
    # Runtime
    "MCPRuntime",
    "RuntimeLogger",
    "ServerToolInfo",
    "call_once",
    # Transports
    "Session",
    "SessionFactory",
    "SessionFactoryProtocol",
    "TransportStrategy",
    "is_disconnect",
    "resolve_headers",
    "select_strategies",
    # Errors
    "AuthenticationRequired",
    "CallTimeout",
    "ClassifiedError",
    "ErrorKind",
    "EstablishmentFailed",
    "MCPRuntimeError",
    "TransportClosed",
    "UnknownServer",
    "classify_error",
    # Authentication
    "BearerTokenOAuthHook",
    "DisabledOAuthHook",
    "OAuthHook",
]
