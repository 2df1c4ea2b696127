"""Exceptions raised by the runtime."""

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .classifier import ClassifiedError
    from .transports import TransportStrategy


class MCPRuntimeError(Exception):
    """Base class for runtime errors."""


class UnknownServer(MCPRuntimeError, ValueError):
    """The requested server name is not configured."""

    def __init__(self, server: str):
        self.server = server
        super().__init__(f"Unknown MCP server '{server}'")


class EstablishmentFailed(MCPRuntimeError):
    """Every transport strategy for a server was exhausted.

    Attributes:
        server: Name of the server.
        attempted: Strategies tried, in order, one entry per attempt.
        cause: The classification of the last failure.
    """

    def __init__(
        self,
        server: str,
        attempted: Sequence["TransportStrategy"],
        cause: "ClassifiedError",
    ):
        self.server = server
        self.attempted = tuple(attempted)
        self.cause = cause
        tried = ", ".join(strategy.value for strategy in self.attempted) or "none"
        super().__init__(
            f"Failed to connect to '{server}' (tried: {tried}): "
            f"{cause.kind.value}: {cause.describe()}"
        )


class AuthenticationRequired(EstablishmentFailed):
    """The server demands credentials the OAuth hook could not supply."""


class CallTimeout(MCPRuntimeError, TimeoutError):
    """A single call exceeded its deadline. The session stays open."""

    def __init__(self, server: str, tool: Optional[str], timeout: float):
        self.server = server
        self.tool = tool
        self.timeout = timeout
        target = f"'{tool}' on '{server}'" if tool else f"request to '{server}'"
        super().__init__(f"Timeout: {target} did not complete within {timeout:g}s")


class TransportClosed(MCPRuntimeError):
    """The session was closed while a call was in flight."""

    def __init__(self, server: str):
        self.server = server
        super().__init__(f"Connection to '{server}' was closed")


__all__ = [
    "AuthenticationRequired",
    "CallTimeout",
    "EstablishmentFailed",
    "MCPRuntimeError",
    "TransportClosed",
    "UnknownServer",
]
