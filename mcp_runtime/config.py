"""Server definitions and runtime settings.

Definitions are handed to the runtime already parsed; this module only
validates their shape. Reading configuration files is left to the caller.
"""

from pathlib import Path
from typing import Annotated, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import __version__


class StdioCommand(BaseModel):
    """A server spawned as a subprocess speaking MCP over stdin/stdout."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["stdio"] = "stdio"
    command: str = Field(..., description="Executable to spawn")
    args: list[str] = Field(default_factory=list, description="Command arguments")
    cwd: Optional[Path] = Field(
        default=None, description="Working directory, relative paths resolve against root_dir"
    )

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Stdio command must include an executable")
        return value


class HttpCommand(BaseModel):
    """A server reachable at an HTTP(S) endpoint."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["http"] = "http"
    url: str = Field(..., description="Absolute http(s) endpoint URL")
    headers: dict[str, str] = Field(default_factory=dict, description="Static request headers")

    @field_validator("url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        parsed = urlparse(value.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Expected an absolute http(s) URL, got '{value}'")
        return value.strip()


CommandSpec = Annotated[Union[StdioCommand, HttpCommand], Field(discriminator="kind")]


class ServerDefinition(BaseModel):
    """Configuration for one MCP server."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique identifier for the server")
    description: Optional[str] = Field(default=None, description="Human readable summary")
    command: CommandSpec = Field(..., description="How to reach the server")
    env: dict[str, str] = Field(default_factory=dict, description="Environment overrides")
    auth: Optional[str] = Field(default=None, description="Declared authentication mode")
    token_cache_dir: Optional[Path] = Field(
        default=None, description="Where an OAuth hook may cache credentials"
    )
    client_name: Optional[str] = Field(
        default=None, description="Client name announced during the handshake"
    )

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Server name must not be empty")
        return value

    @property
    def is_http(self) -> bool:
        return self.command.kind == "http"


class RuntimeSettings(BaseModel):
    """Tunables shared by every connection a runtime opens."""

    call_timeout: float = Field(
        default=30.0, gt=0, description="Default deadline (seconds) for a tool call"
    )
    handshake_timeout: Optional[float] = Field(
        default=60.0, gt=0, description="Deadline (seconds) for one protocol handshake"
    )
    client_name: str = Field(default="mcp-runtime", description="Client name sent to servers")
    client_version: str = Field(default=__version__, description="Client version sent to servers")
    root_dir: Optional[Path] = Field(
        default=None, description="Base directory for relative stdio working directories"
    )


__all__ = [
    "CommandSpec",
    "HttpCommand",
    "RuntimeSettings",
    "ServerDefinition",
    "StdioCommand",
]
