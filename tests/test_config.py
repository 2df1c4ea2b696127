"""
Tests for server definition and settings validation.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mcp_runtime import HttpCommand, RuntimeSettings, ServerDefinition, StdioCommand, __version__


def test_definition_from_mapping_picks_command_kind():
    stdio = ServerDefinition.model_validate(
        {"name": " echo ", "command": {"kind": "stdio", "command": "node", "args": ["server.js"]}}
    )
    http = ServerDefinition.model_validate(
        {
            "name": "remote",
            "command": {"kind": "http", "url": "https://example.com/mcp", "headers": {"X-Key": "1"}},
            "env": {"TOKEN": "abc"},
            "auth": "oauth",
            "token_cache_dir": "/tmp/tokens",
        }
    )

    assert stdio.name == "echo"
    assert isinstance(stdio.command, StdioCommand)
    assert not stdio.is_http
    assert isinstance(http.command, HttpCommand)
    assert http.is_http
    assert http.command.headers == {"X-Key": "1"}
    assert http.token_cache_dir == Path("/tmp/tokens")


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_name_rejected(name):
    with pytest.raises(ValidationError):
        ServerDefinition(name=name, command=StdioCommand(command="node"))


def test_stdio_requires_executable():
    with pytest.raises(ValidationError):
        StdioCommand(command="  ")


@pytest.mark.parametrize("url", ["/relative/path", "ftp://example.com/mcp", "https://", "example.com"])
def test_http_requires_absolute_url(url):
    with pytest.raises(ValidationError):
        HttpCommand(url=url)


def test_definitions_are_immutable():
    definition = ServerDefinition(name="echo", command=StdioCommand(command="node"))

    with pytest.raises(ValidationError):
        definition.name = "other"


def test_runtime_settings_defaults():
    settings = RuntimeSettings()

    assert settings.call_timeout == 30.0
    assert settings.handshake_timeout == 60.0
    assert settings.client_name == "mcp-runtime"
    assert settings.client_version == __version__
    assert settings.root_dir is None


@pytest.mark.parametrize("field", ["call_timeout", "handshake_timeout"])
def test_runtime_settings_timeouts_must_be_positive(field):
    with pytest.raises(ValidationError):
        RuntimeSettings(**{field: 0})
