"""
Shared fixtures for mcp_runtime tests.

Sessions and the session factory are replaced with in-memory stubs so the
pool can be exercised without spawning processes or opening sockets.
"""

import asyncio

import httpx
import pytest
from mcp import types

from mcp_runtime import HttpCommand, ServerDefinition, StdioCommand


def stdio_server(name="echo", **kwargs):
    return ServerDefinition(
        name=name,
        command=StdioCommand(command="python", args=["-m", "echo_server"]),
        **kwargs,
    )


def http_server(name="remote", url="https://example.com/mcp", **kwargs):
    return ServerDefinition(name=name, command=HttpCommand(url=url), **kwargs)


def http_status_error(status, url="https://example.com/mcp"):
    request = httpx.Request("POST", url)
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"Server responded with {status}", request=request, response=response)


class FakeSession:
    """Stands in for transports.Session."""

    def __init__(self, definition, strategy, hang=False, tool_pages=None):
        self.definition = definition
        self.strategy = strategy
        self.hang = hang
        self.tool_pages = tool_pages or [
            [
                types.Tool(
                    name="ping",
                    description="Reply with pong",
                    inputSchema={"type": "object", "properties": {}},
                )
            ]
        ]
        self.close_calls = 0
        self.calls = []
        self._connected = True

    @property
    def name(self):
        return self.definition.name

    @property
    def is_connected(self):
        return self._connected

    def drop(self):
        """Simulate the transport dying on its own."""
        self._connected = False

    async def list_tools(self, cursor=None):
        index = int(cursor) if cursor else 0
        next_cursor = str(index + 1) if index + 1 < len(self.tool_pages) else None
        return types.ListToolsResult(tools=self.tool_pages[index], nextCursor=next_cursor)

    async def call_tool(self, tool_name, arguments=None):
        self.calls.append((tool_name, arguments))
        if self.hang:
            await asyncio.Event().wait()
        return {"tool": tool_name, "arguments": arguments}

    async def list_resources(self, cursor=None):
        return types.ListResourcesResult(resources=[])

    async def close(self):
        self.close_calls += 1
        self._connected = False


class StubSessionFactory:
    """Counts establishment attempts and replays scripted failures.

    ``outcomes`` maps ``(server name, strategy)`` to a list consumed one
    entry per attempt; ``None`` means success, an exception is raised.
    Once a list is exhausted, attempts succeed.
    """

    def __init__(self, outcomes=None, delay=0.0, hanging=()):
        self.outcomes = {key: list(value) for key, value in (outcomes or {}).items()}
        self.delay = delay
        self.hanging = set(hanging)
        self.calls = []
        self.definitions = []
        self.sessions = []

    async def establish(self, definition, strategy):
        self.calls.append((definition.name, strategy))
        self.definitions.append(definition)
        if self.delay:
            await asyncio.sleep(self.delay)

        script = self.outcomes.get((definition.name, strategy))
        if script:
            outcome = script.pop(0)
            if outcome is not None:
                raise outcome

        session = FakeSession(definition, strategy, hang=definition.name in self.hanging)
        self.sessions.append(session)
        return session


class RecordingLogger:
    def __init__(self):
        self.records = []

    def info(self, msg, *args, **kwargs):
        self.records.append(("info", msg))

    def warning(self, msg, *args, **kwargs):
        self.records.append(("warning", msg))

    def error(self, msg, *args, **kwargs):
        self.records.append(("error", msg))

    def messages(self, level):
        return [msg for record_level, msg in self.records if record_level == level]


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest.fixture
def stub_factory():
    return StubSessionFactory()
