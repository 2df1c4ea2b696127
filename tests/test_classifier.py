"""
Tests for connection error classification.
"""

import errno
import socket

import httpx
import pytest
from mcp.shared.exceptions import McpError
from mcp.types import ErrorData

from conftest import http_status_error
from mcp_runtime import ClassifiedError, ErrorKind, classify_error


def test_unauthorized_status_is_authentication():
    assert classify_error(http_status_error(401)).kind is ErrorKind.AUTHENTICATION


@pytest.mark.parametrize("status", [400, 404, 405, 406, 415])
def test_protocol_rejections(status):
    assert classify_error(http_status_error(status)).kind is ErrorKind.TRANSPORT_REJECTED


@pytest.mark.parametrize("status", [403, 429, 500, 503])
def test_other_statuses(status):
    assert classify_error(http_status_error(status)).kind is ErrorKind.OTHER


@pytest.mark.parametrize(
    "error",
    [
        httpx.ConnectError("Connection refused"),
        httpx.ConnectTimeout("timed out connecting"),
        ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused"),
        socket.gaierror(socket.EAI_NONAME, "Name or service not known"),
        OSError(errno.EHOSTUNREACH, "No route to host"),
    ],
)
def test_network_failures_are_unreachable(error):
    assert classify_error(error).kind is ErrorKind.UNREACHABLE


def test_handshake_protocol_error_is_rejection():
    error = McpError(ErrorData(code=-32600, message="Session terminated"))

    assert classify_error(error).kind is ErrorKind.TRANSPORT_REJECTED


def test_unauthorized_message_is_authentication():
    assert classify_error(RuntimeError("HTTP 401 Unauthorized")).kind is ErrorKind.AUTHENTICATION


@pytest.mark.parametrize(
    "error",
    [
        ValueError("bad value"),
        FileNotFoundError(errno.ENOENT, "No such file or directory", "missing-server"),
        TimeoutError(),
        RuntimeError("listening on port 4010"),
    ],
)
def test_everything_else_is_other(error):
    assert classify_error(error).kind is ErrorKind.OTHER


def test_exception_groups_are_flattened():
    group = ExceptionGroup("unhandled errors in a TaskGroup", [ExceptionGroup("inner", [http_status_error(405)])])

    assert classify_error(group).kind is ErrorKind.TRANSPORT_REJECTED


def test_authentication_wins_over_other_kinds():
    group = ExceptionGroup(
        "unhandled errors in a TaskGroup",
        [httpx.ConnectError("Connection refused"), http_status_error(401)],
    )

    assert classify_error(group).kind is ErrorKind.AUTHENTICATION


def test_cause_chain_is_followed():
    try:
        try:
            raise httpx.ConnectError("Connection refused")
        except httpx.ConnectError as e:
            raise RuntimeError("connection failed") from e
    except RuntimeError as e:
        error = e

    assert classify_error(error).kind is ErrorKind.UNREACHABLE


def test_classification_keeps_original_cause():
    error = httpx.ConnectError("Connection refused")

    classified = classify_error(error)

    assert classified == ClassifiedError(kind=ErrorKind.UNREACHABLE, cause=error)
    assert classify_error(error) == classified


def test_describe_uses_leaf_exception():
    group = ExceptionGroup("unhandled errors in a TaskGroup", [httpx.ConnectError("Connection refused")])

    assert classify_error(group).describe() == "ConnectError: Connection refused"
    assert classify_error(TimeoutError()).describe() == "TimeoutError"
