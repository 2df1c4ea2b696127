"""Classification of connection failures.

The SDK surfaces transport problems in many shapes: bare ``httpx`` errors,
``McpError`` from the handshake, or anyio ``ExceptionGroup`` trees wrapping
any of those. ``classify_error`` reduces them to an ``ErrorKind`` that the
runtime uses to pick between falling back, asking the OAuth hook, or giving
up. It has no side effects.
"""

import errno
import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

import httpx
from mcp.shared.exceptions import McpError


class ErrorKind(str, Enum):
    """Categories that drive fallback and retry decisions."""

    AUTHENTICATION = "authentication"
    TRANSPORT_REJECTED = "transport_rejected"
    UNREACHABLE = "unreachable"
    OTHER = "other"


@dataclass(frozen=True)
class ClassifiedError:
    """A failure tagged with its category."""

    kind: ErrorKind
    cause: BaseException

    def describe(self) -> str:
        """Return a readable message for the underlying cause."""
        leaf = _first_leaf(self.cause)
        message = str(leaf)
        if not message:
            return type(leaf).__name__
        return f"{type(leaf).__name__}: {message}"


# Statuses a server answers with when it does not speak the attempted protocol.
_REJECTION_STATUSES = frozenset({400, 404, 405, 406, 410, 415, 501})

_NETWORK_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
        errno.ETIMEDOUT,
    }
)

_UNAUTHORIZED_PATTERN = re.compile(r"\b401\b|unauthori[sz]ed", re.IGNORECASE)

# Highest priority first.
_PRIORITY = (
    ErrorKind.AUTHENTICATION,
    ErrorKind.TRANSPORT_REJECTED,
    ErrorKind.UNREACHABLE,
)


def classify_error(error: BaseException) -> ClassifiedError:
    """Assign a kind to a failed session attempt."""
    found = {_classify_single(leaf) for leaf in _walk(error)}
    for kind in _PRIORITY:
        if kind in found:
            return ClassifiedError(kind=kind, cause=error)
    return ClassifiedError(kind=ErrorKind.OTHER, cause=error)


def _classify_single(error: BaseException) -> ErrorKind:
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 401:
            return ErrorKind.AUTHENTICATION
        if status in _REJECTION_STATUSES:
            return ErrorKind.TRANSPORT_REJECTED
        return ErrorKind.OTHER

    if _UNAUTHORIZED_PATTERN.search(str(error)):
        return ErrorKind.AUTHENTICATION

    if isinstance(error, (McpError, httpx.RemoteProtocolError, httpx.DecodingError)):
        return ErrorKind.TRANSPORT_REJECTED

    if isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout, ConnectionError, socket.gaierror)):
        return ErrorKind.UNREACHABLE
    if isinstance(error, OSError) and error.errno in _NETWORK_ERRNOS:
        return ErrorKind.UNREACHABLE

    return ErrorKind.OTHER


def _walk(error: BaseException) -> Iterator[BaseException]:
    """Yield every exception in groups and cause/context chains."""
    seen: set[int] = set()
    stack = [error]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, BaseExceptionGroup):
            stack.extend(current.exceptions)
        else:
            yield current
        if current.__cause__ is not None:
            stack.append(current.__cause__)
        elif current.__context__ is not None and not current.__suppress_context__:
            stack.append(current.__context__)


def _first_leaf(error: BaseException) -> BaseException:
    while isinstance(error, BaseExceptionGroup) and error.exceptions:
        error = error.exceptions[0]
    return error


__all__ = ["ClassifiedError", "ErrorKind", "classify_error"]
