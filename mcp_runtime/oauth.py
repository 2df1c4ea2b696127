"""Hooks invoked when a server asks for authentication.

The runtime calls ``try_upgrade_for_auth`` once per establishment attempt
after a handshake is classified as an authentication failure. Returning a
new definition retries the same strategy once with it; returning ``None``
makes the failure final.
"""

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

from .config import ServerDefinition

logger = logging.getLogger(__name__)

TokenProvider = Callable[[ServerDefinition], Awaitable[Optional[str]]]


@runtime_checkable
class OAuthHook(Protocol):
    async def try_upgrade_for_auth(self, definition: ServerDefinition) -> Optional[ServerDefinition]:
        ...


class DisabledOAuthHook:
    """Never upgrades; authentication failures are reported as-is."""

    async def try_upgrade_for_auth(self, definition: ServerDefinition) -> Optional[ServerDefinition]:
        logger.debug(f"OAuth is not configured, cannot authenticate {definition.name}")
        return None


def default_token_cache_dir(name: str) -> Path:
    return Path.home() / ".mcp-runtime" / name


class BearerTokenOAuthHook:
    """Upgrades HTTP servers with a bearer token from a caller-supplied provider.

    Example:
        ```python
        async def token_for(definition):
            return await my_auth_flow(definition.command.url)

        runtime = MCPRuntime(servers, oauth_hook=BearerTokenOAuthHook(token_for))
        ```
    """

    def __init__(self, token_provider: TokenProvider):
        """Initialize the hook.

        Args:
            token_provider: Coroutine function returning an access token for
                a definition, or None when no token can be obtained.
        """
        self._token_provider = token_provider

    async def try_upgrade_for_auth(self, definition: ServerDefinition) -> Optional[ServerDefinition]:
        if definition.command.kind != "http":
            return None

        token = await self._token_provider(definition)
        if not token:
            logger.info(f"No access token available for {definition.name}")
            return None

        headers = {**definition.command.headers, "Authorization": f"Bearer {token}"}
        return definition.model_copy(
            update={
                "command": definition.command.model_copy(update={"headers": headers}),
                "auth": "oauth",
                "token_cache_dir": definition.token_cache_dir or default_token_cache_dir(definition.name),
            }
        )


__all__ = [
    "BearerTokenOAuthHook",
    "DisabledOAuthHook",
    "OAuthHook",
    "TokenProvider",
    "default_token_cache_dir",
]
