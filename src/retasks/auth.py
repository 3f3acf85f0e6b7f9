"""Bearer token suppliers consumed by the remote adapters.

OAuth flows, refresh and token persistence live outside this package;
anything with an ``ensure_valid_token`` coroutine can be plugged in.
Adapters call the supplier right before every request and never keep the
token themselves.
"""

from __future__ import annotations

import logging
import os
from typing import Protocol

from .errors import AuthError, ErrorCode

logger = logging.getLogger(__name__)


class TokenSupplier(Protocol):
    """Hands out a currently valid bearer token."""

    async def ensure_valid_token(self) -> str:
        """Return a valid token or raise AuthError."""
        ...


class StaticTokenSupplier:
    """Supplies a fixed API token (e.g. a Todoist personal token)."""

    def __init__(self, token: str | None) -> None:
        self._token = token

    async def ensure_valid_token(self) -> str:
        if not self._token:
            raise AuthError("No API token configured", code=ErrorCode.AUTH_NO_CREDENTIALS)
        return self._token


class EnvTokenSupplier:
    """Reads the token from an environment variable on every call.

    Lets an external refresher rotate the token without restarting.
    """

    def __init__(self, variable: str) -> None:
        self.variable = variable

    async def ensure_valid_token(self) -> str:
        token = os.environ.get(self.variable)
        if not token:
            logger.error("No token found in %s", self.variable)
            raise AuthError(
                f"{self.variable} environment variable is not set",
                code=ErrorCode.AUTH_NO_CREDENTIALS,
            )
        return token
