"""Shared HTTP plumbing for the REST-backed adapters."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from ..auth import TokenSupplier
from ..errors import (
    AuthError,
    ConflictError,
    ErrorCode,
    NetworkError,
    RateLimitError,
    SyncError,
)

logger = logging.getLogger(__name__)


class RestAdapter:
    """Base class for adapters talking to a JSON REST API.

    Provides a thin wrapper around httpx with:
    - A fresh bearer token from the token supplier on every request
    - Uniform mapping of HTTP failures onto the error taxonomy
    - Request timing in the logs
    """

    name = "REST"

    def __init__(
        self,
        token_supplier: TokenSupplier,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            token_supplier: Source of bearer tokens
            client: Optional preconfigured client (tests inject a mock transport)
            timeout: Request timeout in seconds when creating our own client
        """
        self._tokens = token_supplier
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Execute an authenticated request.

        Returns:
            Parsed JSON body, or None for empty responses.

        Raises:
            AuthError: 401/403 or no token available
            RateLimitError: 429
            ConflictError: 404 (the entity is gone)
            NetworkError: transport failures and 5xx
            SyncError: other 4xx and unparseable bodies
        """
        token = await self._tokens.ensure_valid_token()
        headers = {"Authorization": f"Bearer {token}"}

        start_time = time.monotonic()
        try:
            response = await self._client.request(
                method, url, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            logger.warning("%s %s %s timed out: %s", self.name, method, url, e)
            raise NetworkError(f"Request timed out: {e}", code=ErrorCode.NETWORK_TIMEOUT) from e
        except httpx.RequestError as e:
            logger.warning("%s %s %s failed: %s", self.name, method, url, e)
            raise NetworkError(f"Request failed: {e}") from e

        elapsed_ms = (time.monotonic() - start_time) * 1000
        status = response.status_code

        if status in (401, 403):
            logger.error("%s %s %s: %d Unauthorized (%.0fms)", self.name, method, url, status, elapsed_ms)
            raise AuthError(f"{self.name} authentication failed: HTTP {status}")
        if status == 429:
            logger.warning("%s %s %s: 429 Rate Limited (%.0fms)", self.name, method, url, elapsed_ms)
            raise RateLimitError.from_header(
                response.headers.get("Retry-After"), f"{self.name} rate limit exceeded"
            )
        if status == 404:
            logger.warning("%s %s %s: 404 Not Found (%.0fms)", self.name, method, url, elapsed_ms)
            raise ConflictError(f"{self.name} resource not found: {url}")
        if status >= 500:
            logger.error("%s %s %s: HTTP %d (%.0fms)", self.name, method, url, status, elapsed_ms)
            raise NetworkError(f"HTTP {status}: {response.text}", status_code=status)
        if status >= 400:
            logger.error("%s %s %s: HTTP %d (%.0fms)", self.name, method, url, status, elapsed_ms)
            raise SyncError(f"HTTP {status}: {response.text}", is_retryable=False)

        logger.info("%s %s %s: %d (%.0fms)", self.name, method, url, status, elapsed_ms)

        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise SyncError(
                f"Invalid JSON response: {e}",
                code=ErrorCode.VALIDATION_INVALID_RESPONSE,
                is_retryable=False,
            ) from e
