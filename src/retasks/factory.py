"""Build providers from configuration."""

from __future__ import annotations

import logging

import httpx

from .adapters import (
    BackendAdapter,
    GoogleCalendarAdapter,
    GoogleTasksAdapter,
    LocalAdapter,
    TodoistAdapter,
)
from .auth import StaticTokenSupplier, TokenSupplier
from .engine import TaskProvider
from .errors import ConfigurationError
from .models import (
    BACKEND_GOOGLE_TASKS,
    BACKEND_LOCAL,
    BACKEND_TODOIST,
    TASK_BACKENDS,
    ProviderConfig,
)
from .store import KeyValueStore

logger = logging.getLogger(__name__)


def _build_task_adapter(
    kind: str,
    config: ProviderConfig,
    token_supplier: TokenSupplier | None,
    client: httpx.AsyncClient | None,
) -> BackendAdapter:
    if kind == BACKEND_LOCAL:
        if config.task_root is None:
            raise ConfigurationError("The local backend needs a task directory")
        return LocalAdapter(config.task_root)

    if kind == BACKEND_TODOIST:
        if token_supplier is None:
            if not config.api_token:
                raise ConfigurationError("Todoist requires an API token")
            token_supplier = StaticTokenSupplier(config.api_token)
        return TodoistAdapter(token_supplier, client, project_id=config.project_id)

    if kind == BACKEND_GOOGLE_TASKS:
        if token_supplier is None:
            raise ConfigurationError("Google Tasks requires a token supplier")
        return GoogleTasksAdapter(token_supplier, client, tasklist_id=config.tasklist_id)

    raise ConfigurationError(
        f"Unknown task backend: {kind!r} (expected one of {', '.join(TASK_BACKENDS)})"
    )


def create_task_provider(
    kind: str,
    config: ProviderConfig,
    *,
    store: KeyValueStore,
    token_supplier: TokenSupplier | None = None,
    client: httpx.AsyncClient | None = None,
) -> TaskProvider:
    """Create a provider for one of the task backends.

    Args:
        kind: "local", "todoist" or "google-tasks"
        config: Provider settings
        store: Persistence for queue, cache and id bindings
        token_supplier: Bearer token source (required for Google Tasks;
            Todoist falls back to ``config.api_token``)
        client: Optional shared HTTP client

    Raises:
        ConfigurationError: Unknown kind or missing credentials
    """
    adapter = _build_task_adapter(kind, config, token_supplier, client)
    logger.info("Created %s provider", adapter.key)
    return TaskProvider(
        adapter,
        store,
        cache_ttl_ms=config.cache_ttl_ms,
        max_attempts=config.max_attempts,
    )


def create_calendar_provider(
    config: ProviderConfig,
    *,
    store: KeyValueStore,
    token_supplier: TokenSupplier | None,
    client: httpx.AsyncClient | None = None,
) -> TaskProvider:
    """Create a read-only provider over today's Google Calendar events."""
    if token_supplier is None:
        raise ConfigurationError("Google Calendar requires a token supplier")
    adapter = GoogleCalendarAdapter(token_supplier, client, calendar_ids=config.calendar_ids)
    logger.info("Created %s provider", adapter.key)
    return TaskProvider(
        adapter,
        store,
        cache_ttl_ms=config.cache_ttl_ms,
        max_attempts=config.max_attempts,
    )


class ProviderSession:
    """Holds the active task provider and swaps it on backend changes.

    The previous provider is cancelled before the new one is built, so a
    sync still running against the old backend can never publish into the
    new session.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        token_supplier: TokenSupplier | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store = store
        self._token_supplier = token_supplier
        self._client = client
        self._provider: TaskProvider | None = None
        self._retired: list[TaskProvider] = []

    @property
    def provider(self) -> TaskProvider | None:
        return self._provider

    def switch(self, kind: str, config: ProviderConfig) -> TaskProvider:
        """Replace the active provider with one for ``kind``."""
        previous = self._provider
        if previous is not None:
            logger.info("Switching backend from %s to %s", previous.key, kind)
            previous.cancel()
            self._retired.append(previous)
            self._provider = None

        self._provider = create_task_provider(
            kind,
            config,
            store=self._store,
            token_supplier=self._token_supplier,
            client=self._client,
        )
        return self._provider

    async def aclose(self) -> None:
        """Close the active and all previously replaced providers."""
        providers = [*self._retired]
        if self._provider is not None:
            providers.append(self._provider)
        self._retired = []
        self._provider = None
        for provider in providers:
            await provider.aclose()
