"""TTL-gated store of the last-known remote snapshot per backend."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .models import DEFAULT_CACHE_TTL_MS, Task
from .store import KeyValueStore
from .utils import ms_between, now_utc

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """One cached snapshot."""

    backend_key: str
    snapshot: list[Task] = Field(default_factory=list)
    fetched_at: datetime
    ttl_ms: int = DEFAULT_CACHE_TTL_MS


class SnapshotCache:
    """Snapshot cache backed by a KeyValueStore.

    ``put`` always overwrites; merging local and remote state is the
    provider's job. Stale entries are still returned by ``get`` so callers
    can show them while a refresh is in progress.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._store = store
        self.ttl_ms = ttl_ms
        self._clock = clock

    @staticmethod
    def _key(backend_key: str) -> str:
        return f"{backend_key}.cache"

    def get(self, backend_key: str) -> CacheEntry | None:
        """Return the cached entry for a backend, fresh or not."""
        data = self._store.get(self._key(backend_key))
        if not data:
            return None
        try:
            return CacheEntry.model_validate(data)
        except PydanticValidationError:
            logger.warning("Ignoring malformed cache entry for %s", backend_key)
            return None

    def put(self, backend_key: str, snapshot: Iterable[Task]) -> CacheEntry:
        """Replace the cached snapshot for a backend."""
        entry = CacheEntry(
            backend_key=backend_key,
            snapshot=list(snapshot),
            fetched_at=self._clock(),
            ttl_ms=self.ttl_ms,
        )
        self._store.set(self._key(backend_key), entry.model_dump(mode="json"))
        logger.debug("Cached %d tasks for %s", len(entry.snapshot), backend_key)
        return entry

    def is_fresh(self, entry: CacheEntry | None) -> bool:
        """Whether the entry is younger than its TTL."""
        if entry is None:
            return False
        return ms_between(entry.fetched_at, self._clock()) < entry.ttl_ms

    def invalidate(self, backend_key: str) -> None:
        """Drop the cached snapshot so the next check reports stale."""
        self._store.delete(self._key(backend_key))
