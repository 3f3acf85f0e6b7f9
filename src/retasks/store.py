"""Durable key-value persistence for queues, caches and id bindings."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import yaml

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Interface for the persistence substrate.

    Values are plain YAML/JSON-compatible data (dicts, lists, strings,
    numbers, booleans, None). ``set`` must be durable when it returns.
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or default if the key is absent."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Persist a value, replacing any previous one."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. Does not raise if the key doesn't exist."""
        ...


class YamlFileStore:
    """Store each key as a YAML file under a root directory.

    Writes go to a temporary file in the same directory which then
    replaces the target, so a crash never leaves a half-written value.
    """

    SUFFIX = ".yaml"

    def __init__(self, root: Path) -> None:
        self.root = root

    def ensure_directory(self) -> None:
        """Create the store directory if it doesn't exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = key.replace("/", "_").replace("\\", "_")
        return self.root / f"{safe}{self.SUFFIX}"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with path.open() as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError:
            logger.warning("Discarding unreadable store entry: %s", path)
            return default
        return default if data is None else data

    def set(self, key: str, value: Any) -> None:
        self.ensure_directory()
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write("# Auto-generated - do not edit manually\n")
                yaml.safe_dump(value, f, default_flow_style=False, sort_keys=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
