"""Application settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from ..models import BACKEND_LOCAL, DEFAULT_CACHE_TTL_MS, ProviderConfig


def _default_data_dir() -> Path:
    return Path.home() / ".local" / "share" / "retasks"


class Settings(BaseSettings):
    """Application settings."""

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Directory for the queue, cache and local tasks",
    )

    backend: str = Field(
        default=BACKEND_LOCAL,
        description="Task backend: local, todoist or google-tasks",
    )

    api_token: str | None = Field(
        default=None,
        description="API token for token-based backends (Todoist)",
    )

    google_token_env: str = Field(
        default="RETASKS_GOOGLE_TOKEN",
        description="Environment variable holding the current Google access token",
    )

    tasklist_id: str = Field(
        default="@default",
        description="Google Tasks list to use",
    )

    cache_ttl_ms: int = Field(
        default=DEFAULT_CACHE_TTL_MS,
        description="Age in milliseconds after which the cached snapshot is stale",
    )

    max_attempts: int = Field(
        default=3,
        description="Failed attempts allowed before a change is reverted",
    )

    sync_interval_s: float = Field(
        default=300.0,
        description="Seconds between background syncs",
    )

    verbose: int = Field(
        default=0,
        description="Verbosity level (0=off, 1=INFO, 2+=DEBUG)",
    )

    log_file: Path | None = Field(
        default=None,
        description="Optional path to write logs to file",
    )

    model_config = {
        "env_prefix": "RETASKS_",
    }

    @property
    def store_dir(self) -> Path:
        """Directory holding queue, cache and id files."""
        return self.data_dir / "state"

    @property
    def task_root(self) -> Path:
        """Directory holding the local backend's task files."""
        return self.data_dir / "tasks"

    def provider_config(self) -> ProviderConfig:
        """Build the provider configuration from these settings."""
        return ProviderConfig(
            backend=self.backend,
            api_token=self.api_token,
            cache_ttl_ms=self.cache_ttl_ms,
            max_attempts=self.max_attempts,
            task_root=self.task_root,
            tasklist_id=self.tasklist_id,
        )
