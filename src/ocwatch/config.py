"""Service configuration loaded from environment variables."""
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ocwatch.storage.paths import (
    db_path,
    default_storage_path,
    plan_path,
    storage_tree_paths,
    wal_path,
)

DEFAULT_PORT = 50234


class Settings(BaseSettings):
    """Service configuration loaded from environment variables.

    Attributes:
        host: Bind address for the HTTP server.
        port: Port number for the HTTP server.
        debug: Enable debug logging and API documentation.
        log_format: ``json`` or ``console`` log output.
        storage_path: Base data directory of the agent tool.
        project_path: Project root holding the plan file.
        debounce_ms: Debounce window for filesystem changes.
        rebind_interval: Seconds between periodic watch rebinds.
        watch_storage_trees: Also watch the file-based storage directories.
        poll_cache_ttl: Seconds a poll snapshot stays fresh.
        sse_heartbeat_interval: Seconds between SSE heartbeat events.
        sse_queue_size: Frames buffered per SSE connection.
        cors_origins_raw: Raw comma-separated CORS origins string.
    """

    model_config = SettingsConfigDict(
        env_prefix="OCWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    debug: bool = False
    log_format: Literal["json", "console"] = "json"

    storage_path: Path = Field(default_factory=default_storage_path)
    project_path: Path = Field(default_factory=Path.cwd)

    debounce_ms: int = 100
    rebind_interval: float = 1.0
    watch_storage_trees: bool = True
    poll_cache_ttl: float = 2.0
    sse_heartbeat_interval: float = 30.0
    sse_queue_size: int = 100
    cors_origins_raw: str = f"http://localhost:{DEFAULT_PORT}"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string.

        Returns:
            List of allowed origin URLs.
        """
        return [
            origin.strip()
            for origin in self.cors_origins_raw.split(",")
            if origin.strip()
        ]

    @property
    def db_path(self) -> Path:
        """Session database path."""
        return db_path(self.storage_path)

    @property
    def wal_path(self) -> Path:
        """Write-ahead-log path of the session database."""
        return wal_path(self.storage_path)

    @property
    def plan_path(self) -> Path:
        """Plan (boulder) file path."""
        return plan_path(self.project_path)

    @property
    def tree_paths(self) -> dict[str, Path]:
        """Storage directories watched recursively, if enabled."""
        if not self.watch_storage_trees:
            return {}
        return storage_tree_paths(self.storage_path)
