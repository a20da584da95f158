"""Application configuration using Pydantic Settings."""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "SAINT Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # Server
    host: str = "0.0.0.0"
    port: int = 3001

    # Database (tests + results record store)
    database_url: str = "sqlite+aiosqlite:///./data/saint.db"

    # CORS
    cors_origins: list[str] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS_ORIGINS from JSON string or a comma-separated list."""
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                v = [o.strip() for o in v.split(",") if o.strip()]
        return list(v) if isinstance(v, list) else [v]

    # Storage
    results_dir: Path = Path("./data/results")
    screenshots_dir: Path = Path("./data/screenshots")
    videos_dir: Path = Path("./data/videos")
    traces_dir: Path = Path("./data/traces")
    workspaces_dir: Path = Path("./data/workspaces")

    # Execution
    max_concurrent_tests: int = 5
    supported_browsers: list[str] = ["chromium", "firefox", "webkit"]
    install_dependencies: bool = True
    install_command: list[str] = ["npm", "install", "--no-audit", "--no-fund"]
    runner_command: list[str] = ["npx", "playwright", "test", "--config", "playwright.config.ts"]
    playwright_version: str = "^1.40.0"
    dependency_install_timeout_seconds: float = 300.0
    # None disables the kill-after-deadline watchdog; the runner's own timeout applies
    execution_timeout_seconds: float | None = None

    @field_validator("max_concurrent_tests")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent_tests must be at least 1")
        return v

    # Streaming
    stream_sweep_interval_seconds: float = 60.0
    stream_idle_timeout_seconds: float = 300.0

    # Tracing
    enable_tracing: bool = False

    # Logging
    log_level: str = "INFO"

    @property
    def storage_dirs(self) -> list[Path]:
        return [
            self.results_dir,
            self.screenshots_dir,
            self.videos_dir,
            self.traces_dir,
            self.workspaces_dir,
        ]

    def ensure_storage(self) -> None:
        """Create every storage directory."""
        for directory in self.storage_dirs:
            directory.mkdir(parents=True, exist_ok=True)


def configure_logging(settings: Settings) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
