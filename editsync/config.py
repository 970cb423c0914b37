"""
Configuration settings for editsync.

Uses environment variables (EDITSYNC_*) with sensible defaults; a JSON
config file can override both.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class SyncConfig(BaseSettings):
    """Settings for the sync client and its background tasks."""

    model_config = SettingsConfigDict(
        env_prefix="EDITSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API settings
    api_base_url: str = "https://api.github.com"
    api_timeout: float = 30.0
    user_agent: str = "editsync/0.1.0"
    commit_message_template: str = "Update {path} from editsync"
    create_message_template: str = "Create {path} from editsync"

    # Sync timing (seconds)
    autosave_delay: float = Field(default=10.0, gt=0)  # Debounce quiescence window
    drain_interval: float = Field(default=30.0, gt=0)  # Periodic queue drain

    # Retry settings
    max_retries: int = Field(default=5, ge=1)

    # Rate limiting (GitHub allows 5000/hour for tokens)
    requests_per_minute: int = 60
    requests_per_hour: int = 5000

    # Connectivity probe
    probe_url: Optional[str] = None  # Defaults to api_base_url
    probe_timeout: float = 5.0

    # Cache settings
    cache_dir: Path = Field(default_factory=lambda: Path.home() / ".editsync")
    cache_db_name: str = "editsync.db"

    offline_warning: str = "Offline - will sync when connected"

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def model_post_init(self, __context) -> None:
        """Ensure cache directory exists."""
        self.cache_dir = Path(self.cache_dir).expanduser()
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @property
    def cache_db_path(self) -> Path:
        """Full path to the cache database."""
        return self.cache_dir / self.cache_db_name


def load_config(path: Optional[Path] = None, **overrides) -> SyncConfig:
    """
    Build a config from env/defaults, a JSON file and explicit overrides.

    Args:
        path: Optional JSON file; missing files are ignored
        **overrides: Field values that take precedence over everything

    Returns:
        SyncConfig instance
    """
    values: dict = {}
    if path is not None and Path(path).exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                values.update(json.load(f))
            logger.info(f"Loaded config from {path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load config: {e}, using defaults")
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SyncConfig(**values)


@lru_cache
def get_config() -> SyncConfig:
    """Get cached config instance."""
    return SyncConfig()
