"""
Settings for the price ledger, read from `LEDGER_*` environment variables
or a `.env` file.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_timeout: float = Field(default=30.0, description="HTTP request timeout in seconds")
    cache_dir: Path = Field(
        default_factory=lambda: Path(".cache/price_ledger"),
        description="Local key-value store directory",
    )
    log_level: str = Field(default="INFO", description="Logging level")
    storage_url: str | None = Field(
        default=None, description="Shared storage service base URL (local store when unset)"
    )
    lookup_base_url: str = Field(
        default="https://www.wowhead.com/wotlk", description="Item lookup service base URL"
    )
    max_concurrent_lookups: int = Field(default=3, ge=1, description="In-flight lookup cap")
    history_limit: int = Field(default=50, ge=1, description="Observations kept per item")
    seconds_per_time_key: int = Field(
        default=60, gt=0, description="Seconds represented by one pricing history time key"
    )
    external_lookups: bool = Field(
        default=False, description="Search the lookup service for unresolved item names"
    )
    lookup_wait_timeout: float | None = Field(
        default=60.0, description="Seconds to wait on name searches during an import"
    )
    name_index_path: Path = Field(
        default_factory=lambda: Path("data/index/item_names.yaml"),
        description="Reference item name index",
    )
    name_overrides_path: Path = Field(
        default_factory=lambda: Path("data/index/item_name_overrides.yaml"),
        description="Reference item name overrides (id -> name)",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
