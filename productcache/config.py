from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from productcache.cache.engine import CacheOptions
from productcache.models.enums import BackingStoreKind


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env file.

    Cache policy fields are validated when the engine is built, so an
    unknown ``EVICTION_POLICY`` stops the server at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cache engine
    capacity_bytes: int = 1024 * 1024
    eviction_policy: str = "LRU"
    invalidation_policy: str = "NONE"
    std_ttl: float = 500.0
    delete_on_expire: bool = True
    max_keys: int = -1
    event_log_size: int = 50
    copy_on_read: bool = False
    random_seed: int | None = None

    # Backing store: "memory" uses the bundled catalog, "http" the product API
    backing_store: BackingStoreKind = BackingStoreKind.MEMORY
    backing_store_url: str = "http://localhost:8080/api"
    backing_store_token: str | None = None
    fetch_delay_seconds: float = 1.0

    # Bulk fill
    fill_min_size: int = 600
    fill_max_size: int = 1200

    # Remote hosting: transport, bind address, and auth
    mcp_transport: str = "stdio"
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8000
    mcp_auth_token: str | None = None
    # Optional second token that may only read the cache
    mcp_read_only_token: str | None = None

    # Paths & logging. Default is <project_root>/data so it works
    # regardless of the process working directory.
    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    log_level: str = "INFO"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / "cache_snapshot.db"

    def cache_options(self) -> CacheOptions:
        """Engine options built from these settings."""
        return CacheOptions(
            capacity_bytes=self.capacity_bytes,
            eviction_policy=self.eviction_policy,
            invalidation_policy=self.invalidation_policy,
            std_ttl=self.std_ttl,
            delete_on_expire=self.delete_on_expire,
            max_keys=self.max_keys,
            copy_on_read=self.copy_on_read,
            random_seed=self.random_seed,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
