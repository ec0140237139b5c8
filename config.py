"""
LensMirror Configuration
========================
Centralized configuration for every module of the mirror.

[CONFIG] Values come from environment variables (a .env file is loaded by
main.py before this module is imported). Tests build Config() directly.
"""

from dataclasses import dataclass, field
from typing import Dict

import os


def _env_flag(name: str, default: bool = False) -> bool:
    """Boolean option: only "true" and "1" enable it."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass
class DatabaseConfig:
    """Local record store."""

    # Path to the SQLite database file
    path: str = "lensmirror.db"

    # Connection ceiling; callers beyond it wait for a free connection
    pool_size: int = 10

    # Seconds SQLite waits on a locked database before failing
    busy_timeout: float = 30.0


@dataclass
class MirrorConfig:
    """Read-side filters applied by the record store."""

    # Include remote-origin-only rows in read results
    enable_web_source: bool = False

    # Drop standard media and image sequences on read
    ignore_alt_media: bool = False

    # Drop image sequences on read
    ignore_img_sequence: bool = False


@dataclass
class CacheConfig:
    """Ephemeral search result cache."""

    ttl: float = 1800.0  # 30 min
    check_period: float = 600.0  # 10 min


@dataclass
class RemoteConfig:
    """Remote content platform endpoints."""

    # Lens page, "{uuid}" is substituted
    lens_web_url: str = "https://lens.snapchat.com/{uuid}"

    # Keyword search endpoint, "{query}" is substituted
    search_url: str = "https://lensstudio.snapchat.com/v1/search/lenses?query={query}"

    # Creator listing endpoint
    creator_lenses_url: str = (
        "https://lensstudio.snapchat.com/v1/creator/lenses/"
        "?limit={limit}&offset={offset}&order=1&slug={slug}"
    )

    # Request timeout (seconds)
    timeout: float = 30.0

    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )


@dataclass
class StorageConfig:
    """Mirrored asset files."""

    # Root directory, one sub-directory per lens id
    path: str = "storage"

    # Download lens media and unlock archives on insert
    mirror_assets: bool = True

    # Refuse single files larger than this
    max_file_size: int = 64 * 1024 * 1024  # 64 MB


@dataclass
class Config:
    """Main configuration object."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    mirror: MirrorConfig = field(default_factory=MirrorConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration from the process environment."""
        remote_defaults = RemoteConfig()
        return cls(
            database=DatabaseConfig(
                path=os.getenv("DB_PATH", DatabaseConfig.path),
                pool_size=max(1, _env_int("DB_POOL_SIZE", DatabaseConfig.pool_size)),
                busy_timeout=_env_float("DB_BUSY_TIMEOUT", DatabaseConfig.busy_timeout),
            ),
            mirror=MirrorConfig(
                enable_web_source=_env_flag("ENABLE_WEB_SOURCE"),
                ignore_alt_media=_env_flag("IGNORE_ALT_MEDIA"),
                ignore_img_sequence=_env_flag("IGNORE_IMG_SEQUENCE"),
            ),
            cache=CacheConfig(
                ttl=_env_float("CACHE_TTL", CacheConfig.ttl),
                check_period=_env_float("CACHE_CHECK_PERIOD", CacheConfig.check_period),
            ),
            remote=RemoteConfig(
                lens_web_url=os.getenv("LENS_WEB_URL", remote_defaults.lens_web_url),
                search_url=os.getenv("LENS_SEARCH_URL", remote_defaults.search_url),
                creator_lenses_url=os.getenv("CREATOR_LENSES_URL", remote_defaults.creator_lenses_url),
                timeout=_env_float("REMOTE_TIMEOUT", remote_defaults.timeout),
            ),
            storage=StorageConfig(
                path=os.getenv("STORAGE_PATH", StorageConfig.path),
                mirror_assets=_env_flag("MIRROR_ASSETS", default=True),
            ),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "db_path": self.database.path,
            "pool_size": self.database.pool_size,
            "enable_web_source": self.mirror.enable_web_source,
            "ignore_alt_media": self.mirror.ignore_alt_media,
            "ignore_img_sequence": self.mirror.ignore_img_sequence,
            "cache_ttl": self.cache.ttl,
            "cache_check_period": self.cache.check_period,
            "storage_path": self.storage.path,
            "mirror_assets": self.storage.mirror_assets,
        }


# Process-wide default configuration
config = Config.from_env()
