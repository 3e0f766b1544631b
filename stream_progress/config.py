"""Configuration management for stream-progress."""

import os
import stat
from pathlib import Path
from typing import Optional

import yaml

from stream_progress.progress_store import CACHE_TTL_MS
from stream_progress.providers import DEFAULT_TIMEOUT, USER_AGENT
from stream_progress.resolver import HEALTH_CHECK_TIMEOUT
from stream_progress.tmdb import TMDB_BASE_URL, TMDB_IMAGE_BASE_URL


class ConfigError(Exception):
    """Configuration error."""

    pass


class Config:
    """Manages stream-progress configuration."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize config with data directory."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_path = self.data_dir / "config.yaml"
        self.log_path = self.data_dir / "stream-progress.log"

        # TMDB catalog
        self.tmdb_api_key: Optional[str] = None
        self.tmdb_base_url: str = TMDB_BASE_URL
        self.tmdb_image_base_url: str = TMDB_IMAGE_BASE_URL

        # Progress store
        self.cache_ttl_ms: int = CACHE_TTL_MS

        # Stream resolver
        self.resolver_timeout: float = DEFAULT_TIMEOUT
        self.health_check_timeout: float = HEALTH_CHECK_TIMEOUT
        self.user_agent: str = USER_AGENT

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    @property
    def tmdb_configured(self) -> bool:
        """Check if a TMDB API key is available."""
        return bool(self.tmdb_api_key)

    def set_tmdb_api_key(self, api_key: Optional[str]) -> None:
        """Set TMDB API key."""
        self.tmdb_api_key = api_key or None

    def set_cache_ttl(self, ttl_ms: int) -> None:
        """Set progress cache TTL in milliseconds."""
        if ttl_ms < 0:
            raise ConfigError(f"Invalid cache TTL: {ttl_ms}")
        self.cache_ttl_ms = ttl_ms

    def set_timeouts(self, resolver_timeout: float, health_check_timeout: float) -> None:
        """Set resolver and health check timeouts in seconds."""
        if resolver_timeout <= 0 or health_check_timeout <= 0:
            raise ConfigError("Timeouts must be positive")
        self.resolver_timeout = resolver_timeout
        self.health_check_timeout = health_check_timeout

    def apply_env(self) -> None:
        """Let TMDB_API_KEY from the environment override the stored key."""
        env_key = os.environ.get("TMDB_API_KEY")
        if env_key:
            self.tmdb_api_key = env_key

    def save(self) -> None:
        """Save configuration to YAML file."""
        data = {
            "tmdb": {
                "api_key": self.tmdb_api_key,
                "base_url": self.tmdb_base_url,
                "image_base_url": self.tmdb_image_base_url,
            },
            "progress": {
                "cache_ttl_ms": self.cache_ttl_ms,
            },
            "resolver": {
                "timeout": self.resolver_timeout,
                "health_check_timeout": self.health_check_timeout,
                "user_agent": self.user_agent,
            },
        }

        with open(self.config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        # Set file permissions to 0600 (owner read/write only)
        if os.name != "nt":
            os.chmod(self.config_path, stat.S_IRUSR | stat.S_IWUSR)

    def load(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(
                f"Config file not found: {self.config_path}\n"
                "Run 'stream-progress setup' to configure."
            )

        with open(self.config_path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid config file: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file: {self.config_path}")

        tmdb = data.get("tmdb") or {}
        self.tmdb_api_key = tmdb.get("api_key")
        self.tmdb_base_url = tmdb.get("base_url") or TMDB_BASE_URL
        self.tmdb_image_base_url = tmdb.get("image_base_url") or TMDB_IMAGE_BASE_URL

        progress = data.get("progress") or {}
        self.set_cache_ttl(progress.get("cache_ttl_ms", CACHE_TTL_MS))

        resolver = data.get("resolver") or {}
        self.set_timeouts(
            resolver.get("timeout", DEFAULT_TIMEOUT),
            resolver.get("health_check_timeout", HEALTH_CHECK_TIMEOUT),
        )
        self.user_agent = resolver.get("user_agent") or USER_AGENT
