"""
Configuration management for IPTVPlay.

Handles loading, validation, and access to application configuration.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

# Global configuration instance
_config: Optional["IPTVPlayConfig"] = None

DEFAULT_PLAYLIST_USER_AGENTS = [
    "Mozilla/5.0 (Linux; Android 10; SM-G975F) AppleWebKit/537.36 "
    "Chrome/91.0.4472.120 Mobile Safari/537.36",
    "VLC/3.0.18 LibVLC/3.0.18",
    "Dalvik/2.1.0 (Linux; U; Android 10; SM-G975F Build/QP1A.190711.020)",
    "stagefright/1.2 (Linux;Android 10)",
    "ExoPlayer/2.19.1 (Linux; Android 10)",
]


class FetchConfig(BaseModel):
    """Playlist download settings."""
    user_agent: str = "VLC/3.0.18 LibVLC/3.0.18"
    connect_timeout: float = 15.0
    read_timeout: float = 30.0
    follow_redirects: bool = True


class PlaybackConfig(BaseModel):
    """Playback attempt and retry settings."""
    retry_delay_ms: int = 600
    default_user_agent: str = "IPTVPlay/1.0.0"
    # Rotation used for playlist channels that carry no User-Agent of their own
    user_agents: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PLAYLIST_USER_AGENTS)
    )
    connect_timeout_ms: int = 30_000
    read_timeout_ms: int = 30_000

    @field_validator("retry_delay_ms")
    @classmethod
    def _non_negative_delay(cls, value: int) -> int:
        if value < 0:
            raise ValueError("retry_delay_ms must be >= 0")
        return value

    @field_validator("user_agents")
    @classmethod
    def _non_empty_rotation(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("user_agents must contain at least one entry")
        return value

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = "logs/iptvplay.log"
    max_size: str = "10MB"
    backup_count: int = 5
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def max_bytes(self) -> int:
        """Parse ``max_size`` ("10MB", "512KB", "1048576") into bytes."""
        size = self.max_size.strip().upper()
        for suffix, factor in (("GB", 1024 ** 3), ("MB", 1024 ** 2), ("KB", 1024)):
            if size.endswith(suffix):
                return int(float(size[: -len(suffix)]) * factor)
        return int(size)


class IPTVPlayConfig(BaseModel):
    """Main IPTVPlay configuration."""
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> IPTVPlayConfig:
    """
    Load configuration from file.

    Args:
        config_path: Path to config file. Defaults to config.yaml in project root.

    Returns:
        Loaded and validated configuration.
    """
    global _config

    if config_path is None:
        # Look for config.yaml in current directory or project root
        possible_paths = [
            Path("config.yaml"),
            Path(__file__).parent.parent / "config.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data: dict[str, Any] = {}

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    env_overrides = _get_env_overrides()
    _deep_merge(config_data, env_overrides)

    _config = IPTVPlayConfig(**config_data)
    return _config


def get_config() -> IPTVPlayConfig:
    """
    Get the current configuration.

    Returns:
        Current configuration (loads default if not yet loaded).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> IPTVPlayConfig:
    """
    Reload configuration from disk.

    Returns:
        Freshly loaded configuration.
    """
    global _config
    _config = None
    return load_config()


def _get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    # Map of environment variables to config paths
    env_map = {
        "IPTVPLAY_LOG_LEVEL": ("logging", "level"),
        "IPTVPLAY_RETRY_DELAY_MS": ("playback", "retry_delay_ms"),
        "IPTVPLAY_FETCH_USER_AGENT": ("fetch", "user_agent"),
        "IPTVPLAY_DEFAULT_USER_AGENT": ("playback", "default_user_agent"),
    }

    for env_var, path in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            # Raw strings; the models coerce numeric fields
            _set_nested(overrides, path, value)

    return overrides


def _set_nested(d: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    """Set a nested dictionary value from a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Deep merge override into base dictionary."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


class _ConfigProxy:
    """
    Proxy object that provides lazy access to configuration.

    Allows modules to import `config` directly and access it like:
        from iptvplay.config import config
        config.playback.retry_delay_ms

    The actual config is loaded on first attribute access.
    """

    def __getattr__(self, name: str) -> Any:
        return getattr(get_config(), name)

    def __repr__(self) -> str:
        return f"<ConfigProxy for {get_config()}>"


config = _ConfigProxy()
