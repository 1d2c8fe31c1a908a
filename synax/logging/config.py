"""
Logging Configuration for Synax Offline Sync.

Defines paths, rotation settings and log levels.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class LogConfig:
    """Configuration for the structured sync logs."""

    # Paths
    log_dir: Path = field(default_factory=lambda: Path.home() / ".synax" / "logs")

    # File settings
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    # Log levels: DEBUG, INFO, WARNING, ERROR
    sync_level: str = "INFO"
    connectivity_level: str = "INFO"

    # Mirror structured entries to stderr as well
    console_enabled: bool = False
    console_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Load config from environment variables with defaults."""
        config = cls()

        if level := os.environ.get("SYNAX_LOG_LEVEL"):
            config.sync_level = level
            config.connectivity_level = level

        if log_dir := os.environ.get("SYNAX_LOG_DIR"):
            config.log_dir = Path(log_dir)

        # Max file size in MB
        if max_size := os.environ.get("SYNAX_LOG_MAX_SIZE_MB"):
            try:
                config.max_file_size_bytes = int(max_size) * 1024 * 1024
            except ValueError:
                pass

        if os.environ.get("SYNAX_LOG_CONSOLE", "").lower() in ("1", "true", "yes"):
            config.console_enabled = True

        return config

    def ensure_log_dir(self) -> None:
        """Create log directory if it doesn't exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def sync_log_path(self) -> Path:
        """Path to the drain cycle log."""
        return self.log_dir / "sync.jsonl"

    @property
    def connectivity_log_path(self) -> Path:
        """Path to the online/offline transition log."""
        return self.log_dir / "connectivity.jsonl"


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """Get the global log config, initializing from env if needed."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
        _config.ensure_log_dir()
    return _config


def set_config(config: LogConfig) -> None:
    """Set a custom log config (useful for testing)."""
    global _config
    _config = config
    _config.ensure_log_dir()
