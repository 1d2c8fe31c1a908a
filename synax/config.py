"""
Synax Offline Sync - Configuration Management

Handles loading config.json, environment overrides and the credential slot.
Files are stored in ~/.config/synax unless SYNAX_HOME points elsewhere.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from synax.exceptions import ConfigError

DEFAULT_API_URL = "http://localhost:3000/api"
TOKEN_KEY = "synax_token"


def get_config_dir() -> Path:
    """Get the configuration directory, honouring SYNAX_HOME."""
    if home := os.environ.get("SYNAX_HOME"):
        return Path(home).expanduser()
    return Path.home() / ".config" / "synax"


def get_config_file() -> Path:
    """Path to config.json."""
    return get_config_dir() / "config.json"


def get_credentials_file() -> Path:
    """Path to the credential slot holding the bearer token."""
    return get_config_dir() / "credentials.json"


@dataclass
class SynaxConfig:
    """Main configuration container for the sync client."""

    api_base_url: str = DEFAULT_API_URL
    db_path: str = ""
    request_timeout: float = 30.0
    # Cap used by explicit retries of failed mutations
    max_retries: int = 3
    probe_interval: float = 15.0
    health_path: str = "/health"

    def __post_init__(self) -> None:
        self.api_base_url = self.api_base_url.rstrip("/")
        if not self.db_path:
            self.db_path = str(get_config_dir() / "synax-offline.db")
        self.db_path = str(Path(self.db_path).expanduser())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "api_base_url": self.api_base_url,
            "db_path": self.db_path,
            "request_timeout": self.request_timeout,
            "max_retries": self.max_retries,
            "probe_interval": self.probe_interval,
            "health_path": self.health_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SynaxConfig":
        """Create SynaxConfig from dictionary."""
        return cls(
            api_base_url=data.get("api_base_url", DEFAULT_API_URL),
            db_path=data.get("db_path", ""),
            request_timeout=float(data.get("request_timeout", 30.0)),
            max_retries=int(data.get("max_retries", 3)),
            probe_interval=float(data.get("probe_interval", 15.0)),
            health_path=data.get("health_path", "/health"),
        )


def ensure_config_dir() -> None:
    """Ensure configuration directory exists."""
    get_config_dir().mkdir(parents=True, exist_ok=True)


def _apply_env_overrides(config: SynaxConfig) -> None:
    """Apply SYNAX_* environment variables on top of file settings."""
    if api_url := os.environ.get("SYNAX_API_URL"):
        config.api_base_url = api_url.rstrip("/")

    if db_path := os.environ.get("SYNAX_DB_PATH"):
        config.db_path = str(Path(db_path).expanduser())

    numeric = {
        "SYNAX_REQUEST_TIMEOUT": ("request_timeout", float),
        "SYNAX_MAX_RETRIES": ("max_retries", int),
        "SYNAX_PROBE_INTERVAL": ("probe_interval", float),
    }
    for env_name, (attr, cast) in numeric.items():
        raw = os.environ.get(env_name)
        if not raw:
            continue
        try:
            setattr(config, attr, cast(raw))
        except ValueError:
            raise ConfigError(
                f"Invalid value for {env_name}",
                {"value": raw},
            )


def load_config() -> SynaxConfig:
    """
    Load configuration from config.json and the environment.

    Returns:
        SynaxConfig with all settings loaded

    Raises:
        ConfigError: If configuration is invalid
    """
    config_file = get_config_file()
    config = SynaxConfig()

    if config_file.exists():
        try:
            with open(config_file) as f:
                data = json.load(f)
            config = SynaxConfig.from_dict(data)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"Invalid JSON in {config_file}",
                {"error": str(e)},
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(
                "Invalid value in sync config",
                {"error": str(e)},
            )

    _apply_env_overrides(config)

    if config.max_retries < 0:
        raise ConfigError("max_retries must not be negative", {"max_retries": config.max_retries})

    return config


def save_config(config: SynaxConfig) -> None:
    """
    Save configuration to config.json.

    Args:
        config: SynaxConfig to save
    """
    ensure_config_dir()

    with open(get_config_file(), "w") as f:
        json.dump(config.to_dict(), f, indent=2)


# =========================================================================
# CREDENTIAL SLOT
# =========================================================================


def load_token() -> str | None:
    """
    Read the bearer token from the credential slot.

    SYNAX_TOKEN takes precedence over the stored value.

    Returns:
        Token string, or None if the user is not logged in
    """
    if token := os.environ.get("SYNAX_TOKEN"):
        return token

    credentials_file = get_credentials_file()
    if not credentials_file.exists():
        return None

    try:
        with open(credentials_file) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"Invalid JSON in {credentials_file}",
            {"error": str(e)},
        )

    return data.get(TOKEN_KEY) or None


def save_token(token: str) -> None:
    """Store the bearer token in the credential slot."""
    ensure_config_dir()
    credentials_file = get_credentials_file()

    with open(credentials_file, "w") as f:
        json.dump({TOKEN_KEY: token}, f)
    credentials_file.chmod(0o600)


def clear_token() -> None:
    """Remove the stored bearer token."""
    get_credentials_file().unlink(missing_ok=True)
