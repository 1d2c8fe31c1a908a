"""Tests for config module."""

import json

import pytest

from synax.config import (
    DEFAULT_API_URL,
    SynaxConfig,
    clear_token,
    get_config_file,
    get_credentials_file,
    load_config,
    load_token,
    save_config,
    save_token,
)
from synax.exceptions import ConfigError


class TestSynaxConfig:
    """Tests for SynaxConfig dataclass."""

    def test_defaults(self, isolated_env):
        """Default config points at the local API and a db under SYNAX_HOME."""
        config = SynaxConfig()
        assert config.api_base_url == DEFAULT_API_URL
        assert config.max_retries == 3
        assert config.db_path == str(isolated_env / "synax-offline.db")

    def test_trailing_slash_stripped(self):
        """Base URL is normalised without trailing slash."""
        config = SynaxConfig(api_base_url="https://synax.example.com/api/")
        assert config.api_base_url == "https://synax.example.com/api"

    def test_round_trip_dict(self):
        """to_dict/from_dict preserve every field."""
        config = SynaxConfig(
            api_base_url="https://synax.example.com/api",
            db_path="/tmp/synax.db",
            request_timeout=5.0,
            max_retries=7,
            probe_interval=2.5,
            health_path="/ping",
        )
        restored = SynaxConfig.from_dict(config.to_dict())
        assert restored == config


class TestLoadConfig:
    """Tests for loading config from disk and environment."""

    def test_missing_file_gives_defaults(self):
        """No config.json means defaults."""
        config = load_config()
        assert config.api_base_url == DEFAULT_API_URL

    def test_save_then_load(self):
        """Saved config is read back."""
        save_config(SynaxConfig(api_base_url="https://a.example/api", max_retries=5))
        config = load_config()
        assert config.api_base_url == "https://a.example/api"
        assert config.max_retries == 5

    def test_env_overrides_file(self, monkeypatch, tmp_path):
        """SYNAX_* variables win over config.json."""
        save_config(SynaxConfig(api_base_url="https://a.example/api"))
        monkeypatch.setenv("SYNAX_API_URL", "https://b.example/api/")
        monkeypatch.setenv("SYNAX_DB_PATH", str(tmp_path / "other.db"))
        monkeypatch.setenv("SYNAX_MAX_RETRIES", "9")
        monkeypatch.setenv("SYNAX_REQUEST_TIMEOUT", "1.5")

        config = load_config()
        assert config.api_base_url == "https://b.example/api"
        assert config.db_path == str(tmp_path / "other.db")
        assert config.max_retries == 9
        assert config.request_timeout == 1.5

    def test_invalid_json_raises(self):
        """Broken config.json is a ConfigError."""
        path = get_config_file()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{not json")

        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_config()

    def test_invalid_env_value_raises(self, monkeypatch):
        """Non-numeric numeric override is a ConfigError."""
        monkeypatch.setenv("SYNAX_MAX_RETRIES", "lots")
        with pytest.raises(ConfigError, match="SYNAX_MAX_RETRIES"):
            load_config()

    def test_negative_max_retries_raises(self, monkeypatch):
        """max_retries below zero is rejected."""
        monkeypatch.setenv("SYNAX_MAX_RETRIES", "-1")
        with pytest.raises(ConfigError):
            load_config()


class TestCredentialSlot:
    """Tests for the bearer token slot."""

    def test_no_token_by_default(self):
        """Logged out until a token is saved."""
        assert load_token() is None

    def test_save_and_load_token(self):
        """Token is stored under synax_token."""
        save_token("abc123")
        assert load_token() == "abc123"
        assert json.loads(get_credentials_file().read_text()) == {"synax_token": "abc123"}

    def test_token_file_is_private(self):
        """Credentials are readable by the owner only."""
        save_token("abc123")
        assert get_credentials_file().stat().st_mode & 0o777 == 0o600

    def test_env_token_wins(self, monkeypatch):
        """SYNAX_TOKEN overrides the stored token."""
        save_token("stored")
        monkeypatch.setenv("SYNAX_TOKEN", "from-env")
        assert load_token() == "from-env"

    def test_clear_token(self):
        """clear_token removes the slot and is idempotent."""
        save_token("abc123")
        clear_token()
        clear_token()
        assert load_token() is None
