import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ccbridge.core.logging import get_logger

from .claude import ClaudeSettings
from .core import LoggingSettings, ServerSettings


__all__ = ["Settings", "ConfigurationError", "get_settings", "find_toml_config_file"]


_NESTED_SECTIONS = ("server", "logging", "claude")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def get_config_dir() -> Path:
    """Return the ccbridge directory under XDG_CONFIG_HOME (falls back to ~/.config)."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return base / "ccbridge"


def find_toml_config_file() -> Path | None:
    """Find the TOML configuration file for ccbridge.

    Searches in the following order:
    1. .ccbridge.toml in current directory
    2. config.toml in XDG_CONFIG_HOME/ccbridge/

    Returns:
        Path to the first found configuration file, or None if not found.
    """
    current_dir_config = Path.cwd() / ".ccbridge.toml"
    if current_dir_config.exists():
        return current_dir_config

    xdg_config = get_config_dir() / "config.toml"
    if xdg_config.exists():
        return xdg_config

    return None


class Settings(BaseSettings):
    """
    Configuration settings for the ccbridge server.

    Settings are loaded from environment variables, .env files, and TOML configuration files.
    Environment variables take precedence over TOML values; explicit overrides
    (e.g. CLI options) take precedence over both.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    server: ServerSettings = Field(
        default_factory=ServerSettings,
        description="Server configuration settings",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Centralized logging configuration",
    )

    claude: ClaudeSettings = Field(
        default_factory=ClaudeSettings,
        description="Claude CLI backing process configuration",
    )

    @property
    def server_url(self) -> str:
        """Get the complete server URL."""
        return f"http://{self.server.host}:{self.server.port}"

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file."""
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read TOML config file {toml_path}: {e}"
            ) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls,
        config_path: Path | str | None = None,
        **overrides: Any,
    ) -> "Settings":
        """Create Settings from defaults, a TOML file, the environment and overrides.

        Args:
            config_path: Explicit TOML file. Falls back to CONFIG_FILE, then auto-discovery.
            **overrides: Section dictionaries (e.g. ``server={"port": 9000}``) applied last.
                None values are ignored.
        """
        if config_path is None:
            config_path_env = os.environ.get("CONFIG_FILE")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path is not None:
            if not config_path.exists():
                raise ConfigurationError(f"Config file not found: {config_path}")
            if config_path.suffix.lower() != ".toml":
                raise ConfigurationError(
                    f"Unsupported config file format: {config_path.suffix}. "
                    "Only TOML (.toml) files are supported."
                )
            config_data = cls.load_toml_config(config_path)
            get_logger(__name__).info(
                "config_file_loaded", path=str(config_path), category="config"
            )

        try:
            data = cls().model_dump()
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        # TOML values only fill in what the environment left unset
        for key, value in config_data.items():
            if key in _NESTED_SECTIONS and isinstance(value, dict):
                for nested_key, nested_value in value.items():
                    env_key = f"{key.upper()}__{nested_key.upper()}"
                    if os.getenv(env_key) is None:
                        data[key][nested_key] = nested_value

        for section, values in overrides.items():
            if section not in _NESTED_SECTIONS or not values:
                continue
            for nested_key, nested_value in values.items():
                if nested_value is not None:
                    data[section][nested_key] = nested_value

        # Re-run field validators on the merged result
        try:
            return cls.model_validate(data)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e


@lru_cache
def get_settings(config_path: str | None = None) -> Settings:
    """Get the cached global settings instance.

    Args:
        config_path: Optional path to configuration file. If None, uses CONFIG_FILE env var
                    or auto-discovers config file.
    """
    return Settings.from_config(config_path=config_path)
