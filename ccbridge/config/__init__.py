from .claude import DEFAULT_MODEL, ClaudeSettings
from .core import LoggingSettings, ServerSettings
from .settings import ConfigurationError, Settings, get_settings


__all__ = [
    "DEFAULT_MODEL",
    "ClaudeSettings",
    "ConfigurationError",
    "LoggingSettings",
    "ServerSettings",
    "Settings",
    "get_settings",
]
