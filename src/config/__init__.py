"""Session configuration for revision."""

from config.settings import (
    CONFIG_FILENAME,
    ConfigError,
    RevisionConfig,
    load_config,
)

__all__ = ["CONFIG_FILENAME", "ConfigError", "RevisionConfig", "load_config"]
