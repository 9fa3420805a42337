"""Custom exceptions for configuration management."""

from smartmarks.collection.errors import SmartmarksError


class ConfigError(SmartmarksError):
    """Raised when configuration data cannot be read, merged, or validated."""
