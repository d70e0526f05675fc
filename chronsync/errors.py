class ChronsyncError(Exception):
    """Base error for chronsync."""


class ConfigError(ChronsyncError):
    """Config validation error."""
