"""
Exception types for access-bot.
"""


class AccessBotError(Exception):
    """Base class for all access-bot errors."""


class ConfigError(AccessBotError):
    """Required configuration is missing or invalid."""


class GatewayError(AccessBotError):
    """Commerce lookup failed (transport, HTTP or authentication error)."""


class PlatformError(AccessBotError):
    """A Discord membership API call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RoleConfigError(AccessBotError):
    """A configured role does not exist in the guild.

    This is a deployment defect, not a transient fault, and is never retried.
    """

    def __init__(self, role_name: str, kind: str = "target"):
        super().__init__(f"{kind.capitalize()} role not found: {role_name}")
        self.role_name = role_name
        self.kind = kind


class StoreError(AccessBotError):
    """The persisted email map could not be read or written."""
