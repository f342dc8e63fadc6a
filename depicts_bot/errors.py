"""
Exception types raised by the depicts bot.

Fatal errors (configuration, login, unexpected response shapes while sourcing
candidates) stop the run in `runner.main`. Per-candidate errors (`ClaimError`)
are logged and the run continues with the next candidate.
"""
from typing import Optional


class BotError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(BotError):
    """Missing or unreadable configuration (ini file, environment values)."""


class AuthError(BotError):
    """Login or token retrieval failed."""


class ApiError(BotError):
    """The MediaWiki Action API answered with an ``error`` payload."""

    def __init__(self, action: str, code: str, info: str = ""):
        self.action = action
        self.code = code
        self.info = info
        super().__init__(f"API error for {action}: {code} {info}".rstrip())


class ResponseShapeError(BotError):
    """A JSON response did not contain the expected field or array."""

    def __init__(self, endpoint: str, detail: str, payload: Optional[object] = None):
        self.endpoint = endpoint
        self.detail = detail
        self.payload = payload
        super().__init__(f"{endpoint}: {detail}")


class ClaimError(BotError):
    """A single candidate could not be turned into a statement."""
