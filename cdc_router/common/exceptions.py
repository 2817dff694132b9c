"""Error types raised by the CDC router."""

from typing import Optional


class RouterError(Exception):
    """Base class for router errors."""


class ConfigError(RouterError):
    """Routing configuration could not be loaded. Fatal at startup."""


class ParseError(RouterError):
    """A consumed payload is not a usable change event envelope."""

    def __init__(self, message: str, reason: str = "invalid") -> None:
        super().__init__(message)
        self.reason = reason


class PublishError(RouterError):
    """Forwarding a record to its destination topic failed."""

    def __init__(self, message: str, error_type: str = "broker") -> None:
        super().__init__(message)
        self.error_type = error_type


class ConsumerError(RouterError):
    """The consumer could not be recovered after repeated reconnect attempts."""

    def __init__(self, message: str, attempts: Optional[int] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
