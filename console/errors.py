from __future__ import annotations

from typing import Optional


class ConsoleError(Exception):
    """Base class for errors raised by the display console."""


class ServiceError(ConsoleError):
    """A call to the remote database/storage service failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchError(ServiceError):
    """A read query failed or returned something other than a row list."""


class ChannelConnectError(ConsoleError):
    """Subscribing to the notification channel failed."""


class ValidationError(ConsoleError, ValueError):
    """Operator input was rejected before reaching the remote service."""


class NotFoundError(ConsoleError):
    pass
