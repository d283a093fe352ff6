"""Shared exception types for the scanner and its store adapters."""

from typing import Optional


class SignalwatchError(RuntimeError):
    """Base class for errors raised by signalwatch modules."""


class PriceFetchError(SignalwatchError):
    """Raised when a price series cannot be fetched or parsed for an instrument."""

    def __init__(self, source: str, original: Optional[Exception] = None):
        super().__init__(source)
        self.source = source
        self.original = original


class ProviderNotice(PriceFetchError):
    """Soft provider failure, e.g. a rate-limit notice returned with HTTP 200."""


class StoreError(SignalwatchError):
    """Raised when a record store round trip fails."""

    def __init__(self, operation: str, original: Optional[Exception] = None):
        message = operation if original is None else f"{operation}: {original}"
        super().__init__(message)
        self.operation = operation
        self.original = original


class StoreConfigurationError(SignalwatchError):
    """Raised at startup when mandatory store credentials are missing."""


class CommandUsageError(SignalwatchError):
    """Raised when an operator command has malformed arguments."""

    def __init__(self, usage: str):
        super().__init__(usage)
        self.usage = usage
