"""
Exception taxonomy for the jar monitoring pipeline.

NetworkError is fatal to a single fetch cycle of one stage and is retried on
the next poll tick. PartialDecodeError and MissingPriceError are isolated to
one entry and degrade to a default value.
"""

from typing import Any, Optional


class NetworkError(Exception):
    """Raised when an external service is unreachable or returns non-success."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DegradedResultError(NetworkError):
    """
    Raised when a stage could only produce placeholder values.

    ``fallback`` holds those values so the current cycle can still use them;
    they must not be cached as a real result.
    """

    def __init__(self, message: str, fallback: Any, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.fallback = fallback


class PartialDecodeError(Exception):
    """Raised when a single contract-read result cannot be decoded."""

    pass


class MissingPriceError(KeyError):
    """Raised when no USD price is known for an identifier."""

    def __init__(self, identifier: str):
        super().__init__(identifier)
        self.identifier = identifier

    def __str__(self) -> str:
        return f"No price available for {self.identifier}"


class ReleaseBlockedError(Exception):
    """Raised when a release transaction may not be submitted right now."""

    pass
