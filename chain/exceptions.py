"""Error taxonomy for chain access.

``ErrorType`` classifies failures so callers can log them meaningfully and
tell provider flakiness apart from a node rejecting the transaction.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp


class ErrorType(Enum):
    """Classification of chain errors.

    - TRANSIENT: Timeouts, connection resets, 5xx from a provider.
    - REJECTED: The node answered with an error payload (expired reference
      block, missing authority, assertion failure ...).
    - SIGNING: The signing collaborator failed or returned no signatures.
    - CONFIG_ERROR: Bad key, unknown account, empty endpoint list.
    - UNKNOWN: Anything else.
    """
    TRANSIENT = "transient"
    REJECTED = "rejected"
    SIGNING = "signing"
    CONFIG_ERROR = "config_error"
    UNKNOWN = "unknown"


class ChainError(Exception):
    """Base class for errors raised while talking to the chain."""


class RpcError(ChainError):
    """A node or index returned an HTTP error or an error payload."""

    def __init__(self, message: str, status: int = 0, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status = status
        self.payload = payload or {}

    @classmethod
    def from_payload(cls, status: int, payload: Dict[str, Any]) -> "RpcError":
        """Build an error from a nodeos ``{"error": {...}}`` response."""
        error = payload.get("error") or {}
        details = error.get("details") or []
        if details and isinstance(details[0], dict) and details[0].get("message"):
            message = details[0]["message"]
        else:
            message = error.get("what") or payload.get("message") or f"HTTP {status}"
        return cls(message, status=status, payload=payload)


class SigningError(ChainError):
    """The signing collaborator could not produce signatures."""


class ConfigError(Exception):
    """Invalid configuration detected at startup."""


def classify_error(exception: BaseException) -> ErrorType:
    """Map an exception raised during a chain call to an :class:`ErrorType`."""
    if isinstance(exception, SigningError):
        return ErrorType.SIGNING
    if isinstance(exception, ConfigError):
        return ErrorType.CONFIG_ERROR
    if isinstance(exception, RpcError):
        if exception.status >= 500 and not exception.payload.get("error"):
            return ErrorType.TRANSIENT
        return ErrorType.REJECTED
    if isinstance(exception, (asyncio.TimeoutError, aiohttp.ClientError)):
        return ErrorType.TRANSIENT
    return ErrorType.UNKNOWN
