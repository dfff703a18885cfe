"""Exceptions raised by httpreq."""

from __future__ import annotations

from typing import Mapping


class HttpReqError(Exception):
    """Base exception for all httpreq failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: object = None,
        headers: Mapping[str, str] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers) if headers is not None else {}
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return str(self.args[0])
        return f"{self.args[0]}: {self.cause}"


class BuildError(HttpReqError):
    """Raised when a request cannot be constructed, e.g. a malformed URL."""


class SerializationError(HttpReqError):
    """Raised when a structured body cannot be encoded."""


class TransportError(HttpReqError):
    """Raised for network-level failures like DNS, TCP or TLS errors."""


class RequestTimeoutError(TransportError):
    """Raised when a request exceeds its configured deadline."""


class ExpectationError(HttpReqError):
    """Raised when a response does not match what a middleware expected."""


class ProxyConfigError(HttpReqError):
    """Raised for proxy settings that cannot be parsed."""


class UnsupportedTransportError(HttpReqError):
    """Raised when the client transport does not expose a requested knob."""


class ConfigError(HttpReqError):
    """Raised for invalid environment configuration."""


class UseLastResponse(Exception):
    """Raised by a redirect policy to return the redirect response unfollowed."""
