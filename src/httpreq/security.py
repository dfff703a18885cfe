"""Authentication and URL helpers."""

from __future__ import annotations

import base64
from typing import Mapping

import httpx

from .exceptions import BuildError


SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
}


def basic_auth(username: str, password: str) -> str:
    """Return the base64 token used by HTTP basic authentication."""
    return base64.b64encode(f"{username}:{password}".encode()).decode("ascii")


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with sensitive values redacted for logging."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def validate_url(url: str | httpx.URL) -> httpx.URL:
    """Parse ``url`` and reject anything that is not an absolute http(s) URL."""
    if isinstance(url, str) and "\x00" in url:
        raise BuildError("Invalid URL characters")
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise BuildError(f"Malformed URL: {url!r}", cause=exc)
    if parsed.scheme not in {"http", "https"}:
        raise BuildError(f"Unsupported URL scheme: {parsed.scheme!r}")
    if not parsed.host:
        raise BuildError("URL must include a host")
    return parsed
