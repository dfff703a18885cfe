"""Middleware chain and built-in middleware.

An executor takes a request and returns a :class:`Response` or raises an
:class:`~httpreq.exceptions.HttpReqError`. A middleware wraps one executor
into another; :func:`chain` nests a list of them so the first one registered
runs first on the way in and last on the way out.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

import httpx

from .exceptions import ExpectationError, HttpReqError
from .response import Response
from .security import sanitize_headers

Executor = Callable[[httpx.Request], Response]
Middleware = Callable[[Executor], Executor]


def empty_middleware(next: Executor) -> Executor:
    return next


def chain(middlewares: Sequence[Middleware]) -> Middleware:
    if not middlewares:
        return empty_middleware

    def middleware(next: Executor) -> Executor:
        return middlewares[0](chain(middlewares[1:])(next))

    return middleware


def _dump_request(request: httpx.Request, body: bool) -> str:
    target = request.url.raw_path.decode("ascii")
    lines = [f"{request.method} {target} HTTP/1.1"]
    lines.extend(f"{key}: {value}" for key, value in sanitize_headers(request.headers).items())
    dump = "\n".join(lines) + "\n\n"
    if body:
        dump += request.content.decode("utf-8", errors="replace")
    return dump


def _dump_response(response: Response) -> str:
    lines = [f"{response.raw.http_version} {response.status}"]
    lines.extend(f"{key}: {value}" for key, value in sanitize_headers(response.headers).items())
    return "\n".join(lines) + "\n\n" + response.text


def debug_middleware(body: bool = True, logger: logging.Logger | None = None) -> Middleware:
    """Log each request and response without changing either."""
    log = logger or logging.getLogger(__name__)

    def middleware(next: Executor) -> Executor:
        def execute(request: httpx.Request) -> Response:
            try:
                log.info("[http] HTTP Request: %s", _dump_request(request, body))
            except Exception:
                log.exception("[http] failed to dump request")

            try:
                response = next(request)
            except HttpReqError as exc:
                log.info("[http] HTTP Error: %s", exc)
                raise

            try:
                log.info("[http] HTTP Response: %s", _dump_response(response))
            except Exception:
                log.exception("[http] failed to dump response")
            return response

        return execute

    return middleware


def expect_status_middleware(code: int) -> Middleware:
    """Fail the call with :class:`ExpectationError` unless the status is ``code``."""

    def middleware(next: Executor) -> Executor:
        def execute(request: httpx.Request) -> Response:
            response = next(request)
            if response.status_code != code:
                body = response.text
                response.close()
                raise ExpectationError(
                    f"unexpected status code: {response.status}\n    Body: {body}",
                    status_code=response.status_code,
                    body=body,
                    headers=response.headers,
                )
            return response

        return execute

    return middleware
