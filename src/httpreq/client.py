"""Synchronous client built around an ``httpx.Client``."""

from __future__ import annotations

import contextlib
import logging
import ssl
import threading
import time
from http.cookiejar import CookieJar
from typing import Any, Callable, Iterator, Union

import httpcore
import httpx

from .body import FORM_CONTENT_TYPE, MultiValues, PreparedBody, encode_form, materialize_body
from .context import Context, attach_context, request_context
from .exceptions import (
    BuildError,
    HttpReqError,
    RequestTimeoutError,
    TransportError,
    UnsupportedTransportError,
    UseLastResponse,
)
from .middleware import Executor, chain, debug_middleware
from .options import Option, Options, build_options, options_from_env
from .response import Response
from .security import validate_url
from .transport import (
    Dial,
    DialBackend,
    ProxyFunc,
    ProxyTarget,
    TransportSettings,
    TransportSlot,
    resolve_proxy,
)

logger = logging.getLogger(__name__)

RedirectCheck = Callable[[httpx.Request, list[httpx.Request]], None]

_TIMEOUT_KEYS = ("connect", "read", "write", "pool")


def _encode_cookies(cookies: list[tuple[str, str]]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies)


def _with_body(request: httpx.Request, body: PreparedBody) -> httpx.Request:
    headers = httpx.Headers(request.headers)
    headers.pop("Content-Length", None)
    headers.pop("Transfer-Encoding", None)
    if body.content_type:
        headers["Content-Type"] = body.content_type
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        # An empty body is sent as no content at all rather than an empty stream.
        content=None if body.empty else body.content,
        extensions=dict(request.extensions),
    )


class _DeadlineStream(httpx.SyncByteStream):
    """Response body stream that gives up once the request deadline passes."""

    def __init__(self, stream: httpx.SyncByteStream, ctx: Context) -> None:
        self._stream = stream
        self._ctx = ctx

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._stream:
            if self._ctx.expired():
                raise RequestTimeoutError("Request deadline exceeded while reading the body")
            yield chunk

    def close(self) -> None:
        self._stream.close()


class Client:
    """HTTP client applying options and middleware around ``httpx``.

    Options passed to the constructor apply to every request and run before
    the options given to an individual call.
    """

    default_timeout = 30.0

    def __init__(
        self,
        *options: Option,
        http_client: httpx.Client | None = None,
        timeout: float | None = default_timeout,
        follow_redirects: bool = True,
        transport_settings: TransportSettings | None = None,
    ) -> None:
        self.options: list[Option] = list(options)
        self._settings: TransportSettings | None = None
        self._slot: TransportSlot | None = None
        self._transport: httpx.BaseTransport | None = None
        self._redirect_check: RedirectCheck | None = None
        if http_client is None:
            self._settings = transport_settings or TransportSettings()
            self._transport = self._settings.build()
            self._slot = TransportSlot(self._transport)
            http_client = httpx.Client(
                transport=self._slot,
                timeout=timeout,
                follow_redirects=follow_redirects,
                trust_env=False,
            )
        self.http = http_client

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.http.close()

    # client level mutators

    def set_transport(self, transport: httpx.BaseTransport) -> None:
        if self._slot is None:
            raise UnsupportedTransportError("Cannot replace the transport of a caller supplied httpx.Client")
        previous = self._slot.replace(transport)
        if previous is self._transport and previous is not transport:
            previous.close()

    def set_redirect_policy(
        self,
        policy: Union[bool, RedirectCheck] = True,
        max_redirects: int | None = None,
    ) -> None:
        """Follow redirects or not, or vet every hop with ``policy(request, via)``.

        A callable policy receives the next request and the requests made so
        far, oldest first. Raising :class:`UseLastResponse` returns the
        redirect response as is; any other exception aborts the request.
        """
        if callable(policy):
            self.http.follow_redirects = True
            self._redirect_check = policy
        else:
            self.http.follow_redirects = policy
            self._redirect_check = None
        if max_redirects is not None:
            self.http.max_redirects = max_redirects

    def set_cookie_jar(self, jar: CookieJar | httpx.Cookies) -> None:
        self.http.cookies = jar

    def set_timeout(self, timeout: float | None) -> None:
        self.http.timeout = timeout

    def set_proxy_url(self, url: str) -> None:
        self.set_proxy(url)

    def set_proxy(self, proxy: Union[ProxyTarget, ProxyFunc]) -> None:
        """Route requests through ``proxy``.

        ``proxy`` is a URL, ``httpx.Proxy`` or ``ProxyConfig``, or a function
        called with each request that returns one of those or ``None``.
        """
        if callable(proxy):
            func = proxy

            def update(settings: TransportSettings) -> None:
                settings.proxy = None
                settings.proxy_func = func

        else:
            resolved = resolve_proxy(proxy)

            def update(settings: TransportSettings) -> None:
                settings.proxy = resolved
                settings.proxy_func = None

        self._configure_transport("proxy", update)

    def set_dial(self, dial: Dial) -> None:
        self.set_dial_context(DialBackend(dial))

    def set_dial_context(self, backend: httpcore.NetworkBackend) -> None:
        self._configure_transport("dial", lambda settings: setattr(settings, "network_backend", backend))

    def set_dial_tls(self, ssl_context: ssl.SSLContext) -> None:
        self._configure_transport("TLS dial", lambda settings: setattr(settings, "verify", ssl_context))

    def _configure_transport(self, knob: str, update: Callable[[TransportSettings], None]) -> None:
        slot, settings = self._slot, self._settings
        if slot is None or settings is None:
            raise UnsupportedTransportError(f"Cannot set {knob} on a caller supplied httpx.Client")
        if slot.target is not self._transport:
            raise UnsupportedTransportError(f"Cannot set {knob} on transport {type(slot.target).__name__}")
        update(settings)
        self._transport = settings.build()
        slot.replace(self._transport).close()

    # request builders

    def _build_request(
        self,
        method: str,
        url: str | httpx.URL,
        *,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Request:
        parsed = validate_url(url)
        try:
            return self.http.build_request(method, parsed, content=content, headers=headers)
        except httpx.InvalidURL as exc:
            raise BuildError(f"Cannot build {method} request for {url!r}", cause=exc)

    def request(self, method: str, url: str | httpx.URL, *options: Option) -> Response:
        return self.do(self._build_request(method.upper(), url), *options)

    def get(self, url: str | httpx.URL, *options: Option) -> Response:
        return self.request("GET", url, *options)

    def head(self, url: str | httpx.URL, *options: Option) -> Response:
        return self.request("HEAD", url, *options)

    def post(self, url: str | httpx.URL, content_type: str, body: Any = None, *options: Option) -> Response:
        content = materialize_body(body).content if body is not None else None
        request = self._build_request("POST", url, content=content, headers={"Content-Type": content_type})
        return self.do(request, *options)

    def post_form(self, url: str | httpx.URL, data: MultiValues, *options: Option) -> Response:
        return self.post(url, FORM_CONTENT_TYPE, encode_form(data), *options)

    # pipeline

    def do(self, request: httpx.Request, *options: Option) -> Response:
        """Apply options to ``request`` and run it through the middleware chain.

        The whole chain is retried on :class:`HttpReqError` up to
        ``retry_times`` additional times. Errors raised while preparing the
        request are never retried.
        """
        opts = build_options(self.options, options)

        ctx = request_context(request)
        for key, value in opts.context_values:
            ctx = ctx.with_value(key, value)

        with contextlib.ExitStack() as stack:
            if opts.timeout > 0:
                ctx = stack.enter_context(ctx.with_timeout(opts.timeout))
            request = self._prepare(request, opts)
            attach_context(request, ctx)

            middlewares = list(opts.middlewares)
            if opts.debug:
                middlewares.append(debug_middleware(body=opts.debug_body))
            endpoint = chain(middlewares)(self._send)
            return self._execute(endpoint, request, opts)

    def _prepare(self, request: httpx.Request, opts: Options) -> httpx.Request:
        for key, values in opts.header.items():
            request.headers[key] = values[-1]

        body = opts.body
        if opts.form is not None:
            body = encode_form(opts.form)
            request.headers["Content-Type"] = FORM_CONTENT_TYPE

        if body is not None:
            request = _with_body(request, materialize_body(body))

        if opts.query:
            # Configured parameters replace the whole existing query string.
            request.url = request.url.copy_with(params=opts.query)

        if opts.cookies:
            cookie = _encode_cookies(opts.cookies)
            existing = request.headers.get("Cookie")
            request.headers["Cookie"] = f"{existing}; {cookie}" if existing else cookie

        return request

    def _execute(self, endpoint: Executor, request: httpx.Request, opts: Options) -> Response:
        attempts = max(0, opts.retry_times) + 1
        attempt = 1
        while True:
            try:
                return endpoint(request)
            except HttpReqError as exc:
                logger.debug(
                    "%s %s failed on attempt %d/%d: %s",
                    request.method,
                    request.url,
                    attempt,
                    attempts,
                    exc,
                )
                if attempt >= attempts:
                    raise
            attempt += 1
            if opts.retry_delay > 0:
                time.sleep(opts.retry_delay)

    def _send(self, request: httpx.Request) -> Response:
        ctx = request_context(request)
        try:
            raw = self._round_trip(request, ctx)
            self._read_body(raw, ctx)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError("Request timed out", cause=exc)
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError("Request failed", cause=exc)

        if ctx.expired():
            raise RequestTimeoutError("Request deadline exceeded")
        return Response(raw, request)

    def _round_trip(self, request: httpx.Request, ctx: Context) -> httpx.Response:
        _arm(request, ctx)
        check = self._redirect_check
        if check is None or not self.http.follow_redirects:
            return self.http.send(request, stream=True)

        history: list[httpx.Response] = []
        raw = self.http.send(request, stream=True, follow_redirects=False)
        while raw.next_request is not None:
            next_request = raw.next_request
            try:
                check(next_request, [hop.request for hop in history] + [raw.request])
            except UseLastResponse:
                break
            except HttpReqError:
                raw.close()
                raise
            except Exception as exc:
                raw.close()
                raise TransportError(f"Redirect to {next_request.url} refused", cause=exc)
            raw.read()
            raw.close()
            history.append(raw)
            if len(history) > self.http.max_redirects:
                raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=next_request)
            _arm(next_request, ctx)
            raw = self.http.send(next_request, stream=True, follow_redirects=False)
        raw.history = history
        return raw

    def _read_body(self, raw: httpx.Response, ctx: Context) -> None:
        # Each blocking read is bounded by the capped read timeout and the
        # deadline is checked between chunks.
        if ctx.deadline is not None:
            raw.stream = _DeadlineStream(raw.stream, ctx)
        try:
            raw.read()
        finally:
            raw.close()


def _arm(request: httpx.Request, ctx: Context) -> None:
    """Fail fast on a finished context and cap httpx timeouts to the deadline."""
    if ctx.cancelled:
        raise TransportError("Request context was cancelled")
    remaining = ctx.remaining()
    if remaining is not None:
        if remaining <= 0:
            raise RequestTimeoutError("Request deadline exceeded")
        request.extensions["timeout"] = _cap_timeouts(request.extensions.get("timeout"), remaining)


def _cap_timeouts(timeouts: dict[str, float | None] | None, remaining: float) -> dict[str, float | None]:
    capped = dict(timeouts or {})
    for key in _TIMEOUT_KEYS:
        current = capped.get(key)
        if current is None or current > remaining:
            capped[key] = remaining
    return capped


_default_client: Client | None = None
_default_client_lock = threading.Lock()


def default_client() -> Client:
    """Return the shared client, configured from ``HTTPREQ_*`` variables."""
    global _default_client
    if _default_client is None:
        with _default_client_lock:
            if _default_client is None:
                _default_client = Client(*options_from_env())
    return _default_client


def request(method: str, url: str | httpx.URL, *options: Option) -> Response:
    return default_client().request(method, url, *options)


def get(url: str | httpx.URL, *options: Option) -> Response:
    return default_client().get(url, *options)


def head(url: str | httpx.URL, *options: Option) -> Response:
    return default_client().head(url, *options)


def post(url: str | httpx.URL, content_type: str, body: Any = None, *options: Option) -> Response:
    return default_client().post(url, content_type, body, *options)


def post_form(url: str | httpx.URL, data: MultiValues, *options: Option) -> Response:
    return default_client().post_form(url, data, *options)
