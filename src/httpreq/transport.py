"""Transports behind :class:`httpreq.client.Client`.

The client hands ``httpx`` a :class:`TransportSlot` whose target can be
swapped at runtime. Proxy, dial and TLS settings live in
:class:`TransportSettings`; changing one of them builds a new target.
"""

from __future__ import annotations

import contextlib
import ssl
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Union

import httpcore
import httpx

from .exceptions import ProxyConfigError

Dial = Callable[[str, int, Optional[float]], httpcore.NetworkStream]
ProxyTarget = Union[str, httpx.URL, httpx.Proxy, "ProxyConfig"]
ProxyFunc = Callable[[httpx.Request], Optional[ProxyTarget]]

_ERROR_MAP: list[tuple[type[Exception], type[httpx.HTTPError]]] = [
    (httpcore.ConnectTimeout, httpx.ConnectTimeout),
    (httpcore.ReadTimeout, httpx.ReadTimeout),
    (httpcore.WriteTimeout, httpx.WriteTimeout),
    (httpcore.PoolTimeout, httpx.PoolTimeout),
    (httpcore.TimeoutException, httpx.TimeoutException),
    (httpcore.ConnectError, httpx.ConnectError),
    (httpcore.ReadError, httpx.ReadError),
    (httpcore.WriteError, httpx.WriteError),
    (httpcore.NetworkError, httpx.NetworkError),
    (httpcore.ProxyError, httpx.ProxyError),
    (httpcore.UnsupportedProtocol, httpx.UnsupportedProtocol),
    (httpcore.RemoteProtocolError, httpx.RemoteProtocolError),
    (httpcore.LocalProtocolError, httpx.LocalProtocolError),
    (httpcore.ProtocolError, httpx.ProtocolError),
]


@dataclass
class ProxyConfig:
    url: str
    auth: tuple[str, str] | None = None

    def to_httpx_proxy(self) -> httpx.Proxy:
        return httpx.Proxy(self.url, auth=self.auth)


def resolve_proxy(proxy: ProxyTarget) -> httpx.Proxy:
    """Turn any accepted proxy value into an ``httpx.Proxy``."""
    try:
        if isinstance(proxy, ProxyConfig):
            return proxy.to_httpx_proxy()
        if isinstance(proxy, httpx.Proxy):
            return proxy
        return httpx.Proxy(proxy)
    except (httpx.InvalidURL, ValueError, TypeError) as exc:
        raise ProxyConfigError(f"Invalid proxy URL: {proxy!r}", cause=exc)


@contextlib.contextmanager
def _map_httpcore_errors() -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        for core_error, httpx_error in _ERROR_MAP:
            if isinstance(exc, core_error):
                raise httpx_error(str(exc)) from exc
        raise


class DialBackend(httpcore.NetworkBackend):
    """Network backend that opens TCP connections through a dial function."""

    def __init__(self, dial: Dial, backend: httpcore.NetworkBackend | None = None) -> None:
        self._dial = dial
        self._backend = backend or httpcore.SyncBackend()

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Any = None,
    ) -> httpcore.NetworkStream:
        return self._dial(host, port, timeout)

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Any = None,
    ) -> httpcore.NetworkStream:
        return self._backend.connect_unix_socket(path, timeout=timeout, socket_options=socket_options)

    def sleep(self, seconds: float) -> None:
        self._backend.sleep(seconds)


class _CoreResponseStream(httpx.SyncByteStream):
    def __init__(self, stream: Any) -> None:
        self._stream = stream

    def __iter__(self) -> Iterator[bytes]:
        with _map_httpcore_errors():
            for part in self._stream:
                yield part

    def close(self) -> None:
        if hasattr(self._stream, "close"):
            self._stream.close()


class DialTransport(httpx.BaseTransport):
    """Transport over an httpcore pool built with a custom network backend."""

    def __init__(self, pool: httpcore.ConnectionPool) -> None:
        self._pool = pool

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.stream,
            extensions=request.extensions,
        )
        with _map_httpcore_errors():
            core_response = self._pool.handle_request(core_request)
        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            stream=_CoreResponseStream(core_response.stream),
            extensions=core_response.extensions,
        )

    def close(self) -> None:
        self._pool.close()


class ProxyRouter(httpx.BaseTransport):
    """Pick a proxy for every request through a user supplied function.

    The function receives the outgoing ``httpx.Request`` and returns a proxy
    URL, ``httpx.Proxy``, ``ProxyConfig`` or ``None`` for a direct
    connection. One transport is kept per distinct proxy.
    """

    def __init__(
        self,
        select: ProxyFunc,
        build: Callable[[httpx.Proxy | None], httpx.BaseTransport],
    ) -> None:
        self._select = select
        self._build = build
        self._transports: dict[tuple[str, Any] | None, httpx.BaseTransport] = {}
        self._lock = threading.Lock()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        target = self._select(request)
        proxy = resolve_proxy(target) if target is not None else None
        key = (str(proxy.url), proxy.raw_auth) if proxy is not None else None
        with self._lock:
            transport = self._transports.get(key)
            if transport is None:
                transport = self._transports[key] = self._build(proxy)
        return transport.handle_request(request)

    def close(self) -> None:
        with self._lock:
            transports = list(self._transports.values())
            self._transports.clear()
        for transport in transports:
            transport.close()


class TransportSlot(httpx.BaseTransport):
    """Stable transport given to ``httpx.Client`` that forwards to a swappable target."""

    def __init__(self, target: httpx.BaseTransport) -> None:
        self.target = target

    def replace(self, target: httpx.BaseTransport) -> httpx.BaseTransport:
        previous, self.target = self.target, target
        return previous

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self.target.handle_request(request)

    def close(self) -> None:
        self.target.close()


@dataclass
class TransportSettings:
    """Knobs used to (re)build the client's transport."""

    verify: ssl.SSLContext | bool = True
    proxy: httpx.Proxy | None = None
    proxy_func: ProxyFunc | None = None
    local_address: str | None = None
    retries: int = 0
    network_backend: httpcore.NetworkBackend | None = None
    limits: httpx.Limits = field(
        default_factory=lambda: httpx.Limits(max_connections=100, max_keepalive_connections=20)
    )

    def build(self) -> httpx.BaseTransport:
        if self.proxy_func is not None:
            return ProxyRouter(self.proxy_func, self.build_for)
        return self.build_for(self.proxy)

    def build_for(self, proxy: httpx.Proxy | None) -> httpx.BaseTransport:
        if self.network_backend is None:
            return httpx.HTTPTransport(
                verify=self.verify,
                proxy=proxy,
                local_address=self.local_address,
                retries=self.retries,
                limits=self.limits,
            )
        return DialTransport(self._pool(proxy))

    def _pool(self, proxy: httpx.Proxy | None) -> httpcore.ConnectionPool:
        common: dict[str, Any] = {
            "ssl_context": httpx.create_ssl_context(verify=self.verify),
            "max_connections": self.limits.max_connections,
            "max_keepalive_connections": self.limits.max_keepalive_connections,
            "keepalive_expiry": self.limits.keepalive_expiry,
            "retries": self.retries,
            "network_backend": self.network_backend,
        }
        if proxy is None:
            return httpcore.ConnectionPool(local_address=self.local_address, **common)
        if proxy.url.scheme in ("socks5", "socks5h"):
            return httpcore.SOCKSProxy(proxy_url=str(proxy.url), proxy_auth=proxy.raw_auth, **common)
        return httpcore.HTTPProxy(
            proxy_url=str(proxy.url),
            proxy_auth=proxy.raw_auth,
            proxy_headers=proxy.headers.raw,
            local_address=self.local_address,
            **common,
        )
