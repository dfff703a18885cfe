from __future__ import annotations

import ssl

import httpcore
import httpx
import pytest

from httpreq.client import Client
from httpreq.exceptions import (
    ProxyConfigError,
    TransportError,
    UnsupportedTransportError,
    UseLastResponse,
)
from httpreq.options import with_cookie
from httpreq.transport import DialBackend, DialTransport, ProxyConfig, ProxyRouter


def test_set_proxy_rebuilds_transport() -> None:
    with Client() as client:
        before = client._transport
        client.set_proxy_url("http://proxy.local:8080")

        assert client._transport is not before
        assert isinstance(client._transport, httpx.HTTPTransport)
        assert client._slot is not None
        assert client._slot.target is client._transport
        assert client._settings is not None
        assert client._settings.proxy is not None
        assert client._settings.proxy.url == httpx.URL("http://proxy.local:8080")


def test_set_proxy_with_credentials() -> None:
    with Client() as client:
        client.set_proxy(ProxyConfig("http://proxy.local:3128", auth=("user", "pass")))

        assert client._settings is not None
        assert client._settings.proxy.auth == ("user", "pass")


def test_set_proxy_rejects_unknown_scheme() -> None:
    with Client() as client:
        with pytest.raises(ProxyConfigError):
            client.set_proxy("ftp://proxy.local")
        assert client._settings is not None
        assert client._settings.proxy is None


def test_transport_knobs_fail_on_foreign_transport() -> None:
    with Client() as client:
        client.set_transport(httpx.MockTransport(lambda request: httpx.Response(200)))

        with pytest.raises(UnsupportedTransportError):
            client.set_proxy("http://proxy.local:8080")
        with pytest.raises(UnsupportedTransportError):
            client.set_dial(lambda host, port, timeout: None)
        with pytest.raises(UnsupportedTransportError):
            client.set_dial_tls(ssl.create_default_context())


def test_transport_knobs_fail_on_user_supplied_client() -> None:
    with Client(http_client=httpx.Client()) as client:
        with pytest.raises(UnsupportedTransportError):
            client.set_proxy("http://proxy.local:8080")
        with pytest.raises(UnsupportedTransportError):
            client.set_transport(httpx.MockTransport(lambda request: httpx.Response(200)))


def test_set_dial_installs_dial_backend() -> None:
    with Client() as client:
        client.set_dial(lambda host, port, timeout: None)

        assert client._settings is not None
        assert isinstance(client._settings.network_backend, DialBackend)
        assert isinstance(client._transport, DialTransport)


def test_set_dial_tls_uses_ssl_context() -> None:
    context = ssl.create_default_context()
    with Client() as client:
        client.set_dial_tls(context)

        assert client._settings is not None
        assert client._settings.verify is context


def test_dial_backend_delegates_tcp_connections() -> None:
    calls: list[tuple[str, int, float | None]] = []
    sentinel = object()

    def dial(host: str, port: int, timeout: float | None):
        calls.append((host, port, timeout))
        return sentinel

    backend = DialBackend(dial)

    assert backend.connect_tcp("example.com", 443, timeout=2.0) is sentinel
    assert calls == [("example.com", 443, 2.0)]


def test_redirect_and_timeout_settings() -> None:
    with Client() as client:
        client.set_redirect_policy(False, max_redirects=3)
        client.set_timeout(2.5)

        assert client.http.follow_redirects is False
        assert client.http.max_redirects == 3
        assert client.http.timeout == httpx.Timeout(2.5)


def test_cookie_jar_is_sent_with_option_cookies() -> None:
    captured: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["cookie"] = request.headers["cookie"]
        return httpx.Response(200)

    with Client() as client:
        client.set_transport(httpx.MockTransport(handler))
        client.set_cookie_jar(httpx.Cookies({"jar": "1"}))
        client.get("http://testserver/", with_cookie("opt", "2"))

    assert captured["cookie"] == "jar=1; opt=2"


def test_set_proxy_accepts_function() -> None:
    def select(request: httpx.Request) -> str | None:
        return None

    with Client() as client:
        client.set_proxy(select)

        assert isinstance(client._transport, ProxyRouter)
        assert client._settings is not None
        assert client._settings.proxy_func is select
        assert client._settings.proxy is None


def test_proxy_router_picks_proxy_per_request() -> None:
    built: list[httpx.Proxy | None] = []

    def build(proxy: httpx.Proxy | None) -> httpx.BaseTransport:
        built.append(proxy)
        label = str(proxy.url) if proxy is not None else "direct"
        return httpx.MockTransport(lambda request: httpx.Response(200, text=label))

    def select(request: httpx.Request) -> ProxyConfig | None:
        if request.url.host == "internal.local":
            return None
        return ProxyConfig("http://proxy.local:3128", auth=("user", "pass"))

    router = ProxyRouter(select, build)
    with httpx.Client(transport=router) as http:
        assert http.get("http://example.com/").text == "http://proxy.local:3128"
        assert http.get("http://example.org/").text == "http://proxy.local:3128"
        assert http.get("http://internal.local/").text == "direct"

    assert len(built) == 2
    assert built[0] is not None and built[0].raw_auth == (b"user", b"pass")
    assert built[1] is None


def test_proxy_function_with_bad_url_fails_request() -> None:
    with Client() as client:
        client.set_proxy(lambda request: "ftp://proxy.local")

        with pytest.raises(ProxyConfigError):
            client.get("http://example.com/")


def _redirecting(calls: list[str]):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/a":
            return httpx.Response(302, headers={"Location": "/b"})
        if request.url.path == "/b":
            return httpx.Response(302, headers={"Location": "/c"})
        return httpx.Response(200, text="done")

    return handler


def test_redirect_policy_function_sees_every_hop() -> None:
    calls: list[str] = []
    hops: list[tuple[str, list[str]]] = []

    def policy(request: httpx.Request, via: list[httpx.Request]) -> None:
        hops.append((str(request.url), [str(previous.url) for previous in via]))

    with Client(http_client=httpx.Client(transport=httpx.MockTransport(_redirecting(calls)))) as client:
        client.set_redirect_policy(policy)
        response = client.get("http://testserver/a")

    assert response.text == "done"
    assert calls == ["/a", "/b", "/c"]
    assert hops == [
        ("http://testserver/b", ["http://testserver/a"]),
        ("http://testserver/c", ["http://testserver/a", "http://testserver/b"]),
    ]
    assert [hop.status_code for hop in response.raw.history] == [302, 302]


def test_redirect_policy_can_return_last_response() -> None:
    calls: list[str] = []

    def policy(request: httpx.Request, via: list[httpx.Request]) -> None:
        raise UseLastResponse()

    with Client(http_client=httpx.Client(transport=httpx.MockTransport(_redirecting(calls)))) as client:
        client.set_redirect_policy(policy)
        response = client.get("http://testserver/a")

    assert response.status_code == 302
    assert response.headers["location"] == "/b"
    assert calls == ["/a"]


def test_redirect_policy_error_stops_request() -> None:
    calls: list[str] = []

    def policy(request: httpx.Request, via: list[httpx.Request]) -> None:
        if request.url.path == "/c":
            raise ValueError("no third hop")

    with Client(http_client=httpx.Client(transport=httpx.MockTransport(_redirecting(calls)))) as client:
        client.set_redirect_policy(policy)
        with pytest.raises(TransportError) as exc_info:
            client.get("http://testserver/a")

    assert calls == ["/a", "/b"]
    assert "no third hop" in str(exc_info.value)


def test_redirect_policy_respects_max_redirects() -> None:
    calls: list[str] = []

    with Client(http_client=httpx.Client(transport=httpx.MockTransport(_redirecting(calls)))) as client:
        client.set_redirect_policy(lambda request, via: None, max_redirects=1)
        with pytest.raises(TransportError):
            client.get("http://testserver/a")

    assert calls == ["/a", "/b"]


def test_dial_function_opens_connections(raw_server) -> None:
    def respond(conn) -> None:
        conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\nConnection: close\r\n\r\nhi")

    server = raw_server(respond)
    dialed: list[tuple[str, int]] = []
    backend = httpcore.SyncBackend()

    def dial(host: str, port: int, timeout: float | None) -> httpcore.NetworkStream:
        dialed.append((host, port))
        return backend.connect_tcp("127.0.0.1", server.port, timeout=timeout)

    with Client() as client:
        client.set_dial(dial)
        response = client.get("http://service.internal/hello")

    assert response.text == "hi"
    assert dialed == [("service.internal", 80)]
    assert server.requests[0].startswith(b"GET /hello HTTP/1.1")
    assert b"Host: service.internal" in server.requests[0]


def test_proxy_function_receives_each_request(raw_server) -> None:
    def respond(conn) -> None:
        conn.sendall(b"HTTP/1.1 204 No Content\r\nConnection: close\r\n\r\n")

    server = raw_server(respond)
    seen: list[str] = []
    backend = httpcore.SyncBackend()

    def select(request: httpx.Request) -> None:
        seen.append(str(request.url))
        return None

    with Client() as client:
        client.set_dial(lambda host, port, timeout: backend.connect_tcp("127.0.0.1", server.port, timeout=timeout))
        client.set_proxy(select)
        response = client.get("http://service.internal/ping")

    assert response.status_code == 204
    assert seen == ["http://service.internal/ping"]
