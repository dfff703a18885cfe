"""Option-driven HTTP requests with composable middleware."""

from .body import marshal, marshal_string
from .client import (
    Client,
    RedirectCheck,
    default_client,
    get,
    head,
    post,
    post_form,
    request,
)
from .context import Context, request_context
from .exceptions import (
    BuildError,
    ConfigError,
    ExpectationError,
    HttpReqError,
    ProxyConfigError,
    RequestTimeoutError,
    SerializationError,
    TransportError,
    UnsupportedTransportError,
    UseLastResponse,
)
from .middleware import (
    Executor,
    Middleware,
    chain,
    debug_middleware,
    empty_middleware,
    expect_status_middleware,
)
from .options import (
    Option,
    Options,
    build_options,
    options_from_env,
    with_basic_auth,
    with_body,
    with_cookie,
    with_debug,
    with_form,
    with_form_values,
    with_header,
    with_headers,
    with_kv,
    with_middleware,
    with_query,
    with_query_values,
    with_retry_delay,
    with_retry_times,
    with_timeout,
)
from .response import Response
from .security import basic_auth
from .transport import DialBackend, ProxyConfig, TransportSettings

__all__ = [
    "Client",
    "DialBackend",
    "ProxyConfig",
    "TransportSettings",
    "RedirectCheck",
    "default_client",
    "request",
    "get",
    "head",
    "post",
    "post_form",
    "Context",
    "request_context",
    "Response",
    "Executor",
    "Middleware",
    "chain",
    "empty_middleware",
    "debug_middleware",
    "expect_status_middleware",
    "Option",
    "Options",
    "build_options",
    "options_from_env",
    "with_basic_auth",
    "with_body",
    "with_cookie",
    "with_debug",
    "with_form",
    "with_form_values",
    "with_header",
    "with_headers",
    "with_kv",
    "with_middleware",
    "with_query",
    "with_query_values",
    "with_retry_delay",
    "with_retry_times",
    "with_timeout",
    "marshal",
    "marshal_string",
    "basic_auth",
    "HttpReqError",
    "BuildError",
    "SerializationError",
    "TransportError",
    "RequestTimeoutError",
    "ExpectationError",
    "ProxyConfigError",
    "UnsupportedTransportError",
    "ConfigError",
    "UseLastResponse",
]
