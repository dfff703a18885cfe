"""Per-request configuration options.

Options are plain functions mutating an :class:`Options` record. Client level
options run first and call level options after them, so a call can override
what its client configured.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Hashable, Iterable, Mapping
from urllib.parse import quote_plus

from .body import MultiValues, iter_pairs
from .exceptions import ConfigError
from .security import basic_auth

if TYPE_CHECKING:
    from .middleware import Middleware


DEBUG_ENV_VAR = "HTTPREQ_DEBUG"
RETRY_TIMES_ENV_VAR = "HTTPREQ_RETRY_TIMES"
TIMEOUT_ENV_VAR = "HTTPREQ_TIMEOUT"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass
class Options:
    header: dict[str, list[str]] = field(default_factory=dict)
    body: Any = None
    query: dict[str, list[str]] = field(default_factory=dict)
    form: dict[str, list[str]] | None = None
    cookies: list[tuple[str, str]] = field(default_factory=list)
    retry_times: int = 0
    retry_delay: float = 0.0
    timeout: float = 0.0
    middlewares: list[Middleware] = field(default_factory=list)
    debug: bool = False
    debug_body: bool = True
    context_values: list[tuple[Hashable, Any]] = field(default_factory=list)


Option = Callable[[Options], None]


def build_options(*option_lists: Iterable[Option]) -> Options:
    """Apply each list of options in order to a fresh :class:`Options`."""
    opts = Options()
    for option_list in option_lists:
        for option in option_list:
            option(opts)
    return opts


def _add(multimap: dict[str, list[str]], key: str, value: str) -> None:
    multimap.setdefault(key, []).append(value)


def with_header(key: str, value: str) -> Option:
    def option(opts: Options) -> None:
        _add(opts.header, key, value)

    return option


def with_headers(headers: MultiValues) -> Option:
    def option(opts: Options) -> None:
        for key, value in iter_pairs(headers):
            _add(opts.header, key, value)

    return option


def with_body(body: Any) -> Option:
    def option(opts: Options) -> None:
        opts.body = body

    return option


def with_query(key: str, value: str) -> Option:
    def option(opts: Options) -> None:
        _add(opts.query, key, value)

    return option


def with_query_values(values: MultiValues) -> Option:
    def option(opts: Options) -> None:
        for key, value in iter_pairs(values):
            _add(opts.query, key, value)

    return option


def with_form(key: str, value: str) -> Option:
    def option(opts: Options) -> None:
        if opts.form is None:
            opts.form = {}
        _add(opts.form, key, value)

    return option


def with_form_values(values: MultiValues) -> Option:
    def option(opts: Options) -> None:
        if opts.form is None:
            opts.form = {}
        for key, value in iter_pairs(values):
            _add(opts.form, key, value)

    return option


def with_cookie(name: str, value: str) -> Option:
    def option(opts: Options) -> None:
        opts.cookies.append((name, quote_plus(value)))

    return option


def with_retry_times(retry_times: int) -> Option:
    def option(opts: Options) -> None:
        opts.retry_times = retry_times

    return option


def with_retry_delay(delay: float) -> Option:
    def option(opts: Options) -> None:
        opts.retry_delay = delay

    return option


def with_timeout(timeout: float) -> Option:
    def option(opts: Options) -> None:
        opts.timeout = timeout

    return option


def with_middleware(*middlewares: Middleware) -> Option:
    def option(opts: Options) -> None:
        opts.middlewares.extend(middlewares)

    return option


def with_debug(debug: bool, *, body: bool = True) -> Option:
    def option(opts: Options) -> None:
        opts.debug = debug
        opts.debug_body = body

    return option


def with_basic_auth(username: str, password: str) -> Option:
    return with_header("Authorization", "Basic " + basic_auth(username, password))


def with_kv(key: Hashable, value: Any) -> Option:
    def option(opts: Options) -> None:
        opts.context_values.append((key, value))

    return option


def _parse_bool(name: str, raw: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def options_from_env(environ: Mapping[str, str] | None = None) -> list[Option]:
    """Translate ``HTTPREQ_*`` environment variables into options."""
    env = os.environ if environ is None else environ
    options: list[Option] = []

    raw_debug = env.get(DEBUG_ENV_VAR)
    if raw_debug is not None and _parse_bool(DEBUG_ENV_VAR, raw_debug):
        options.append(with_debug(True))

    raw_retry = env.get(RETRY_TIMES_ENV_VAR)
    if raw_retry:
        try:
            retry_times = int(raw_retry)
        except ValueError as exc:
            raise ConfigError(f"{RETRY_TIMES_ENV_VAR} must be an integer", cause=exc)
        if retry_times < 0:
            raise ConfigError(f"{RETRY_TIMES_ENV_VAR} must be non-negative")
        options.append(with_retry_times(retry_times))

    raw_timeout = env.get(TIMEOUT_ENV_VAR)
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except ValueError as exc:
            raise ConfigError(f"{TIMEOUT_ENV_VAR} must be a number of seconds", cause=exc)
        options.append(with_timeout(timeout))

    return options
