"""Per-request execution context.

A :class:`Context` travels with an ``httpx.Request`` in its extensions and
carries caller supplied key/value pairs plus an optional deadline. Contexts
are immutable: ``with_value`` and ``with_timeout`` return derived contexts
that share their parent's cancellation state.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Hashable

import httpx

CONTEXT_EXTENSION = "httpreq.context"

_MISSING = object()


class Context:
    def __init__(
        self,
        parent: Context | None = None,
        *,
        key: Hashable = _MISSING,
        value: Any = None,
        deadline: float | None = None,
    ) -> None:
        self._parent = parent
        self._key = key
        self._value = value
        self._deadline = deadline
        self._cancelled = threading.Event()

    def with_value(self, key: Hashable, value: Any) -> Context:
        return Context(self, key=key, value=value)

    def with_timeout(self, timeout: float) -> Context:
        """Return a child context that expires ``timeout`` seconds from now.

        The child can be used as a context manager; leaving the ``with`` block
        cancels it whether or not the body raised.
        """
        deadline = time.monotonic() + timeout
        parent_deadline = self.deadline
        if parent_deadline is not None and parent_deadline < deadline:
            deadline = parent_deadline
        return Context(self, deadline=deadline)

    def value(self, key: Hashable, default: Any = None) -> Any:
        ctx: Context | None = self
        while ctx is not None:
            if ctx._key is not _MISSING and ctx._key == key:
                return ctx._value
            ctx = ctx._parent
        return default

    @property
    def deadline(self) -> float | None:
        ctx: Context | None = self
        while ctx is not None:
            if ctx._deadline is not None:
                return ctx._deadline
            ctx = ctx._parent
        return None

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without one."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def expired(self) -> bool:
        deadline = self.deadline
        return deadline is not None and time.monotonic() >= deadline

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        ctx: Context | None = self
        while ctx is not None:
            if ctx._cancelled.is_set():
                return True
            ctx = ctx._parent
        return False

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()


BACKGROUND = Context()


def request_context(request: httpx.Request) -> Context:
    """Return the context attached to ``request``, or the background one."""
    ctx = request.extensions.get(CONTEXT_EXTENSION)
    if isinstance(ctx, Context):
        return ctx
    return BACKGROUND


def attach_context(request: httpx.Request, ctx: Context) -> httpx.Request:
    request.extensions[CONTEXT_EXTENSION] = ctx
    return request
