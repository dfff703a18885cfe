"""Request body materialisation and JSON helpers."""

from __future__ import annotations

import io
import json
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Union
from urllib.parse import urlencode

from pydantic import BaseModel

from .exceptions import SerializationError

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

MultiValues = Mapping[str, Union[str, Iterable[str]]]


@dataclass(frozen=True)
class PreparedBody:
    """A fully buffered body that can be replayed any number of times."""

    content: bytes
    content_type: str | None = None

    @property
    def length(self) -> int:
        return len(self.content)

    @property
    def empty(self) -> bool:
        return not self.content

    def open(self) -> io.BytesIO:
        """Return a fresh reader positioned at the start of the body."""
        return io.BytesIO(self.content)


def _dump_json(value: Any) -> bytes:
    if isinstance(value, BaseModel):
        return value.model_dump_json().encode("utf-8")
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def materialize_body(value: Any) -> PreparedBody:
    """Turn a configured body into replayable bytes.

    Raw payloads (bytes, strings, readable file objects) are captured as-is.
    Anything else is encoded as JSON once and marked ``application/json``.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return PreparedBody(bytes(value))
    if isinstance(value, str):
        return PreparedBody(value.encode("utf-8"))
    read = getattr(value, "read", None)
    if callable(read):
        data = read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        return PreparedBody(bytes(data))
    try:
        data = _dump_json(value)
    except (TypeError, ValueError) as exc:
        raise SerializationError(
            f"Cannot encode body of type {type(value).__name__} as JSON", cause=exc
        )
    return PreparedBody(data, content_type=JSON_CONTENT_TYPE)


def marshal(value: Any) -> bytes:
    """Encode ``value`` as JSON, returning ``b""`` when it cannot be encoded."""
    try:
        return _dump_json(value)
    except (TypeError, ValueError):
        return b""


def marshal_string(value: Any) -> str:
    """Encode ``value`` as JSON text, returning ``""`` when it cannot be encoded."""
    return marshal(value).decode("utf-8")


def iter_pairs(values: MultiValues) -> Iterator[tuple[str, str]]:
    """Flatten a mapping of single or repeated values into key/value pairs."""
    for key, value in values.items():
        if isinstance(value, str):
            yield key, value
            continue
        for item in value:
            yield key, str(item)


def encode_form(values: MultiValues) -> str:
    return urlencode(list(iter_pairs(values)))
