"""Response adapter returned by every executor."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from .exceptions import SerializationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class Response:
    """Wrap an ``httpx.Response`` with cached body access."""

    def __init__(self, raw: httpx.Response, request: httpx.Request) -> None:
        self.raw = raw
        self.request = request
        self._content: bytes | None = None

    @property
    def status_code(self) -> int:
        return self.raw.status_code

    @property
    def status(self) -> str:
        """Status line without the protocol, e.g. ``"200 OK"``."""
        reason = self.raw.reason_phrase
        if reason:
            return f"{self.raw.status_code} {reason}"
        return str(self.raw.status_code)

    @property
    def ok(self) -> bool:
        return self.raw.is_success

    @property
    def headers(self) -> httpx.Headers:
        return self.raw.headers

    @property
    def cookies(self) -> httpx.Cookies:
        return self.raw.cookies

    @property
    def content(self) -> bytes:
        if self._content is None:
            self._content = self.raw.read()
        return self._content

    @property
    def text(self) -> str:
        encoding = self.raw.encoding or "utf-8"
        return self.content.decode(encoding, errors="replace")

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"<Response [{self.status}]>"

    def json(self) -> Any:
        try:
            return json.loads(self.content)
        except ValueError as exc:
            raise SerializationError("Response body is not valid JSON", cause=exc)

    def bind_json(self, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate_json(self.content)
        except ValueError as exc:
            raise SerializationError(f"Cannot bind response to {model.__name__}", cause=exc)

    def bind_xml(self, model: type[ModelT]) -> ModelT:
        """Validate an XML body into ``model`` using the root's child elements."""
        try:
            root = ET.fromstring(self.content)
        except ET.ParseError as exc:
            raise SerializationError("Response body is not valid XML", cause=exc)
        fields = {child.tag: (child.text or "") for child in root}
        try:
            return model.model_validate(fields)
        except ValueError as exc:
            raise SerializationError(f"Cannot bind response to {model.__name__}", cause=exc)

    def close(self) -> None:
        self.raw.close()
