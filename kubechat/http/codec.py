"""
HTTP/1.1 wire codec over raw asyncio streams.

Decoding reads a request incrementally from an ``asyncio.StreamReader``:
the request line, header lines up to the blank line, then exactly
``Content-Length`` body bytes.  There is no chunked transfer coding and no
keep-alive: every response is framed with ``Content-Length`` and
``Connection: close``.

Encoding is a pure function from ``Response`` to bytes.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Any

from kubechat.http.errors import (
    BodyTooLarge,
    HeadersTooLarge,
    IncompleteRequest,
    MalformedHeader,
    MalformedStartLine,
    ReadTimeout,
    UnsupportedTransferEncoding,
)

API_KEY_HEADER = "X-API-Key"

_CRLF = b"\r\n"


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    OTHER = "OTHER"

    @classmethod
    def classify(cls, token: str) -> "Method":
        if token == "GET":
            return cls.GET
        if token == "POST":
            return cls.POST
        return cls.OTHER


class Headers(MutableMapping[str, str]):
    """
    Ordered, case-insensitive header mapping.

    Lookups ignore case.  Setting an existing name replaces its value (last
    wins) while keeping the original position.  Iteration yields lower-cased
    names; ``raw_items`` yields the names as last written.
    """

    def __init__(self, items: Mapping[str, str] | Iterable[tuple[str, str]] | None = None):
        self._store: dict[str, tuple[str, str]] = {}
        if items is not None:
            pairs = items.items() if isinstance(items, Mapping) else items
            for name, value in pairs:
                self[name] = value

    def __getitem__(self, name: str) -> str:
        return self._store[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        self._store[name.lower()] = (name, value)

    def __delitem__(self, name: str) -> None:
        del self._store[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def raw_items(self) -> list[tuple[str, str]]:
        return list(self._store.values())

    def copy(self) -> "Headers":
        return Headers(self.raw_items())

    def __repr__(self) -> str:
        return f"Headers({self.raw_items()!r})"


@dataclass
class CodecLimits:
    max_body_bytes: int = 100_000
    max_header_bytes: int = 16_384
    max_header_count: int = 100
    read_timeout: float = 10.0
    request_timeout: float = 180.0

    @classmethod
    def from_config(cls, server_cfg: Any) -> "CodecLimits":
        return cls(
            max_body_bytes=server_cfg.max_body_bytes,
            max_header_bytes=server_cfg.max_header_bytes,
            max_header_count=server_cfg.max_header_count,
            read_timeout=server_cfg.read_timeout_seconds,
            request_timeout=server_cfg.request_timeout_seconds,
        )


@dataclass
class Request:
    method: str
    target: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def kind(self) -> Method:
        return Method.classify(self.method)

    @property
    def path(self) -> str:
        return self.target.split("?", 1)[0]

    @property
    def query(self) -> str:
        parts = self.target.split("?", 1)
        return parts[1] if len(parts) == 2 else ""

    @property
    def api_key(self) -> str | None:
        return self.headers.get(API_KEY_HEADER)

    @property
    def content_type(self) -> str:
        """Media type without parameters, lower-cased (``""`` if absent)."""
        raw = self.headers.get("content-type", "")
        return raw.split(";", 1)[0].strip().lower()


@dataclass
class Response:
    status: int
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""

    @classmethod
    def text(
        cls,
        status: int,
        body: str,
        content_type: str = "text/plain; charset=utf-8",
    ) -> "Response":
        return cls(
            status=status,
            headers=Headers({"Content-Type": content_type}),
            body=body.encode("utf-8"),
        )

    @classmethod
    def json(cls, status: int, payload: Any) -> "Response":
        return cls(
            status=status,
            headers=Headers({"Content-Type": "application/json"}),
            body=json.dumps(payload).encode("utf-8"),
        )


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

async def _read_line(
    reader: asyncio.StreamReader,
    limits: CodecLimits,
    first: bool = False,
) -> bytes:
    try:
        line = await asyncio.wait_for(
            reader.readuntil(b"\n"), timeout=limits.read_timeout
        )
    except asyncio.TimeoutError:
        raise ReadTimeout("Timed out reading request head") from None
    except asyncio.IncompleteReadError as e:
        if first and not e.partial:
            raise IncompleteRequest("Connection closed before any data") from None
        raise IncompleteRequest("Connection closed mid-request head") from None
    except asyncio.LimitOverrunError:
        raise HeadersTooLarge("Request head line too long") from None
    return line


def _parse_start_line(line: bytes) -> tuple[str, str, str]:
    try:
        text = line.rstrip(b"\r\n").decode("ascii")
    except UnicodeDecodeError:
        raise MalformedStartLine("Request line is not ASCII") from None

    parts = text.split(" ")
    if len(parts) != 3 or not all(parts):
        raise MalformedStartLine(f"Invalid request line: {text[:200]!r}")

    method, target, version = parts
    if not version.startswith("HTTP/"):
        raise MalformedStartLine(f"Invalid HTTP version: {version[:50]!r}")
    return method, target, version


def _parse_header_line(line: bytes) -> tuple[str, str]:
    try:
        text = line.rstrip(b"\r\n").decode("latin-1")
    except UnicodeDecodeError:  # pragma: no cover - latin-1 decodes every byte
        raise MalformedHeader("Undecodable header line") from None

    if text[:1] in (" ", "\t"):
        raise MalformedHeader("Folded header lines are not supported")
    if ":" not in text:
        raise MalformedHeader(f"Header line missing ':': {text[:200]!r}")

    name, value = text.split(":", 1)
    if not name or name != name.strip() or " " in name:
        raise MalformedHeader(f"Invalid header name: {name[:100]!r}")
    return name, value.strip()


def _content_length(headers: Headers, limits: CodecLimits) -> int:
    raw = headers.get("content-length")
    if raw is None:
        if "transfer-encoding" in headers:
            raise UnsupportedTransferEncoding(
                "Transfer-Encoding is not supported; send Content-Length"
            )
        return 0

    if not (raw.isascii() and raw.isdigit()):
        raise MalformedHeader(f"Invalid Content-Length: {raw[:50]!r}")
    length = int(raw)
    if length > limits.max_body_bytes:
        raise BodyTooLarge(
            f"Request body too large: {length} > {limits.max_body_bytes}"
        )
    return length


async def decode(reader: asyncio.StreamReader, limits: CodecLimits) -> Request:
    """
    Read one complete request from *reader*.

    Raises a ``TransportError`` subclass when the bytes on the wire cannot
    form a request within *limits*.
    """
    line = await _read_line(reader, limits, first=True)
    head_bytes = len(line)
    if head_bytes > limits.max_header_bytes:
        raise HeadersTooLarge("Request line too long")
    method, target, version = _parse_start_line(line)

    headers = Headers()
    count = 0
    while True:
        line = await _read_line(reader, limits)
        head_bytes += len(line)
        if head_bytes > limits.max_header_bytes:
            raise HeadersTooLarge(
                f"Request head exceeds {limits.max_header_bytes} bytes"
            )
        if line in (_CRLF, b"\n"):
            break
        count += 1
        if count > limits.max_header_count:
            raise HeadersTooLarge(
                f"Too many headers: more than {limits.max_header_count}"
            )
        name, value = _parse_header_line(line)
        headers[name] = value

    length = _content_length(headers, limits)
    body = b""
    if length:
        try:
            body = await asyncio.wait_for(
                reader.readexactly(length), timeout=limits.read_timeout
            )
        except asyncio.TimeoutError:
            raise ReadTimeout("Timed out reading request body") from None
        except asyncio.IncompleteReadError as e:
            raise IncompleteRequest(
                f"Incomplete body: expected {length}, got {len(e.partial)}"
            ) from None

    return Request(
        method=method,
        target=target,
        headers=headers,
        body=body,
        version=version,
    )


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


def _clean(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ")


def _head(start_line: str, headers: Headers) -> bytes:
    lines = [start_line]
    lines.extend(f"{_clean(n)}: {_clean(v)}" for n, v in headers.raw_items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1", errors="replace")


def encode(response: Response) -> bytes:
    """Serialize *response*, forcing Content-Length and Connection: close."""
    headers = response.headers.copy()
    headers["Content-Length"] = str(len(response.body))
    headers["Connection"] = "close"
    start = f"HTTP/1.1 {response.status} {_reason(response.status)}"
    return _head(start, headers) + response.body


def encode_request(request: Request) -> bytes:
    """Serialize *request* with a Content-Length matching its body."""
    headers = request.headers.copy()
    if request.body or request.method == "POST":
        headers["Content-Length"] = str(len(request.body))
    start = f"{request.method} {request.target} {request.version}"
    return _head(start, headers) + request.body
