"""Tests for the HTTP wire codec."""

from __future__ import annotations

import asyncio

import pytest

from kubechat.http.codec import (
    CodecLimits,
    Headers,
    Method,
    Request,
    Response,
    decode,
    encode,
    encode_request,
)
from kubechat.http.errors import (
    BodyTooLarge,
    HeadersTooLarge,
    IncompleteRequest,
    MalformedHeader,
    MalformedStartLine,
    ReadTimeout,
    UnsupportedTransferEncoding,
)


def _reader(data: bytes, eof: bool = True, limit: int = 2**16) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


async def _decode(data: bytes, limits: CodecLimits | None = None, eof: bool = True) -> Request:
    return await decode(_reader(data, eof=eof), limits or CodecLimits())


class TestHeaders:
    def test_case_insensitive_lookup(self):
        h = Headers({"Content-Type": "application/json"})
        assert h["content-type"] == "application/json"
        assert "CONTENT-TYPE" in h

    def test_last_value_wins(self):
        h = Headers([("X-API-Key", "first"), ("x-api-key", "second")])
        assert h["X-Api-Key"] == "second"
        assert len(h) == 1
        assert h.raw_items() == [("x-api-key", "second")]

    def test_copy_is_independent(self):
        h = Headers({"A": "1"})
        c = h.copy()
        c["A"] = "2"
        assert h["a"] == "1"


class TestDecode:
    async def test_simple_get(self):
        req = await _decode(b"GET / HTTP/1.1\r\nHost: x\r\nX-API-Key: k\r\n\r\n")
        assert req.method == "GET"
        assert req.kind is Method.GET
        assert req.path == "/"
        assert req.api_key == "k"
        assert req.body == b""

    async def test_post_with_body(self):
        body = b'{"prompt": "hi"}'
        data = (
            b"POST /chat?debug=1 HTTP/1.1\r\n"
            b"Content-Type: application/json; charset=utf-8\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n" + body
        )
        req = await _decode(data)
        assert req.kind is Method.POST
        assert req.path == "/chat"
        assert req.query == "debug=1"
        assert req.content_type == "application/json"
        assert req.body == body

    async def test_bare_lf_line_endings_accepted(self):
        req = await _decode(b"GET / HTTP/1.1\nHost: x\n\n")
        assert req.headers["host"] == "x"

    async def test_unknown_method_is_other(self):
        req = await _decode(b"DELETE /chat HTTP/1.1\r\n\r\n")
        assert req.kind is Method.OTHER
        assert req.method == "DELETE"

    async def test_body_not_read_beyond_content_length(self):
        reader = _reader(b"POST /chat HTTP/1.1\r\nContent-Length: 2\r\n\r\nokEXTRA")
        req = await decode(reader, CodecLimits())
        assert req.body == b"ok"

    @pytest.mark.parametrize(
        "line",
        [
            b"GET /\r\n\r\n",
            b"GET / HTTP/1.1 extra\r\n\r\n",
            b"GET  / HTTP/1.1\r\n\r\n",
            b"GET / FTP/1.0\r\n\r\n",
        ],
    )
    async def test_malformed_start_line(self, line):
        with pytest.raises(MalformedStartLine) as exc:
            await _decode(line)
        assert exc.value.status == 400

    async def test_header_without_colon(self):
        with pytest.raises(MalformedHeader):
            await _decode(b"GET / HTTP/1.1\r\nNoColonHere\r\n\r\n")

    async def test_folded_header_rejected(self):
        with pytest.raises(MalformedHeader):
            await _decode(b"GET / HTTP/1.1\r\nX-A: 1\r\n  continued\r\n\r\n")

    @pytest.mark.parametrize("value", [b"-5", b"\xb2", b"\xd9\xa3", b"1_0", b" "])
    async def test_invalid_content_length(self, value):
        with pytest.raises(MalformedHeader):
            await _decode(b"POST /chat HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n")

    async def test_oversized_body_rejected_before_reading(self):
        # no body bytes and no EOF: decode must not wait for the body
        data = b"POST /chat HTTP/1.1\r\nContent-Length: 1000001\r\n\r\n"
        limits = CodecLimits(max_body_bytes=1000, read_timeout=5.0)
        with pytest.raises(BodyTooLarge) as exc:
            await asyncio.wait_for(_decode(data, limits, eof=False), timeout=1.0)
        assert exc.value.status == 413

    async def test_chunked_without_length_rejected(self):
        with pytest.raises(UnsupportedTransferEncoding) as exc:
            await _decode(
                b"POST /chat HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n5\r\nhello\r\n0\r\n\r\n"
            )
        assert exc.value.status == 411

    async def test_too_many_headers(self):
        headers = b"".join(b"X-H%d: v\r\n" % i for i in range(5))
        limits = CodecLimits(max_header_count=4)
        with pytest.raises(HeadersTooLarge) as exc:
            await _decode(b"GET / HTTP/1.1\r\n" + headers + b"\r\n", limits)
        assert exc.value.status == 431

    async def test_header_block_too_large(self):
        limits = CodecLimits(max_header_bytes=64)
        with pytest.raises(HeadersTooLarge):
            await _decode(b"GET / HTTP/1.1\r\nX-Big: " + b"a" * 100 + b"\r\n\r\n", limits)

    async def test_line_over_stream_limit(self):
        reader = _reader(b"GET /" + b"a" * 200 + b" HTTP/1.1\r\n\r\n", limit=64)
        with pytest.raises(HeadersTooLarge):
            await decode(reader, CodecLimits())

    async def test_empty_connection_is_incomplete(self):
        with pytest.raises(IncompleteRequest) as exc:
            await _decode(b"")
        assert exc.value.status is None

    async def test_truncated_body_is_incomplete(self):
        with pytest.raises(IncompleteRequest):
            await _decode(b"POST /chat HTTP/1.1\r\nContent-Length: 10\r\n\r\nshort")

    async def test_slow_client_times_out(self):
        limits = CodecLimits(read_timeout=0.05)
        with pytest.raises(ReadTimeout) as exc:
            await _decode(b"GET / HTTP/1.1\r\n", limits, eof=False)
        assert exc.value.status is None


class TestEncode:
    def test_response_framing(self):
        raw = encode(Response.text(200, "hello"))
        head, body = raw.split(b"\r\n\r\n", 1)
        lines = head.split(b"\r\n")
        assert lines[0] == b"HTTP/1.1 200 OK"
        assert b"Content-Length: 5" in lines
        assert b"Connection: close" in lines
        assert b"Content-Type: text/plain; charset=utf-8" in lines
        assert body == b"hello"

    def test_json_response(self):
        raw = encode(Response.json(200, {"healthy": True}))
        assert raw.endswith(b'{"healthy": true}')
        assert b"Content-Type: application/json" in raw

    def test_unknown_status_reason(self):
        assert encode(Response(status=599)).startswith(b"HTTP/1.1 599 Unknown\r\n")

    def test_header_injection_neutralised(self):
        resp = Response.text(200, "x")
        resp.headers["X-Evil"] = "a\r\nSet-Cookie: y"
        head = encode(resp).split(b"\r\n\r\n", 1)[0]
        assert b"\r\nSet-Cookie" not in head

    async def test_request_logical_fields_survive_encode_decode(self):
        original = Request(
            method="POST",
            target="/chat",
            headers=Headers({"Content-Type": "application/json", "X-API-Key": "s3cret"}),
            body='{"prompt": "héllo"}'.encode("utf-8"),
        )
        decoded = await _decode(encode_request(original))
        assert decoded.method == original.method
        assert decoded.path == original.path
        assert decoded.body == original.body
        assert decoded.api_key == "s3cret"
