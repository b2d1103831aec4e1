"""
HTTP-facing error taxonomy.

Every error that short-circuits a request before or instead of a handler is
an ``HttpError`` carrying the status code used for the reply.  A ``status``
of ``None`` means the connection is dropped without a reply.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kubechat.http.codec import Response


class HttpError(Exception):
    """Base class for errors rendered as an HTTP error reply."""

    status: int | None = 500

    def __init__(self, message: str, *, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.headers = headers or {}

    def to_response(self) -> Response:
        from kubechat.http.codec import Response

        resp = Response.text(self.status or 500, self.message)
        for name, value in self.headers.items():
            resp.headers[name] = value
        return resp


# ---------------------------------------------------------------------------
# Transport (wire codec)
# ---------------------------------------------------------------------------

class TransportError(HttpError):
    status = 400


class MalformedStartLine(TransportError):
    status = 400


class MalformedHeader(TransportError):
    status = 400


class HeadersTooLarge(TransportError):
    status = 431


class BodyTooLarge(TransportError):
    status = 413


class UnsupportedTransferEncoding(TransportError):
    status = 411


class IncompleteRequest(TransportError):
    status = None


class ReadTimeout(TransportError):
    status = None


# ---------------------------------------------------------------------------
# Auth / routing / validation
# ---------------------------------------------------------------------------

class AuthError(HttpError):
    status = 401


class Unauthorized(AuthError):
    status = 401


class Forbidden(AuthError):
    status = 403


class RoutingError(HttpError):
    status = 404


class NotFound(RoutingError):
    status = 404


class MethodNotAllowed(RoutingError):
    status = 405

    def __init__(self, message: str, allowed: list[str]):
        super().__init__(message, headers={"Allow": ", ".join(allowed)})
        self.allowed = allowed


class ValidationError(HttpError):
    status = 400


class BadRequest(ValidationError):
    status = 400
