"""
Connection listener.

One asyncio task per accepted connection: decode one request, dispatch it
through the ``RequestRouter``, write the encoded response and close.  There
is no keep-alive.  The whole lifecycle of a connection is bounded by
``CodecLimits.request_timeout``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from kubechat.http.codec import CodecLimits, Request, Response, decode, encode
from kubechat.http.errors import TransportError
from kubechat.http.routing import RequestRouter

logger = logging.getLogger(__name__)

_SEND_TIMEOUT = 5.0


@dataclass
class _Connection:
    peer: str
    request: Request | None = None
    responded: bool = False


class HttpServer:
    """
    Raw-socket HTTP/1.1 server.

    Parameters
    ----------
    router : RequestRouter
        Turns decoded requests into responses.
    limits : CodecLimits
        Size and time ceilings for every connection.
    host, port :
        Bind address.  Port ``0`` picks a free port; see :attr:`port`.
    """

    def __init__(
        self,
        router: RequestRouter,
        limits: CodecLimits | None = None,
        host: str = "127.0.0.1",
        port: int = 8080,
    ) -> None:
        self.router = router
        self.limits = limits or CodecLimits()
        self.host = host
        self._requested_port = port
        self._server: asyncio.AbstractServer | None = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self._requested_port,
            limit=self.limits.max_header_bytes,
        )
        logger.info("Listening on %s:%d", self.host, self.port)

    @property
    def port(self) -> int:
        if self._server is None or not self._server.sockets:
            return self._requested_port
        return self._server.sockets[0].getsockname()[1]

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Server closed")

    # ------------------------------------------------------------------
    # Per-connection lifecycle
    # ------------------------------------------------------------------

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peername = writer.get_extra_info("peername")
        conn = _Connection(peer=str(peername))
        logger.debug("Accepted connection from %s", conn.peer)

        try:
            await asyncio.wait_for(
                self._serve(reader, writer, conn),
                timeout=self.limits.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Request from %s exceeded %ss deadline",
                conn.peer,
                self.limits.request_timeout,
            )
            if conn.request is not None and not conn.responded:
                await self._send(
                    writer, conn, Response.text(500, "Failed to generate response")
                )
        except Exception:
            logger.error("Unexpected error handling %s", conn.peer, exc_info=True)
            if not conn.responded:
                await self._send(
                    writer, conn, Response.text(500, "Internal server error")
                )
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except Exception as close_err:
                logger.debug("Connection close failed for %s: %s", conn.peer, close_err)
            logger.debug("Closed connection from %s", conn.peer)

    async def _serve(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        conn: _Connection,
    ) -> None:
        try:
            request = await decode(reader, self.limits)
        except TransportError as e:
            if e.status is None:
                logger.debug("Dropping connection from %s: %s", conn.peer, e)
                return
            logger.warning("Bad request from %s: %s %s", conn.peer, e.status, e)
            await self._send(writer, conn, e.to_response())
            return

        conn.request = request
        start = time.monotonic()
        response = await self.router.dispatch(request)
        await self._send(writer, conn, response)
        logger.info(
            "%s %s -> %d (%dms)",
            request.method,
            request.path,
            response.status,
            int((time.monotonic() - start) * 1000),
        )

    async def _send(
        self, writer: asyncio.StreamWriter, conn: _Connection, response: Response
    ) -> None:
        """Write *response* once; a vanished peer is logged, not raised."""
        if conn.responded:
            return
        conn.responded = True
        try:
            writer.write(encode(response))
            await asyncio.wait_for(writer.drain(), timeout=_SEND_TIMEOUT)
        except (ConnectionError, OSError, asyncio.TimeoutError) as e:
            logger.debug("Failed to send response to %s: %s", conn.peer, e)
