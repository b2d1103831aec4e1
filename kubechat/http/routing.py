"""
Request routing and API-key authentication.

``RequestRouter.dispatch`` turns a decoded ``Request`` into a ``Response``:
authenticate first, then match ``(method, path)`` exactly, then run the
handler.  Every rejection is an ``HttpError`` rendered as a plain-text reply.
"""

from __future__ import annotations

import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from kubechat.http.codec import API_KEY_HEADER, Method, Request, Response
from kubechat.http.errors import (
    BadRequest,
    Forbidden,
    HttpError,
    MethodNotAllowed,
    NotFound,
    Unauthorized,
)
from kubechat.llm.types import Message
from kubechat.orchestrator.core import OrchestrationError

logger = logging.getLogger(__name__)

CHAT_ROLES = ("user", "assistant")

Handler = Callable[[Request], Awaitable[Response]]


class ChatRunner(Protocol):
    async def run(
        self, prompt: str, chat_history: list[Message] | None = None
    ) -> str: ...


class AuthGuard:
    """Constant-time check of an API-key header against one secret."""

    def __init__(self, api_key: str, header: str = API_KEY_HEADER) -> None:
        if not api_key:
            raise ValueError("API key secret must not be empty")
        self._secret = api_key.encode("utf-8")
        self.header = header

    def check(self, request: Request) -> None:
        supplied = request.headers.get(self.header)
        if supplied is None:
            raise Unauthorized(f"Missing {self.header} header")
        # header values are latin-1 decoded; recover the bytes sent on the wire
        try:
            wire = supplied.encode("latin-1")
        except UnicodeEncodeError:
            raise Forbidden("Invalid API key") from None
        if not hmac.compare_digest(wire, self._secret):
            raise Forbidden("Invalid API key")


@dataclass
class ChatRequest:
    prompt: str
    chat_history: list[Message] = field(default_factory=list)


def parse_chat_request(request: Request) -> ChatRequest:
    """
    Validate a ``POST /chat`` body.

    The body must be a JSON object with a non-empty ``prompt`` string and an
    optional ``chat_history`` list of ``{"role", "content"}`` entries whose
    role is ``user`` or ``assistant``.  An omitted or ``null`` history means
    no prior conversation.
    """
    if request.content_type != "application/json":
        raise BadRequest("Content-Type must be application/json")

    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise BadRequest(f"Invalid JSON body: {e}") from None

    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")

    prompt = payload.get("prompt")
    if not isinstance(prompt, str):
        raise BadRequest("'prompt' must be a string")
    if not prompt.strip():
        raise BadRequest("'prompt' must not be empty")

    raw_history = payload.get("chat_history")
    if raw_history is None:
        raw_history = []
    if not isinstance(raw_history, list):
        raise BadRequest("'chat_history' must be a list")

    history: list[Message] = []
    for idx, entry in enumerate(raw_history):
        if not isinstance(entry, dict):
            raise BadRequest(f"chat_history[{idx}] must be an object")
        role = entry.get("role")
        content = entry.get("content")
        if role not in CHAT_ROLES:
            raise BadRequest(
                f"chat_history[{idx}].role must be one of {', '.join(CHAT_ROLES)}"
            )
        if not isinstance(content, str):
            raise BadRequest(f"chat_history[{idx}].content must be a string")
        history.append(Message(role=role, content=content))

    return ChatRequest(prompt=prompt, chat_history=history)


class RequestRouter:
    """
    Authenticate, route and handle one request.

    Routes: ``GET /`` is the health check and ``POST /chat`` runs the chat
    orchestrator.  An unknown path is ``404``; a known path with the wrong
    method is ``405`` with an ``Allow`` header.
    """

    def __init__(self, guard: AuthGuard, chat: ChatRunner) -> None:
        self._guard = guard
        self._chat = chat
        self._routes: dict[str, dict[Method, Handler]] = {
            "/": {Method.GET: self.handle_health},
            "/chat": {Method.POST: self.handle_chat},
        }

    def resolve(self, request: Request) -> Handler:
        methods = self._routes.get(request.path)
        if methods is None:
            raise NotFound(f"No route for {request.path}")
        handler = methods.get(request.kind)
        if handler is None:
            allowed = [m.value for m in methods]
            raise MethodNotAllowed(
                f"Method {request.method} not allowed for {request.path}", allowed
            )
        return handler

    async def dispatch(self, request: Request) -> Response:
        try:
            self._guard.check(request)
            handler = self.resolve(request)
            return await handler(request)
        except HttpError as e:
            logger.warning(
                "%s %s -> %s %s", request.method, request.path, e.status, e.message
            )
            return e.to_response()

    async def handle_health(self, request: Request) -> Response:
        return Response.json(200, {"healthy": True})

    async def handle_chat(self, request: Request) -> Response:
        chat = parse_chat_request(request)
        logger.info(
            "Chat request: %d chars, %d history message(s)",
            len(chat.prompt),
            len(chat.chat_history),
        )

        start = time.monotonic()
        try:
            answer = await self._chat.run(chat.prompt, chat.chat_history)
        except OrchestrationError as e:
            logger.error("Chat orchestration failed: %s", e)
            return Response.text(500, "Failed to generate response")

        logger.info(
            "Chat answered in %dms (%d chars)",
            int((time.monotonic() - start) * 1000),
            len(answer),
        )
        return Response.text(200, answer)
