"""Tests for auth, routing and chat request validation."""

from __future__ import annotations

import json

import pytest

from kubechat.http.codec import Headers, Request
from kubechat.http.errors import BadRequest
from kubechat.http.routing import AuthGuard, RequestRouter, parse_chat_request
from kubechat.llm.types import Message
from kubechat.orchestrator.core import GatewayError, OrchestrationExhausted

SECRET = "s3cret-key"


class FakeChat:
    def __init__(self, answer: str = "the answer", error: Exception | None = None):
        self.answer = answer
        self.error = error
        self.calls: list[tuple[str, list[Message]]] = []

    async def run(self, prompt, chat_history=None):
        self.calls.append((prompt, chat_history))
        if self.error is not None:
            raise self.error
        return self.answer


def _request(
    method: str = "GET",
    target: str = "/",
    body: object = None,
    key: str | None = SECRET,
    content_type: str | None = "application/json",
) -> Request:
    headers = Headers()
    if key is not None:
        headers["X-API-Key"] = key
    raw = b""
    if body is not None:
        raw = body if isinstance(body, bytes) else json.dumps(body).encode()
        if content_type:
            headers["Content-Type"] = content_type
    return Request(method=method, target=target, headers=headers, body=raw)


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def router(chat):
    return RequestRouter(AuthGuard(SECRET), chat)


class TestAuthGuard:
    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            AuthGuard("")

    async def test_missing_key_is_401(self, router, chat):
        resp = await router.dispatch(_request(key=None))
        assert resp.status == 401
        assert chat.calls == []

    async def test_wrong_key_is_403(self, router):
        resp = await router.dispatch(_request(key="wrong"))
        assert resp.status == 403

    async def test_key_header_is_case_insensitive(self, router):
        req = _request(key=None)
        req.headers["x-api-key"] = SECRET
        resp = await router.dispatch(req)
        assert resp.status == 200

    async def test_non_ascii_key_matches_wire_bytes(self, chat):
        router = RequestRouter(AuthGuard("clé"), chat)
        req = _request(key="clé".encode("utf-8").decode("latin-1"))
        resp = await router.dispatch(req)
        assert resp.status == 200

    async def test_key_outside_latin1_is_403(self, router):
        resp = await router.dispatch(_request(key="ключ"))
        assert resp.status == 403

    async def test_custom_header_name(self, chat):
        router = RequestRouter(AuthGuard(SECRET, header="X-Chat-Token"), chat)
        req = _request(key=None)
        req.headers["X-Chat-Token"] = SECRET
        assert (await router.dispatch(req)).status == 200
        resp = await router.dispatch(_request())
        assert resp.status == 401
        assert b"X-Chat-Token" in resp.body

    async def test_auth_checked_before_routing(self, router):
        resp = await router.dispatch(_request(target="/nonexistent", key=None))
        assert resp.status == 401
        resp = await router.dispatch(_request(target="/nonexistent", key="wrong"))
        assert resp.status == 403


class TestRouting:
    async def test_health(self, router):
        resp = await router.dispatch(_request())
        assert resp.status == 200
        assert json.loads(resp.body) == {"healthy": True}
        assert resp.headers["content-type"] == "application/json"

    async def test_health_ignores_body_and_query(self, router):
        resp = await router.dispatch(_request(target="/?x=1", body=b"junk"))
        assert resp.status == 200

    async def test_unknown_path_is_404(self, router):
        resp = await router.dispatch(_request(target="/nonexistent"))
        assert resp.status == 404

    @pytest.mark.parametrize("method", ["GET", "DELETE", "PUT"])
    async def test_wrong_method_on_chat_is_405(self, router, method):
        resp = await router.dispatch(_request(method=method, target="/chat"))
        assert resp.status == 405
        assert resp.headers["allow"] == "POST"

    async def test_post_to_health_is_405(self, router):
        resp = await router.dispatch(_request(method="POST", target="/", body={}))
        assert resp.status == 405
        assert resp.headers["allow"] == "GET"


class TestChat:
    async def test_chat_success(self, router, chat):
        body = {
            "prompt": "How many pods?",
            "chat_history": [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
            ],
        }
        resp = await router.dispatch(_request("POST", "/chat", body))

        assert resp.status == 200
        assert resp.body == b"the answer"
        assert resp.headers["content-type"].startswith("text/plain")
        prompt, history = chat.calls[0]
        assert prompt == "How many pods?"
        assert [(m.role, m.content) for m in history] == [
            ("user", "hi"),
            ("assistant", "hello"),
        ]

    @pytest.mark.parametrize(
        "error", [GatewayError("provider down"), OrchestrationExhausted("loop")]
    )
    async def test_orchestration_failure_is_500(self, error):
        router = RequestRouter(AuthGuard(SECRET), FakeChat(error=error))
        resp = await router.dispatch(_request("POST", "/chat", {"prompt": "q"}))
        assert resp.status == 500
        assert resp.body == b"Failed to generate response"

    async def test_validation_failure_does_not_reach_orchestrator(self, router, chat):
        resp = await router.dispatch(_request("POST", "/chat", {"prompt": ""}))
        assert resp.status == 400
        assert chat.calls == []


class TestParseChatRequest:
    def _parse(self, body, content_type="application/json"):
        return parse_chat_request(_request("POST", "/chat", body, content_type=content_type))

    def test_history_optional(self):
        assert self._parse({"prompt": "q"}).chat_history == []
        assert self._parse({"prompt": "q", "chat_history": None}).chat_history == []
        assert self._parse({"prompt": "q", "chat_history": []}).chat_history == []

    def test_content_type_parameters_allowed(self):
        parsed = self._parse({"prompt": "q"}, content_type="Application/JSON; charset=utf-8")
        assert parsed.prompt == "q"

    @pytest.mark.parametrize(
        "body",
        [
            b"not json",
            b"\xff\xfe",
            [1, 2],
            {},
            {"prompt": 5},
            {"prompt": ""},
            {"prompt": "   "},
            {"prompt": "q", "chat_history": "nope"},
            {"prompt": "q", "chat_history": ["hi"]},
            {"prompt": "q", "chat_history": [{"role": "system", "content": "x"}]},
            {"prompt": "q", "chat_history": [{"role": "user"}]},
            {"prompt": "q", "chat_history": [{"role": "user", "content": 3}]},
        ],
    )
    def test_malformed_bodies(self, body):
        with pytest.raises(BadRequest):
            self._parse(body)

    @pytest.mark.parametrize("content_type", [None, "text/plain"])
    def test_wrong_content_type(self, content_type):
        with pytest.raises(BadRequest, match="Content-Type"):
            self._parse({"prompt": "q"}, content_type=content_type)
