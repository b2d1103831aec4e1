"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- OpenAI itself, Azure OpenAI, vLLM, LM Studio, LocalAI, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import json
import logging

import httpx

from kubechat.llm.providers.base import Provider
from kubechat.llm.types import Completion, Message, ToolCall

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The endpoint answered with something that is not a usable completion."""


class OpenAICompatProvider(Provider):
    """
    Non-streaming provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:8080/v1"``.
    model:
        Model identifier sent in the ``model`` field.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429).
    temperature:
        Sampling temperature, omitted from the request when ``None``.
    transport:
        Optional ``httpx`` transport, used by tests.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        temperature: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._temperature = temperature
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "openai-compat"

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        allow_tools: bool = True,
        timeout: float | None = None,
    ) -> Completion:
        body = self._build_body(messages, tools, allow_tools)
        headers = self._build_headers()
        data = await self._request(body, headers, timeout or self._timeout)
        return self._parse_response(data)

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[Message],
        tools: list[dict] | None,
        allow_tools: bool,
    ) -> dict:
        wire_messages = []
        for msg in messages:
            m: dict = {"role": msg.role, "content": msg.content}
            if msg.tool_calls:
                m["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": (
                                tc.arguments
                                if isinstance(tc.arguments, str)
                                else json.dumps(tc.arguments)
                            ),
                        },
                    }
                    for tc in msg.tool_calls
                ]
            if msg.tool_call_id:
                m["tool_call_id"] = msg.tool_call_id
            wire_messages.append(m)

        body: dict = {
            "model": self._model,
            "messages": wire_messages,
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto" if allow_tools else "none"
        if self._temperature is not None:
            body["temperature"] = self._temperature
        logger.info(
            "REQUEST: model=%s tools=%d allow_tools=%s messages=%d",
            self._model,
            len(tools) if tools else 0,
            allow_tools,
            len(wire_messages),
        )
        return body

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        body: dict,
        headers: dict[str, str],
        timeout: float,
    ) -> dict:
        url = f"{self._url}/chat/completions"

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=timeout, transport=self._transport
                ) as client:
                    resp = await client.post(url, json=body, headers=headers)

                    if resp.status_code == 429 or resp.status_code >= 500:
                        logger.warning(
                            "Completion endpoint returned HTTP %d (attempt %d)",
                            resp.status_code,
                            attempt + 1,
                        )
                        last_error = httpx.HTTPStatusError(
                            f"HTTP {resp.status_code}",
                            request=resp.request,
                            response=resp,
                        )
                        continue

                    resp.raise_for_status()
                    try:
                        return resp.json()
                    except json.JSONDecodeError as e:
                        raise ProviderError("Completion response is not JSON") from e
            except httpx.TransportError as exc:
                last_error = exc
                if attempt < self._max_retries:
                    continue
                raise

        if last_error is not None:
            raise last_error
        # Should never reach here.
        raise RuntimeError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def _parse_response(self, data: dict) -> Completion:
        """Convert a chat-completions response into a ``Completion``."""
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ProviderError("Completion response has no choices")

        message = choices[0].get("message") or {}
        content = message.get("content") or ""

        tool_calls: list[ToolCall] = []
        for idx, raw_tc in enumerate(message.get("tool_calls") or []):
            func = raw_tc.get("function") or {}
            raw_args = func.get("arguments") or "{}"
            if isinstance(raw_args, dict):
                # some compatible servers send arguments already decoded
                arguments = raw_args
            else:
                arguments = _decode_arguments(func.get("name", "?"), raw_args)
            tool_calls.append(
                ToolCall(
                    id=raw_tc.get("id") or f"call_{idx}",
                    name=func.get("name", ""),
                    arguments=arguments,
                )
            )

        return Completion(
            content=content,
            tool_calls=tool_calls,
            model=data.get("model"),
            provider=self.name,
        )


def _decode_arguments(tool_name: str, raw_args: str) -> object:
    try:
        return json.loads(raw_args)
    except json.JSONDecodeError:
        logger.warning(
            "Tool call %s has non-JSON arguments: %s", tool_name, raw_args[:200]
        )
        return raw_args
