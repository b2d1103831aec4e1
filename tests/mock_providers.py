"""
Mock LLM providers for testing.

Provides scripted completions so tests can exercise the router and
orchestrator without hitting real APIs.
"""

from __future__ import annotations

from kubechat.llm.providers.base import Provider
from kubechat.llm.types import Completion, Message, ToolCall


class MockProvider(Provider):
    """
    A provider that returns pre-configured ``Completion`` objects in order.

    Usage::

        provider = MockProvider([
            tool_call_completion("echo", {"message": "hi"}),
            text_completion("done"),
        ])

    Once the script is exhausted the last completion is repeated, so a
    single tool-call completion models a gateway that always asks for tools.

    Parameters
    ----------
    completions:
        The completions to return, one per call.
    error:
        If set, every call raises this exception instead.
    model_name:
        Model identifier returned by ``name``.
    """

    def __init__(
        self,
        completions: list[Completion] | None = None,
        error: Exception | None = None,
        model_name: str = "mock-model",
    ) -> None:
        self._completions = completions or [Completion(content="")]
        self._error = error
        self._model_name = model_name
        self.call_count = 0
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return self._model_name

    @property
    def last_messages(self) -> list[Message] | None:
        return self.calls[-1]["messages"] if self.calls else None

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        allow_tools: bool = True,
        timeout: float | None = None,
    ) -> Completion:
        self.call_count += 1
        self.calls.append(
            {"messages": list(messages), "tools": tools, "allow_tools": allow_tools}
        )
        if self._error is not None:
            raise self._error
        idx = min(self.call_count - 1, len(self._completions) - 1)
        return self._completions[idx]


def text_completion(text: str, model_name: str = "mock-text") -> Completion:
    return Completion(content=text, model=model_name)


def tool_call_completion(
    tool_name: str,
    tool_args: object,
    call_id: str = "call_abc123",
    content: str = "",
) -> Completion:
    return Completion(
        content=content,
        tool_calls=[ToolCall(id=call_id, name=tool_name, arguments=tool_args)],
    )


def multi_tool_call_completion(calls: list[tuple[str, dict, str]]) -> Completion:
    """
    Create a completion requesting several tool calls at once.

    *calls* is a list of ``(tool_name, tool_args, call_id)`` tuples.
    """
    return Completion(
        tool_calls=[ToolCall(id=cid, name=name, arguments=args) for name, args, cid in calls]
    )


def make_text_provider(text: str) -> MockProvider:
    return MockProvider([text_completion(text)])


def make_tool_call_provider(
    tool_name: str,
    tool_args: object,
    then_text: str | None = None,
) -> MockProvider:
    """
    A provider that requests one tool call, then answers with *then_text*.

    Without *then_text* it requests the tool call on every consult.
    """
    script = [tool_call_completion(tool_name, tool_args)]
    if then_text is not None:
        script.append(text_completion(then_text))
    return MockProvider(script)
