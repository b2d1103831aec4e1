"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """
    A tool invocation requested by the model.

    *arguments* is normally the decoded JSON object.  When the model emits
    arguments that are not valid JSON the raw string is kept so the call
    fails argument validation downstream.
    """

    id: str
    name: str
    arguments: Any


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


@dataclass
class Completion:
    """
    One response from the completion gateway.

    Either a final textual answer (no tool calls) or a non-empty list of
    requested tool calls, optionally with interim text.
    """

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str | None = None
    provider: str | None = None

    @property
    def is_final(self) -> bool:
        return not self.tool_calls
