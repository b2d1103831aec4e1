"""LLM subsystem -- provider interface, routing and message types."""

from kubechat.llm.types import Completion, Message, ToolCall
from kubechat.llm.router import LLMRouter

__all__ = [
    "Completion",
    "LLMRouter",
    "Message",
    "ToolCall",
]
