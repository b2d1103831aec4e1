"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from kubechat.llm.types import Completion, Message


class Provider(ABC):
    """
    A provider encapsulates access to a single chat-completion endpoint.

    Implementations must fail loudly: any provider-side problem is raised,
    never turned into an empty answer.
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        allow_tools: bool = True,
        timeout: float | None = None,
    ) -> Completion:
        """
        Request one completion.

        When *allow_tools* is ``False`` the model must answer in text; the
        tool declarations may still be sent so earlier tool turns stay
        interpretable.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compat"``)."""
        ...
