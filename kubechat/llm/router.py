"""
LLM Router -- the completion gateway used by the orchestrator.

The router holds named providers, tracks the active one and forwards
``complete`` calls to it.  It adds no retries of its own; providers own
their transport-level retry policy.
"""

from __future__ import annotations

import logging

from kubechat.llm.providers.base import Provider
from kubechat.llm.types import Completion, Message

logger = logging.getLogger(__name__)


class LLMRouter:
    """
    Routes completion requests to a named provider.
    """

    def __init__(self, timeout: float = 120.0) -> None:
        self._providers: dict[str, Provider] = {}
        self._active: str | None = None
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: Provider) -> None:
        """Register a provider under *name*.  Overwrites any existing entry."""
        self._providers[name] = provider
        if self._active is None:
            self._active = name

    def set_active(self, name: str) -> None:
        """
        Switch the active provider.

        Raises ``KeyError`` if *name* has not been registered.
        """
        if name not in self._providers:
            raise KeyError(
                f"Unknown provider {name!r}. "
                f"Registered: {list(self._providers)}"
            )
        self._active = name

    @property
    def active_name(self) -> str | None:
        """Return the name of the currently active provider (or ``None``)."""
        return self._active

    @property
    def active_provider(self) -> Provider:
        """
        Return the active ``Provider`` instance.

        Raises ``RuntimeError`` if no provider is active.
        """
        if self._active is None or self._active not in self._providers:
            raise RuntimeError("No active LLM provider")
        return self._providers[self._active]

    @property
    def provider_names(self) -> list[str]:
        """Return the list of registered provider names."""
        return list(self._providers)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        allow_tools: bool = True,
    ) -> Completion:
        """Request one completion from the active provider."""
        provider = self.active_provider
        completion = await provider.complete(
            messages, tools=tools, allow_tools=allow_tools, timeout=self.timeout
        )
        if completion.provider is None:
            completion.provider = self._active
        logger.debug(
            "Completion from %s: final=%s tool_calls=%d",
            self._active,
            completion.is_final,
            len(completion.tool_calls),
        )
        return completion
