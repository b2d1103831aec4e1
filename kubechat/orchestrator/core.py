"""
Orchestrator core -- the bounded tool-calling loop behind ``POST /chat``.

The orchestrator:
1. Seeds history with the caller's chat history plus the new prompt
2. Consults the completion gateway with the registry's tool schemas
3. Executes requested tool calls concurrently, appending results in call order
4. Stops when the model answers, or after ``max_rounds`` execute rounds
   forces one last consult with tool calling disabled
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol

from kubechat.llm.types import Completion, Message, ToolCall
from kubechat.tools.registry import ToolRegistry
from kubechat.tools.validation import ToolValidator
from kubechat.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)


class CompletionGateway(Protocol):
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        allow_tools: bool = True,
    ) -> Completion: ...


class OrchestrationError(Exception):
    """A run ended without an answer."""


class GatewayError(OrchestrationError):
    """The completion gateway failed."""


class OrchestrationExhausted(OrchestrationError):
    """The model kept requesting tools after tool calling was disabled."""


class Orchestrator:
    """
    Runs one chat request to a final answer.

    Parameters
    ----------
    registry : ToolRegistry
        Frozen tool registry.
    gateway : CompletionGateway
        Anything with an async ``complete(messages, tools, allow_tools)``,
        normally an ``LLMRouter``.
    system_prompt : str
        Prepended to every consult; not part of the returned history.
    max_rounds : int
        Tool-execution rounds allowed before the forced final consult.
    tool_timeout : float
        Max seconds for a single tool execution.
    completion_timeout : float
        Max seconds for a single gateway call.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        gateway: CompletionGateway,
        system_prompt: str = "",
        max_rounds: int = 2,
        tool_timeout: float = 30.0,
        completion_timeout: float = 120.0,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.system_prompt = system_prompt
        self.max_rounds = max_rounds
        self.tool_timeout = tool_timeout
        self.completion_timeout = completion_timeout

    async def run(
        self, prompt: str, chat_history: list[Message] | None = None
    ) -> str:
        """
        Process *prompt* against *chat_history* and return the final answer.

        Raises ``GatewayError`` when a consult fails and
        ``OrchestrationExhausted`` when the forced final consult still asks
        for tools.  Tool failures never escape; they are folded into history.
        """
        history = list(chat_history or [])
        history.append(Message(role="user", content=prompt))
        tools_schema = self.registry.to_openai_schema() or None
        round_ = 0

        while True:
            completion = await self._consult(history, tools_schema, allow_tools=True)
            if completion.is_final:
                logger.info("Final answer after %d tool round(s)", round_)
                return completion.content

            if round_ >= self.max_rounds:
                return await self._force_final(history, tools_schema)

            history.append(
                Message(
                    role="assistant",
                    content=completion.content,
                    tool_calls=list(completion.tool_calls),
                )
            )
            results = await self._execute_round(completion.tool_calls)
            for tc, result in zip(completion.tool_calls, results):
                history.append(
                    Message(
                        role="tool",
                        content=result.as_message_content(),
                        tool_call_id=tc.id,
                        name=tc.name,
                    )
                )
            round_ += 1

    async def _force_final(
        self, history: list[Message], tools_schema: list[dict] | None
    ) -> str:
        logger.info(
            "Reached %d tool rounds; forcing a final answer", self.max_rounds
        )
        completion = await self._consult(history, tools_schema, allow_tools=False)
        if not completion.is_final:
            raise OrchestrationExhausted(
                f"Model requested {len(completion.tool_calls)} tool call(s) "
                "after tool calling was disabled"
            )
        return completion.content

    async def _consult(
        self,
        history: list[Message],
        tools_schema: list[dict] | None,
        allow_tools: bool,
    ) -> Completion:
        messages = list(history)
        if self.system_prompt:
            messages.insert(0, Message(role="system", content=self.system_prompt))

        try:
            return await asyncio.wait_for(
                self.gateway.complete(
                    messages, tools=tools_schema, allow_tools=allow_tools
                ),
                timeout=self.completion_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "Completion gateway timed out after %ss", self.completion_timeout
            )
            raise GatewayError(
                f"Completion timed out after {self.completion_timeout}s"
            ) from e
        except Exception as e:
            logger.error("Completion gateway failed: %s", e)
            raise GatewayError(str(e)) from e

    async def _execute_round(self, tool_calls: list[ToolCall]) -> list[ToolResult]:
        logger.info(
            "Executing %d tool call(s): %s",
            len(tool_calls),
            ", ".join(tc.name for tc in tool_calls),
        )
        # gather returns results in argument order, not completion order
        return list(
            await asyncio.gather(*(self._execute_tool_call(tc) for tc in tool_calls))
        )

    async def _execute_tool_call(self, tool_call: ToolCall) -> ToolResult:
        """
        Execute a single tool call.

        Steps:
        1. Registry lookup
        2. Validate args
        3. Execute with timeout
        """
        tool = self.registry.get(tool_call.name)
        if tool is None:
            logger.warning("Model requested unknown tool %r", tool_call.name)
            return ToolResult.failure(
                f"Unknown tool: {tool_call.name}", ErrorCode.UNKNOWN_TOOL
            )

        valid, error_msg = ToolValidator.validate(tool, tool_call.arguments)
        if not valid:
            logger.warning("Invalid arguments for %s: %s", tool_call.name, error_msg)
            return ToolResult.failure(
                f"Validation error: {error_msg}", ErrorCode.INVALID_ARGUMENTS
            )

        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                tool.execute(**tool_call.arguments),
                timeout=self.tool_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Tool %s timed out after %ss", tool_call.name, self.tool_timeout
            )
            return ToolResult.failure(
                f"Timeout after {self.tool_timeout}s", ErrorCode.TIMEOUT
            )
        except Exception as e:
            logger.warning("Tool %s raised: %s", tool_call.name, e, exc_info=True)
            return ToolResult.failure(
                f"Tool exception: {e}", ErrorCode.TOOL_EXCEPTION
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        if result.success:
            logger.info("Tool %s succeeded in %dms", tool_call.name, duration_ms)
        else:
            logger.warning(
                "Tool %s failed in %dms: [%s] %s",
                tool_call.name,
                duration_ms,
                result.error_code,
                result.error,
            )
        return result
