"""
Portfolio site tools.

The site is a single page whose sections are selected with a ``tab`` query
parameter.  The agent can list the section URLs or fetch one section.
"""

from __future__ import annotations

import logging
from enum import Enum

import httpx

from kubechat.tools.base import Tool
from kubechat.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)


class ProfileSection(str, Enum):
    ABOUT = "about"
    WORK = "work"
    PROJECTS = "projects"
    CONTACT = "contact"

    def url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/?tab={self.value.capitalize()}"


class ListProfileSectionsTool(Tool):
    """List the portfolio section URLs."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url

    @property
    def name(self) -> str:
        return "list_profile_sections"

    @property
    def description(self) -> str:
        return "List the sections of the portfolio site and their URLs."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        data = {s.value: s.url(self._base_url) for s in ProfileSection}
        lines = [f"- {name}: {url}" for name, url in data.items()]
        return ToolResult(success=True, content="\n".join(lines), data=data)


class FetchProfileSectionTool(Tool):
    """Fetch the content of one portfolio section."""

    def __init__(
        self,
        base_url: str,
        max_chars: int = 20_000,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._max_chars = max_chars
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "fetch_profile_section"

    @property
    def description(self) -> str:
        return (
            "Fetch the content of a portfolio site section "
            "(about, work, projects or contact)."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "section": {
                    "type": "string",
                    "enum": [s.value for s in ProfileSection],
                    "description": "The section to fetch.",
                },
            },
            "required": ["section"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        section = ProfileSection(kwargs["section"])
        url = section.url(self._base_url)
        logger.info("Fetching portfolio section %s from %s", section.value, url)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                body = resp.text
        except httpx.HTTPError as e:
            logger.warning("Fetching %s failed: %s", url, e)
            return ToolResult.failure(
                f"Failed to fetch {url}: {e}", ErrorCode.UPSTREAM_ERROR
            )

        truncated = len(body) > self._max_chars
        content = body[: self._max_chars]
        if truncated:
            content += f"\n[truncated at {self._max_chars} characters]"
        logger.debug("Fetched %s (%d chars)", url, len(body))
        return ToolResult(
            success=True,
            content=content,
            data={"url": url, "truncated": truncated},
        )
