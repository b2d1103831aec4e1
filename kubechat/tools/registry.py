from __future__ import annotations

from kubechat.tools.base import Tool


class ToolRegistry:
    """
    Name -> tool table.

    Built once at startup, then frozen; request handling only reads it.
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if self._frozen:
            raise RuntimeError(f"Registry is frozen; cannot register {tool.name}")
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def list(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    def to_openai_schema(self) -> list[dict]:
        return [t.to_openai_schema() for t in self.list()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
