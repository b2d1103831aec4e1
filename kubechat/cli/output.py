"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from kubechat.tools.base import Tool, normalize_schema


class OutputFormatter:
    """Rich-based output formatting for the kubechat CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_tool_list(self, tools: list[Tool]) -> None:
        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Arguments", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            args = ", ".join(normalize_schema(t.parameters)["properties"]) or "-"
            table.add_row(t.name, args, t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(normalize_schema(tool.parameters), indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))

    def format_answer(self, answer: str) -> None:
        self.console.print(Panel(Markdown(answer or "_(empty answer)_"), title="Answer"))
