"""
Main CLI application for kubechat.

Usage:
    kubechat serve [--config PATH] [--profile NAME] [--host H] [--port P]
    kubechat ask PROMPT
    kubechat tools list|info
    kubechat config show|validate
    kubechat version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from kubechat import __version__
from kubechat.config import ConfigError, KubechatConfig, Secrets, load_config, resolve_secrets

app = typer.Typer(name="kubechat", help="kubechat - portfolio and cluster chat service")
tools_app = typer.Typer(help="Tool inspection")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path(explicit: Path | None = None) -> Path | None:
    """Find config file in standard locations."""
    if explicit is not None:
        return explicit
    candidates = [
        Path.cwd() / "kubechat.yaml",
        Path.cwd() / "kubechat.yml",
        Path.home() / ".config" / "kubechat" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _load(
    config: Path | None,
    profile: str | None,
    overrides: dict | None = None,
) -> KubechatConfig:
    try:
        return load_config(_get_config_path(config), profile=profile, cli_overrides=overrides)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


def _secrets(cfg: KubechatConfig, require_chat_key: bool = True) -> Secrets:
    try:
        return resolve_secrets(cfg, require_chat_key=require_chat_key)
    except ConfigError as e:
        console.print(f"[red]Startup error:[/red] {e}")
        raise typer.Exit(1)


def _build_orchestrator(cfg: KubechatConfig, secrets: Secrets, registry):
    """Wire the completion gateway and orchestrator around *registry*."""
    from kubechat.llm.providers.openai_compat import OpenAICompatProvider
    from kubechat.llm.router import LLMRouter
    from kubechat.orchestrator.core import Orchestrator
    from kubechat.prompts.system import build_system_prompt

    router = LLMRouter(timeout=cfg.llm.timeout_seconds)
    router.register_provider(
        cfg.llm.name,
        OpenAICompatProvider(
            url=cfg.llm.api_base,
            model=cfg.llm.model,
            api_key=secrets.llm_api_key,
            timeout=cfg.llm.timeout_seconds,
            max_retries=cfg.llm.max_retries,
            temperature=cfg.llm.temperature,
        ),
    )

    return Orchestrator(
        registry=registry,
        gateway=router,
        system_prompt=build_system_prompt(registry.list(), site_owner=cfg.agent.site_owner),
        max_rounds=cfg.agent.max_rounds,
        tool_timeout=cfg.agent.tool_timeout_seconds,
        # provider retries happen inside one gateway call
        completion_timeout=cfg.llm.timeout_seconds * (cfg.llm.max_retries + 1),
    )


async def _probe_cluster(registry) -> None:
    """Log whether the cluster answers a pod listing.  Never fatal."""
    try:
        result = await registry.require("list_pods").execute()
    except Exception as e:
        logger.warning("Kubernetes cluster probe failed: %s", e)
        return
    if result.success:
        summary = result.content.splitlines()[0].rstrip(":")
        logger.info("Successfully connected to Kubernetes cluster. %s.", summary)
    else:
        logger.warning("Kubernetes cluster probe failed: %s", result.error)


async def _serve(cfg: KubechatConfig, secrets: Secrets) -> None:
    from kubechat.http.codec import CodecLimits
    from kubechat.http.routing import AuthGuard, RequestRouter
    from kubechat.http.server import HttpServer
    from kubechat.tools.builtin import build_default_registry

    registry = build_default_registry(cfg, secrets)
    orchestrator = _build_orchestrator(cfg, secrets, registry)
    logger.info(
        "Starting kubechat (%s mode, %d tools, model %s)",
        "production" if cfg.production else "development",
        len(registry),
        cfg.llm.model,
    )
    await _probe_cluster(registry)

    server = HttpServer(
        RequestRouter(AuthGuard(secrets.chat_api_key), orchestrator),
        CodecLimits.from_config(cfg.server),
        host=cfg.server.host,
        port=cfg.server.port,
    )
    await server.start()
    try:
        await server.serve_forever()
    finally:
        await server.close()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def serve(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    host: Optional[str] = typer.Option(None, help="Bind host"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
):
    """Run the HTTP chat service."""
    from kubechat.log import setup_logging

    cfg = _load(config, profile, {"server.host": host, "server.port": port})
    setup_logging(cfg.logging.level, rich=cfg.logging.rich)
    secrets = _secrets(cfg)

    try:
        asyncio.run(_serve(cfg, secrets))
    except KeyboardInterrupt:
        console.print("[dim]Shutting down.[/dim]")


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Question to ask"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Run a single chat turn from the terminal."""
    from kubechat.cli.output import OutputFormatter
    from kubechat.log import setup_logging
    from kubechat.orchestrator.core import OrchestrationError
    from kubechat.tools.builtin import build_default_registry

    cfg = _load(config, profile)
    setup_logging(cfg.logging.level, rich=cfg.logging.rich)
    secrets = _secrets(cfg, require_chat_key=False)

    registry = build_default_registry(cfg, secrets)
    orchestrator = _build_orchestrator(cfg, secrets, registry)
    try:
        answer = asyncio.run(orchestrator.run(prompt))
    except OrchestrationError as e:
        console.print(f"[red]Failed to generate response:[/red] {e}")
        raise typer.Exit(1)

    OutputFormatter(console).format_answer(answer)


@tools_app.command("list")
def tools_list(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """List registered tools."""
    from kubechat.cli.output import OutputFormatter
    from kubechat.tools.builtin import build_default_registry

    cfg = _load(config, None)
    registry = build_default_registry(cfg, Secrets(chat_api_key=""))
    OutputFormatter(console).format_tool_list(registry.list())


@tools_app.command("info")
def tools_info(
    tool_name: str = typer.Argument(..., help="Tool name"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show tool details and schema."""
    from kubechat.cli.output import OutputFormatter
    from kubechat.tools.builtin import build_default_registry

    cfg = _load(config, None)
    registry = build_default_registry(cfg, Secrets(chat_api_key=""))

    tool = registry.get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config."""
    from kubechat.cli.output import OutputFormatter

    cfg = _load(config, profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Validate config and the credentials it names."""
    config_path = _get_config_path(config)
    try:
        cfg = load_config(config_path, profile=profile)
        secrets = resolve_secrets(cfg)
    except ConfigError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Mode: {'production' if cfg.production else 'development'}")
    console.print(f"  Listen: {cfg.server.host}:{cfg.server.port}")
    console.print(f"  LLM provider: {cfg.llm.name} ({cfg.llm.model})")
    console.print(f"  Kubernetes API: {cfg.kube_api_server}")
    console.print(f"  Portfolio site: {cfg.portfolio_url}")
    if not secrets.llm_api_key:
        console.print(f"  [yellow]Warning:[/yellow] {cfg.llm.api_key_env} is not set")
    if not secrets.kube_token:
        console.print("  [yellow]Warning:[/yellow] no Kubernetes token available")


@app.command()
def version():
    """Show version."""
    console.print(f"kubechat v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
