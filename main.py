"""
LLM Gateway - Main Entry Point

CLI for asking questions through the gateway, inspecting provider
availability, probing live connections and maintaining the response cache.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from llm_gateway.config.loader import load_gateway_config, missing_env_vars
from llm_gateway.config.schema import GatewaySettings, InstanceSettings
from llm_gateway.exceptions import CacheStoreError, ConfigurationError
from llm_gateway.llm.cache import ResponseCache
from llm_gateway.llm.cache_store import create_cache_store
from llm_gateway.llm.diagnostics import check_provider, known_models
from llm_gateway.llm.service import CompletionService
from llm_gateway.llm.types import ProviderName
from llm_gateway.observability.logging_config import configure_logging

# Load environment (.env values take precedence)
load_dotenv(Path(__file__).parent / ".env", override=True)

app = typer.Typer(
    name="llm-gateway",
    help="LLM Gateway - route chat completions to local and cloud providers",
)
console = Console()

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to gateway YAML")


def _get_config(config_path: Optional[Path]) -> GatewaySettings:
    """Load config and configure logging, with a friendly error on failure."""
    try:
        settings = load_gateway_config(config_path)
    except ConfigurationError as e:
        console.print(Panel(
            f"[red]{e}[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)
    configure_logging(level=settings.logging.level)
    return settings


def _parse_provider(value: Optional[str]) -> Optional[ProviderName]:
    if value is None:
        return None
    name = ProviderName.parse(value)
    if name is None:
        choices = ", ".join(p.value for p in ProviderName)
        console.print(f"[red]Unknown provider:[/] {value} (choose from {choices})")
        raise typer.Exit(code=1)
    return name


# =========================================================================
# Commands
# =========================================================================


@app.command()
def ask(
    message: str = typer.Argument(..., help="Question to send"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Preferred provider"),
    model: Optional[str] = typer.Option(None, help="Model id override"),
    temperature: Optional[float] = typer.Option(None, help="Sampling temperature (0-1)"),
    max_tokens: Optional[int] = typer.Option(None, help="Max output tokens"),
    history_file: Optional[Path] = typer.Option(
        None, "--history", help="JSON file with [{message, response}, ...]"
    ),
    reference: Optional[str] = typer.Option(
        None, help="Instance-level reference text (merged with the global one)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
    config_path: Optional[Path] = CONFIG_OPTION,
):
    """Ask a question through the gateway."""
    settings = _get_config(config_path)
    hint = _parse_provider(provider)

    history = history_file.read_text(encoding="utf-8") if history_file else None
    instance = InstanceSettings(reference_text=reference) if reference else None
    resolved = settings.resolve(instance)

    overrides = {
        key: value
        for key, value in (
            ("model", model),
            ("temperature", temperature),
            ("max_tokens", max_tokens),
        )
        if value is not None
    }

    async def _run():
        service = CompletionService.from_settings(settings)
        return await service.get_response(
            message,
            history,
            resolved.routing_hint(hint),
            resolved.providers,
            resolved.base_prompt,
            resolved.reference_text,
            model_overrides=overrides,
        )

    try:
        result = asyncio.run(_run())
    except CacheStoreError as e:
        console.print(f"[red]Cache unavailable:[/] {e}")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
    elif result.ok:
        source = "cache" if result.from_cache else f"{result.processing_time_ms} ms"
        console.print(Panel(
            result.text,
            title=f"{result.provider.value} / {result.model}",
            subtitle=source,
            border_style="green",
        ))
    else:
        status = f" (HTTP {result.http_status})" if result.http_status else ""
        console.print(Panel(
            f"[red]{result.error_kind.value}{status}[/]\n\n{result.provider_message or ''}",
            title="Request failed",
            border_style="red",
        ))

    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def providers(config_path: Optional[Path] = CONFIG_OPTION):
    """Show provider availability and resolved models."""
    settings = _get_config(config_path)
    resolved = settings.resolve()
    missing = missing_env_vars(settings)

    table = Table(title="LLM Gateway - Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Available", style="white")
    table.add_column("Model", style="green")
    table.add_column("Endpoint", style="yellow")
    table.add_column("Missing", style="red")

    for config in resolved.providers:
        table.add_row(
            config.name.value,
            "[green]yes[/]" if config.available else "[red]no[/]",
            config.model,
            config.endpoint or "-",
            ", ".join(missing[config.name]) or "",
        )

    console.print(table)
    if resolved.default_provider:
        console.print(f"Default provider: [cyan]{resolved.default_provider.value}[/]")


@app.command()
def check(
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Only check this provider"
    ),
    config_path: Optional[Path] = CONFIG_OPTION,
):
    """Send a short test prompt to each configured provider."""
    settings = _get_config(config_path)
    wanted = _parse_provider(provider)
    resolved = settings.resolve()

    targets = [
        c for c in resolved.providers
        if (wanted is None and c.available) or c.name == wanted
    ]
    if not targets:
        console.print("[yellow]No configured providers to check.[/]")
        raise typer.Exit(code=1)

    async def _run():
        return await asyncio.gather(*(check_provider(c) for c in targets))

    results = asyncio.run(_run())

    table = Table(title="Connection Check")
    table.add_column("Provider", style="cyan")
    table.add_column("Result", style="white")
    table.add_column("Time", style="dim")
    table.add_column("Details", style="white")

    for result in results:
        table.add_row(
            result.provider.value,
            "[green]OK[/]" if result.success else "[red]FAILED[/]",
            f"{result.processing_time_ms} ms" if result.processing_time_ms is not None else "-",
            result.response[:80] if result.success else result.message,
        )

    console.print(table)
    if not all(r.success for r in results):
        raise typer.Exit(code=1)


@app.command()
def models(
    provider: Optional[str] = typer.Argument(None, help="Provider (default: all)"),
):
    """List suggested model ids per provider."""
    wanted = _parse_provider(provider)
    names = [wanted] if wanted else list(ProviderName)

    table = Table(title="Suggested Models")
    table.add_column("Provider", style="cyan")
    table.add_column("Models", style="green")
    for name in names:
        table.add_row(name.value, "\n".join(known_models(name)))
    console.print(table)


@app.command("purge-cache")
def purge_cache(
    max_age: Optional[int] = typer.Option(
        None, help="Delete entries older than this many seconds"
    ),
    purge_all: bool = typer.Option(False, "--all", help="Delete every entry"),
    config_path: Optional[Path] = CONFIG_OPTION,
):
    """Remove old entries from the response cache."""
    settings = _get_config(config_path)
    try:
        cache = ResponseCache(
            create_cache_store(settings.cache),
            ttl_seconds=settings.cache.ttl_seconds,
        )
        if purge_all:
            removed = cache.clear()
        else:
            if max_age is None:
                max_age = settings.cache.purge_max_age_seconds
            removed = cache.purge_expired(max_age)
    except CacheStoreError as e:
        console.print(f"[red]Cache purge failed:[/] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]Removed {removed} cache entr{'y' if removed == 1 else 'ies'}.[/]")


if __name__ == "__main__":
    app()
