"""
mcpexec CLI - Inspect the provider registry and run tool calls.

Configuration comes from ~/.mcpexec/config.yaml and the nearest
.mcpexec/config.yaml (or --config).
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from mcpexec import __version__
from mcpexec.executor import ToolExecutor
from mcpexec.schema import CallContext, CallRequest, Scope
from mcpexec.usage import MemoryUsageStore
from mcpexec.validation.config import Config, ConfigError

console = Console()

SCOPE_CHOICE = click.Choice([s.value for s in Scope])


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )


def _load_executor(ctx: click.Context) -> ToolExecutor:
    executor = ctx.obj.get("executor")
    if executor is None:
        try:
            config = Config.load(ctx.obj.get("config_path"))
            executor = ToolExecutor.from_config(config)
        except ConfigError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(2)
        ctx.obj["config"] = config
        ctx.obj["executor"] = executor
    return executor


def _flush_usage(ctx: click.Context) -> None:
    """Persist usage counters if a usage file is configured."""
    config: Optional[Config] = ctx.obj.get("config")
    executor: Optional[ToolExecutor] = ctx.obj.get("executor")
    if config is None or executor is None:
        return
    usage_file = config.resolve_path(config.merged.usage.file)
    store = executor.registry.usage_store
    if usage_file is not None and isinstance(store, MemoryUsageStore):
        store.flush(usage_file)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


@click.group()
@click.version_option(__version__, prog_name="mcpexec")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Config file to use")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool) -> None:
    """
    mcpexec - run MCP tool calls from the command line.

    \b
    Examples:
        mcpexec providers --scope chat
        mcpexec tools weather
        mcpexec call weather forecast --scope chat --params '{"city": "Oslo"}'
        mcpexec batch calls.yaml
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj.setdefault("config_path", config_path)


@cli.command()
@click.option("--scope", type=SCOPE_CHOICE, default=None, help="Only providers usable in this scope")
@click.option("--user", "user_id", type=int, default=None, help="Only providers this user may use")
@click.pass_context
def providers(ctx: click.Context, scope: Optional[str], user_id: Optional[int]) -> None:
    """List registered providers."""
    registry = _load_executor(ctx).registry
    if scope:
        entries = registry.list_available(user_id, Scope(scope))
    else:
        entries = registry.list_providers()

    if not entries:
        console.print("[dim]No providers registered[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Scope")
    table.add_column("Transport")
    table.add_column("Tools", justify="right")
    table.add_column("Description", style="dim")

    for entry in sorted(entries, key=lambda e: e.id):
        table.add_row(
            entry.id,
            entry.scope.value,
            entry.connection.type,
            str(len(entry.tools)),
            escape(entry.description[:60]),
        )

    console.print(table)


@cli.command()
@click.argument("provider_id")
@click.pass_context
def tools(ctx: click.Context, provider_id: str) -> None:
    """Show the tool schemas of a provider."""
    entry = _load_executor(ctx).registry.resolve(provider_id)
    if entry is None:
        console.print(f"[red]MCP not found: {escape(provider_id)}[/red]")
        sys.exit(1)

    if not entry.tools:
        console.print("[dim]No tools declared[/dim]")
    for tool in entry.tools:
        console.print(tool.full_schema_text(), markup=False, highlight=False)


@cli.command()
@click.argument("provider_id")
@click.argument("tool")
@click.option("--scope", type=SCOPE_CHOICE, required=True)
@click.option("--params", "params_json", default="{}", help="Tool parameters as a JSON object")
@click.option("--user", "user_id", type=int, default=None)
@click.option("--workspace", "workspace_id", default=None)
@click.pass_context
def call(
    ctx: click.Context,
    provider_id: str,
    tool: str,
    scope: str,
    params_json: str,
    user_id: Optional[int],
    workspace_id: Optional[str],
) -> None:
    """Execute a single tool call and print the response envelope."""
    try:
        params = json.loads(params_json)
    except ValueError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--params")
    if not isinstance(params, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--params")

    context = None
    if user_id is not None or workspace_id is not None:
        context = CallContext(user_id=user_id, workspace_id=workspace_id)

    executor = _load_executor(ctx)
    request = CallRequest(
        provider_id=provider_id, tool=tool, scope=Scope(scope), params=params, context=context
    )
    response = executor.execute(request)
    _flush_usage(ctx)
    _echo_json(response.to_envelope())
    if not response.success:
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def batch(ctx: click.Context, file: Path) -> None:
    """Execute a YAML or JSON list of call envelopes concurrently."""
    with open(file) as f:
        raw: Any = yaml.safe_load(f)
    if not isinstance(raw, list):
        console.print("[red]Error: batch file must contain a list of calls[/red]")
        sys.exit(2)

    try:
        requests: List[CallRequest] = [CallRequest.model_validate(item) for item in raw]
    except ValidationError as e:
        console.print(f"[red]Error: invalid call envelope: {escape(str(e))}[/red]")
        sys.exit(2)

    responses = _load_executor(ctx).execute_batch(requests)
    _flush_usage(ctx)
    _echo_json([r.to_envelope() for r in responses])
    if not all(r.success for r in responses):
        sys.exit(1)


@cli.command()
@click.pass_context
def usage(ctx: click.Context) -> None:
    """Show usage counters."""
    store = _load_executor(ctx).registry.usage_store
    counts = store.snapshot() if isinstance(store, MemoryUsageStore) else {}
    if not counts:
        console.print("[dim]No usage recorded[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("User", justify="right")
    table.add_column("Provider", style="cyan")
    table.add_column("Calls", justify="right")
    for (user_id, provider_id), count in sorted(counts.items()):
        table.add_row(str(user_id), provider_id, str(count))
    console.print(table)


@cli.command()
def init() -> None:
    """Create a starter .mcpexec/config.yaml in the current directory."""
    path = Config.create_default_local()
    console.print(f"[green]Config at {path}[/green]")


def main() -> None:
    """Entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
