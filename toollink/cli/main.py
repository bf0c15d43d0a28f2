"""
ToolLink CLI - Manage and exercise MCP tool providers.

Run `toollink tools` to connect every configured provider and list its tools.
Servers are stored in .toollink/config.yaml (or ~/.toollink with --global).
"""

import asyncio
import json
import logging
import sys
from typing import Dict, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from toollink import __version__
from toollink.logging_setup import setup_logging
from toollink.mcp.client import MCPError
from toollink.mcp.registry import ToolProviderRegistry
from toollink.mcp.schema import content_to_text
from toollink.mcp.transport import MCPTransportError
from toollink.validation.config import Config, ConfigError, MCPServerConfig

console = Console()


def _load_config() -> Config:
    """Load and validate configuration, exiting on errors."""
    try:
        config = Config.load()
        config.merged  # validate early
    except ConfigError as e:
        console.print(f"[red]Config error: {e}[/red]")
        sys.exit(1)
    return config


def _parse_env(values: Tuple[str, ...]) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--env")
        env[key] = value
    return env


def _print_no_servers() -> None:
    console.print("[dim]No MCP servers configured. Add one with:[/dim]")
    console.print("[dim]  toollink servers add sqlite npx -y @modelcontextprotocol/server-sqlite --db my.db[/dim]")


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option("--verbose", "-V", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, verbose: bool) -> None:
    """
    ToolLink - MCP tool providers for the chat client.

    \b
    Usage:
        toollink servers list            # Show configured providers
        toollink tools                   # Connect and list tools
        toollink call echo --args '{}'   # Invoke a tool
    """
    setup_logging(logging.DEBUG if verbose else logging.WARNING)

    if version:
        console.print(f"ToolLink v{__version__}")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ── Servers ───────────────────────────────────────────────────────────────


@cli.group()
def servers() -> None:
    """Manage configured MCP servers."""


@servers.command("list")
def servers_list() -> None:
    """List configured MCP servers."""
    config = _load_config()
    configured = config.get_servers(include_disabled=True)
    if not configured:
        _print_no_servers()
        return

    table = Table(title="MCP Servers", show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Command")
    table.add_column("Enabled", justify="center")

    for name, server in configured.items():
        enabled = "[green]yes[/green]" if server.enabled else "[dim]no[/dim]"
        table.add_row(name, server.display(), enabled)

    console.print(table)


@servers.command(
    "add",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option("--env", "-e", "env_items", multiple=True, help="Environment variable KEY=VALUE")
@click.option("--global", "global_", is_flag=True, help="Store in ~/.toollink instead of the project")
@click.argument("name")
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def servers_add(env_items: Tuple[str, ...], global_: bool, name: str, command: str, args: Tuple[str, ...]) -> None:
    """
    Add an MCP server and try to connect to it.

    Options must come before NAME; everything after COMMAND is passed to it.
    """
    env = _parse_env(env_items)
    config = _load_config()
    try:
        server = config.add_server(name, command, list(args), env, global_=global_)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    config.save()
    console.print(f"[green]Saved MCP server '{name}'[/green]")

    try:
        tool_count = asyncio.run(_probe_server(name, server, config))
    except MCPTransportError as e:
        console.print(f"[yellow]Connection failed: {escape(str(e))}[/yellow]")
        console.print("[dim]The configuration was kept. Check the command and try `toollink tools`.[/dim]")
        return

    console.print(f"[green]Connected to '{name}' ({tool_count} tools)[/green]")


async def _probe_server(name: str, server: MCPServerConfig, config: Config) -> int:
    registry = ToolProviderRegistry.from_config(config)
    try:
        client = await registry.add(name, server)
        return len(client.tools)
    finally:
        await registry.close_all()


@servers.command("remove")
@click.option("--global", "global_", is_flag=True, help="Remove from ~/.toollink instead of the project")
@click.argument("name")
def servers_remove(global_: bool, name: str) -> None:
    """Remove an MCP server."""
    config = _load_config()
    if not config.remove_server(name, global_=global_):
        console.print(f"[yellow]No MCP server named '{name}'[/yellow]")
        sys.exit(1)
    config.save()
    console.print(f"[green]Removed MCP server '{name}'[/green]")


# ── Tools ─────────────────────────────────────────────────────────────────


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print function-calling schemas as JSON")
def tools(as_json: bool) -> None:
    """Connect to every enabled MCP server and list its tools."""
    config = _load_config()
    if not config.get_servers():
        _print_no_servers()
        return

    registry = ToolProviderRegistry.from_config(config)
    lines, schemas = asyncio.run(_collect_tools(registry))

    if as_json:
        click.echo(json.dumps(schemas, indent=2, ensure_ascii=False))
        return

    console.print("[bold]MCP Servers:[/bold]")
    for line in lines:
        console.print(line)


async def _collect_tools(registry: ToolProviderRegistry):
    lines = []
    async with registry:
        for status in registry.status():
            if not status.initialized:
                reason = f" [dim]{escape(status.error)}[/dim]" if status.error else ""
                lines.append(f"  [red]✗[/red] {status.name}{reason}")
                continue
            lines.append(f"  [green]✓[/green] {status.name} ({status.tool_count} tools)")
            for tool in registry.get(status.name).tools:
                description = escape(tool.description or "(no description)")
                lines.append(f"      [cyan]{tool.name}[/cyan] - {description}")
        schemas = registry.function_schemas()
    return lines, schemas


@cli.command()
@click.argument("tool_name")
@click.option("--args", "args_json", default="{}", help="Tool arguments as a JSON object")
def call(tool_name: str, args_json: str) -> None:
    """Invoke a tool on whichever provider offers it."""
    try:
        arguments = json.loads(args_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--args")
    if not isinstance(arguments, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    config = _load_config()
    registry = ToolProviderRegistry.from_config(config)

    try:
        content = asyncio.run(_call_tool(registry, tool_name, arguments))
    except (MCPError, MCPTransportError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    click.echo(content_to_text(content))


async def _call_tool(registry: ToolProviderRegistry, tool_name: str, arguments: Dict):
    async with registry:
        return await registry.call_tool(tool_name, arguments)


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
