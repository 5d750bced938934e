"""
CLI for ccb.

Provides the PreToolUse hook entry point (``ccb auto-approve-tools``) and
operator commands for inspecting and resetting ccb's state.
"""

import json
import logging
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ccb import __version__
from ccb.cache import DecisionCache
from ccb.config import (
    get_cache_path,
    get_config_dir,
    get_config_path,
    get_debug_log_path,
    get_log_path,
    get_prompt_path,
    load_config,
)
from ccb.debug_log import configure_debug_log, redact
from ccb.errors import CacheError, CCBError, ConfigurationError, InputError
from ccb.models import HookOutput, HookRequest
from ccb.orchestrator import DecisionOrchestrator

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure stderr logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # ccb.log may lower the ccb logger's level; stderr stays at this one
    for handler in logging.getLogger().handlers:
        handler.setLevel(level)


def read_hook_request(stream=None) -> HookRequest:
    """Read and validate the stdin envelope. Raises InputError."""
    raw = (stream or sys.stdin).read()
    if not raw.strip():
        raise InputError("no input received on stdin")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputError(f"input is not valid JSON: {e}") from e
    return HookRequest.from_envelope(data)


@click.group()
@click.version_option(__version__, prog_name="ccb")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def main(verbose: bool):
    """ccb - Intelligent auto-approval for Claude Code tool calls."""
    setup_logging(verbose)


@main.command(name="auto-approve-tools")
@click.option("--use-claude-cli", is_flag=True, help="Ask the local claude CLI instead of an API provider")
def auto_approve_tools(use_claude_cli: bool):
    """PreToolUse hook: read one request on stdin, print one verdict on stdout.

    Exit 0 with a verdict document, or exit 1 with a single diagnostic line
    on stderr when the input is malformed or no verdict can be reached.
    """
    try:
        request = read_hook_request()
        config = load_config()
        configure_debug_log(config)
        logger.debug("Config: %s", redact(config.model_dump_json(by_alias=True, exclude_none=True)))
        logger.debug("EVALUATING: %s in %s", request.tool_name, request.cwd)

        orchestrator = DecisionOrchestrator(config=config, use_claude_cli=use_claude_cli)
        decision = orchestrator.decide(request)
    except CCBError as e:
        logger.debug("Hook failed: %s", e)
        click.echo(f"Error processing hook input: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.debug("Unexpected hook failure", exc_info=True)
        click.echo(f"Error processing hook input: {type(e).__name__}: {e}", err=True)
        sys.exit(1)

    click.echo(HookOutput.from_decision(decision).to_json())
    sys.exit(0)


@main.command(name="clear-cache")
def clear_cache():
    """Remove every cached approval decision."""
    cache = DecisionCache()
    try:
        cache.clear()
    except CacheError as e:
        console.print(f"[red]Error clearing approval cache:[/red] {e}")
        sys.exit(1)
    console.print("[green][OK][/green] Approval cache cleared")
    console.print(f"[dim]{cache.path}[/dim]")


@main.command(name="cache-stats")
def cache_stats():
    """Show cached decision counts per working directory."""
    stats = DecisionCache().stats()
    if not stats:
        console.print("[yellow]Approval cache is empty[/yellow]")
        return

    table = Table(title="Approval Cache")
    table.add_column("Working Directory", style="cyan")
    table.add_column("Entries", justify="right")
    for cwd, count in sorted(stats.items()):
        table.add_row(cwd, str(count))
    table.add_row("[bold]Total[/bold]", f"[bold]{sum(stats.values())}[/bold]")
    console.print(table)


def _describe_file(path) -> str:
    if not path.exists():
        return "[dim]absent[/dim]"
    return f"{path.stat().st_size} bytes"


@main.command()
def doctor():
    """Check configuration, provider credentials and state files."""
    from ccb.llm_client import resolve_provider

    config_path = get_config_path()
    config = load_config()

    console.print(Panel(
        f"Directory: {get_config_dir()}\n"
        f"Config: {config_path} ({_describe_file(config_path)})\n"
        f"Logging: {'on' if config.log else 'off'}  "
        f"Caching: {'on' if config.cache else 'off'}  "
        f"Diagnostic log: {'on' if config.general_log else 'off'}\n"
        f"Timeout: {config.timeout:.0f}s",
        title="Configuration",
    ))

    table = Table(title="State Files")
    table.add_column("File", style="cyan")
    table.add_column("Path")
    table.add_column("Status")
    for label, path in (
        ("Decision cache", get_cache_path()),
        ("Approval log", get_log_path()),
        ("Diagnostic log", get_debug_log_path()),
        ("Custom prompt", get_prompt_path()),
    ):
        table.add_row(label, str(path), _describe_file(path))
    console.print(table)

    try:
        provider = resolve_provider(config)
    except ConfigurationError as e:
        console.print(Panel(f"[red]{e}[/red]", title="Reasoning Provider"))
        sys.exit(1)

    model = config.model or provider.default_model
    structured = "native" if provider.supports_structured_output else "prompt-embedded"
    console.print(Panel(
        f"Auth method: [green]{provider.auth_method.value}[/green]\n"
        f"Model: {model}\n"
        f"Structured output: {structured}",
        title="Reasoning Provider",
    ))


@main.group()
def prompt():
    """View or customize the reasoning model's system prompt."""
    pass


@prompt.command(name="show")
def prompt_show():
    """Print the effective system prompt and where it comes from."""
    from ccb.prompts import load_system_prompt

    text, source = load_system_prompt()
    console.print(f"[dim]Source: {source}[/dim]\n")
    console.print(text, markup=False)


@prompt.command(name="reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def prompt_reset(yes: bool):
    """Write the built-in system prompt to the custom prompt file."""
    from ccb.prompts import SYSTEM_PROMPT

    prompt_path = get_prompt_path()
    if not yes:
        if prompt_path.exists():
            try:
                if prompt_path.read_text(encoding="utf-8").strip() == SYSTEM_PROMPT.strip():
                    console.print("[yellow]Prompt is already the built-in default[/yellow]")
                    return
            except (OSError, UnicodeDecodeError):
                pass
        if not click.confirm("Reset system prompt to built-in default?"):
            console.print("Cancelled")
            return

    prompt_path.parent.mkdir(parents=True, exist_ok=True)
    prompt_path.write_text(SYSTEM_PROMPT, encoding="utf-8")
    console.print("[green][OK][/green] Reset system prompt to built-in default")
    console.print(f"[dim]{prompt_path}[/dim]")


if __name__ == "__main__":
    main()
