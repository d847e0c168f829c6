"""CLI entrypoint for netwarden."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import ConfigError, find_config, load_config


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(__version__, prog_name="netwarden")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to netwarden.toml (defaults to the nearest one above the current directory)",
)
@click.option("--verbose", is_flag=True, help="Log scanner and ledger diagnostics")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """netwarden - keep network-capable plugins disabled until approved.

    Scans plugin modules for calls into networking namespaces and records
    operator decisions in a trust ledger keyed by module content.
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    if config_path is None:
        config_path = find_config(Path.cwd())
    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument(
    "plugin_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.option(
    "--prompt/--no-prompt",
    default=True,
    show_default=True,
    help="Ask about each new network-capable module (otherwise they stay disabled)",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def scan(ctx: click.Context, plugin_dir: Path, prompt: bool, output_json: bool) -> None:
    """Scan a plugin directory and update the trust ledger.

    Modules whose content is unchanged since the last decision reuse it;
    new or changed modules are rescanned. Exits 1 while any network-capable
    module remains unpermitted.

    Examples:

        netwarden scan ./plugins

        netwarden scan ./plugins --no-prompt --json
    """
    from .commands.scan_cmd import run_scan

    sys.exit(run_scan(plugin_dir, ctx.obj["config"], prompt=prompt, output_json=output_json))


@cli.command()
@click.argument(
    "module_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--anywhere",
    is_flag=True,
    help="Scan even if the module is outside the plugin root",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def check(ctx: click.Context, module_path: Path, anywhere: bool, output_json: bool) -> None:
    """Scan one module file and show the first network call found.

    Does not read or write the trust ledger.
    """
    from .commands.scan_cmd import run_check

    sys.exit(run_check(module_path, ctx.obj["config"], anywhere=anywhere, output_json=output_json))


@cli.command()
@click.pass_context
def rules(ctx: click.Context) -> None:
    """List the capability rules in effect."""
    from .commands.ledger_cmd import run_rules

    sys.exit(run_rules(ctx.obj["config"]))


# -----------------------------------------------------------------------------
# Ledger commands - stored decisions
# -----------------------------------------------------------------------------


@cli.group()
def ledger() -> None:
    """Inspect the trust ledger and decision history."""
    pass


@ledger.command("show")
@click.option("--json", "output_json", is_flag=True, help="Output records as JSON")
@click.pass_context
def ledger_show(ctx: click.Context, output_json: bool) -> None:
    """List stored trust records."""
    from .commands.ledger_cmd import run_ledger_show

    sys.exit(run_ledger_show(ctx.obj["config"], output_json=output_json))


@ledger.command("history")
@click.option("--last", "last_n", type=int, default=None, help="Show only the last N decisions")
@click.pass_context
def ledger_history(ctx: click.Context, last_n: int | None) -> None:
    """Show operator decisions, oldest first."""
    from .commands.ledger_cmd import run_ledger_history

    sys.exit(run_ledger_history(ctx.obj["config"].decision_log_path, last_n=last_n))


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
